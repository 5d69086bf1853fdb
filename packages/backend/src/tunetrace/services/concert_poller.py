"""Concert-discovery poller — turns newly announced concerts into notifications.

Learn: Runs as a long-lived task in the FastAPI lifespan. Every
poll_interval seconds it:

1. Loads every tracked artist across all users.
2. Groups the rows by artist and asks the catalog once per artist
   (with a timeout) for that artist's current listing.
3. Diffs the listing against the artist's ArtistScan row. For catalogs
   with baseline_first_scan set (Ticketmaster), the very first scan of
   an artist only records a baseline, so tracking an artist doesn't
   flood the user with every show already on sale. The synthetic
   catalog's listing holds nothing but fresh announcements, so there
   every event is new, first scan included.
4. For each new event and each tracker, creates one notification
   (idempotent per user + event) and immediately pushes it through the
   notifier. Pushes are best effort and never block the loop for long.
5. Records the listing as known, but only if every tracker's
   notifications were stored; otherwise the next run retries and the
   per-event uniqueness keeps it from double-notifying.

Each (user, artist) check ends every run in exactly one state:

    PENDING → NO_NEW_EVENT | NEW_EVENT_NOTIFIED | CHECK_FAILED

A failure (catalog timeout, malformed response, storage error) fails
only that artist's checks; the rest of the run carries on. A failing
run never stops the loop.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from tunetrace.catalog.base import ConcertCatalog
from tunetrace.db.engine import async_session_factory
from tunetrace.db.models import NEW_CONCERT, PRIORITY_HIGH, ArtistScan, utcnow
from tunetrace.realtime.registry import Notifier
from tunetrace.schemas.concert import Concert
from tunetrace.schemas.notification import NotificationRead
from tunetrace.services.notification_service import NotificationService
from tunetrace.services.tracking_service import TrackingService

logger = structlog.get_logger()

# Ids remembered per artist. The current listing is always kept whole;
# an event that drops out of it and comes back while still remembered
# is not announced again.
MAX_REMEMBERED_EVENT_IDS = 200


class CheckOutcome(str, Enum):
    PENDING = "pending"
    NO_NEW_EVENT = "no_new_event"
    NEW_EVENT_NOTIFIED = "new_event_notified"
    CHECK_FAILED = "check_failed"


@dataclass(frozen=True)
class TrackerRef:
    """Detached copy of a TrackedArtist row, safe to use across sessions."""
    user_id: str
    artist_id: str
    artist_name: str
    artist_image: Optional[str] = None
    genre: Optional[str] = None


@dataclass
class ArtistCheck:
    """Result of checking one tracked artist for one user in one run."""
    user_id: str
    artist_id: str
    artist_name: str
    outcome: CheckOutcome = CheckOutcome.PENDING
    notification_ids: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def fail(self, error: str) -> None:
        self.outcome = CheckOutcome.CHECK_FAILED
        self.error = error


@dataclass
class PollRunResult:
    started_at: datetime
    finished_at: Optional[datetime] = None
    checks: list[ArtistCheck] = field(default_factory=list)

    def count(self, outcome: CheckOutcome) -> int:
        return sum(1 for c in self.checks if c.outcome is outcome)

    @property
    def notifications_created(self) -> int:
        return sum(len(c.notification_ids) for c in self.checks)

    def summary(self) -> dict[str, int]:
        return {
            "checks": len(self.checks),
            "notified": self.count(CheckOutcome.NEW_EVENT_NOTIFIED),
            "unchanged": self.count(CheckOutcome.NO_NEW_EVENT),
            "failed": self.count(CheckOutcome.CHECK_FAILED),
            "notifications": self.notifications_created,
        }


def new_concert_notification(tracker: TrackerRef, concert: Concert) -> dict:
    """Title/message/data for a NEW_CONCERT notification."""
    city = concert.venue.location.city
    return {
        "type": NEW_CONCERT,
        "title": "New Concert Alert!",
        "message": f"{tracker.artist_name} just announced a new concert in {city}!",
        "data": {
            "artistId": tracker.artist_id,
            "artistName": tracker.artist_name,
            "concert": concert.to_wire(),
        },
        "priority": PRIORITY_HIGH,
    }


def remembered_event_ids(
    concerts: list[Concert], previous: list[str], limit: int = MAX_REMEMBERED_EVENT_IDS
) -> list[str]:
    """Known ids for the next scan: the whole current listing, then the
    most recently seen ids that have dropped out of it, up to limit.

    previous is stored newest first, so older ids fall off the end.
    """
    current = list(dict.fromkeys(c.id for c in concerts))
    listed = set(current)
    dropped = [event_id for event_id in previous if event_id not in listed]
    return current + dropped[:max(0, limit - len(current))]


class ConcertPoller:
    """Background worker that detects new concerts for tracked artists.

    Usage:
        poller = ConcertPoller(catalog, registry, interval=300)
        task = asyncio.create_task(poller.run_loop())
        ...
        poller.stop()   # in-flight run finishes, no new run starts
        await task
    """

    def __init__(
        self,
        catalog: ConcertCatalog,
        notifier: Notifier,
        *,
        session_factory: Callable[[], AsyncSession] = async_session_factory,
        interval: float = 300.0,
        catalog_timeout: float = 10.0,
        max_concurrent: int = 4,
    ):
        self.catalog = catalog
        self.notifier = notifier
        self.session_factory = session_factory
        self.interval = interval
        self.catalog_timeout = catalog_timeout
        self.max_concurrent = max(1, max_concurrent)
        self.last_result: Optional[PollRunResult] = None
        self._stopping = asyncio.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # ─── Lifecycle ────────────────────────────────────────

    async def run_loop(self) -> None:
        """Wait an interval, run, repeat, until stop() is called."""
        self._running = True
        self._stopping.clear()
        logger.info("poller.started", interval=self.interval)
        try:
            while not await self._wait_interval():
                try:
                    await self.run_once()
                except Exception:
                    logger.exception("poller.run_failed")
        finally:
            self._running = False
            logger.info("poller.stopped")

    async def _wait_interval(self) -> bool:
        """Sleep for one interval. Returns True if stop() was called."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            return False
        return True

    def stop(self) -> None:
        """Signal the loop to stop after the in-flight run (if any)."""
        self._stopping.set()
        logger.info("poller.stopping")

    # ─── One run ──────────────────────────────────────────

    async def run_once(self) -> PollRunResult:
        """Check every tracked artist once."""
        result = PollRunResult(started_at=datetime.now(timezone.utc))
        groups = await self._load_trackers()
        logger.info("poller.run_started", artists=len(groups))

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def guarded(artist_id: str, trackers: list[TrackerRef]) -> list[ArtistCheck]:
            async with semaphore:
                return await self._check_artist(artist_id, trackers)

        batches = await asyncio.gather(
            *(guarded(artist_id, trackers) for artist_id, trackers in groups.items()),
            return_exceptions=True,
        )
        for (artist_id, trackers), batch in zip(groups.items(), batches):
            if isinstance(batch, BaseException):
                logger.error("poller.check_crashed", artist_id=artist_id, error=str(batch))
                batch = [self._failed_check(t, str(batch)) for t in trackers]
            result.checks.extend(batch)

        result.finished_at = datetime.now(timezone.utc)
        self.last_result = result
        logger.info("poller.run_completed", **result.summary())
        return result

    async def _load_trackers(self) -> dict[str, list[TrackerRef]]:
        async with self.session_factory() as db:
            rows = await TrackingService(db).list_all()

        groups: dict[str, list[TrackerRef]] = {}
        for row in rows:
            groups.setdefault(row.artist_id, []).append(
                TrackerRef(
                    user_id=str(row.user_id),
                    artist_id=row.artist_id,
                    artist_name=row.artist_name,
                    artist_image=row.artist_image,
                    genre=row.genre,
                )
            )
        return groups

    @staticmethod
    def _failed_check(tracker: TrackerRef, error: str) -> ArtistCheck:
        check = ArtistCheck(tracker.user_id, tracker.artist_id, tracker.artist_name)
        check.fail(error)
        return check

    async def _check_artist(self, artist_id: str, trackers: list[TrackerRef]) -> list[ArtistCheck]:
        """Check one artist for all of its trackers. Never raises."""
        checks = [ArtistCheck(t.user_id, t.artist_id, t.artist_name) for t in trackers]
        lead = trackers[0]
        log = logger.bind(artist_id=artist_id, artist_name=lead.artist_name)

        try:
            concerts = await asyncio.wait_for(
                self.catalog.events_for_artist(
                    artist_id,
                    lead.artist_name,
                    artist_image=lead.artist_image,
                    genre=lead.genre,
                ),
                timeout=self.catalog_timeout,
            )
        except asyncio.TimeoutError:
            log.warning("poller.check_failed", error="catalog timeout", timeout=self.catalog_timeout)
            for check in checks:
                check.fail("Catalog request timed out")
            return checks
        except Exception as e:
            log.warning("poller.check_failed", error=str(e))
            for check in checks:
                check.fail(str(e) or type(e).__name__)
            return checks

        try:
            async with self.session_factory() as db:
                new_concerts = await self._new_since_last_scan(db, artist_id, concerts)
                stored_all = True
                for check, tracker in zip(checks, trackers):
                    if not await self._notify_tracker(db, check, tracker, new_concerts, log):
                        stored_all = False
                if stored_all:
                    await self._remember_listing(db, artist_id, concerts)
        except Exception as e:
            log.exception("poller.storage_failed")
            for check in checks:
                if check.outcome is CheckOutcome.PENDING:
                    check.fail(str(e) or type(e).__name__)

        if new_concerts_count := sum(len(c.notification_ids) for c in checks):
            log.info("poller.new_concerts", notifications=new_concerts_count)
        return checks

    async def _new_since_last_scan(
        self, db: AsyncSession, artist_id: str, concerts: list[Concert]
    ) -> list[Concert]:
        scan = await db.get(ArtistScan, artist_id)
        if scan is None and self.catalog.baseline_first_scan:
            return []  # first sighting: baseline only
        known = set(scan.known_event_ids or []) if scan else set()
        return [c for c in concerts if c.id not in known]

    async def _remember_listing(
        self, db: AsyncSession, artist_id: str, concerts: list[Concert]
    ) -> None:
        scan = await db.get(ArtistScan, artist_id)
        previous = (scan.known_event_ids or []) if scan else []
        known = remembered_event_ids(concerts, previous)
        if scan is None:
            db.add(ArtistScan(artist_id=artist_id, known_event_ids=known))
        else:
            scan.known_event_ids = known
            scan.last_scanned_at = utcnow()
        await db.commit()

    async def _notify_tracker(
        self,
        db: AsyncSession,
        check: ArtistCheck,
        tracker: TrackerRef,
        concerts: list[Concert],
        log,
    ) -> bool:
        """Create + push notifications for one tracker. False on storage failure."""
        notifications = NotificationService(db)
        try:
            for concert in concerts:
                content = new_concert_notification(tracker, concert)
                notification = await notifications.create_for_event(
                    tracker.user_id,
                    concert.id,
                    content["type"],
                    content["title"],
                    content["message"],
                    content["data"],
                    content["priority"],
                    artist_id=tracker.artist_id,
                )
                if notification is None:
                    continue  # already notified about this event
                check.notification_ids.append(str(notification.id))
                await self._deliver(tracker.user_id, NotificationRead.model_validate(notification).to_wire())
        except Exception as e:
            await db.rollback()
            log.exception("poller.notification_store_failed", user_id=tracker.user_id)
            check.fail(str(e) or type(e).__name__)
            return False

        check.outcome = (
            CheckOutcome.NEW_EVENT_NOTIFIED if check.notification_ids else CheckOutcome.NO_NEW_EVENT
        )
        return True

    async def _deliver(self, user_id: str, payload: dict) -> None:
        try:
            await self.notifier.push(user_id, payload)
        except Exception as e:
            # Delivery is best effort; the notification is already stored.
            logger.warning("poller.push_failed", user_id=user_id, error=str(e))
