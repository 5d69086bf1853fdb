"""Concert catalog base — pluggable interface for concert listing sources.

Learn: The rest of the app never talks to Ticketmaster directly. It talks
to a ConcertCatalog, and configuration decides which one:

- TicketmasterCatalog — the real Discovery API (needs an API key)
- SyntheticCatalog    — deterministic mock listings, plus simulated
                        announcements so the notification path can be
                        exercised without any upstream credential

Tests inject their own subclass to force either path.
"""

from abc import ABC, abstractmethod
from typing import Optional

from tunetrace.schemas.concert import Concert, ConcertPage


class CatalogError(Exception):
    """Raised when the catalog answers with something we can't use."""


class CatalogUnavailableError(CatalogError):
    """Raised when the catalog can't be reached (network error, 5xx, timeout)."""


class ConcertCatalog(ABC):
    """Abstract base for concert catalogs."""

    #: Human-readable source label, echoed in search responses.
    source: str = "unknown"

    #: When True, the poller treats an artist's first listing as already
    #: known. Catalogs whose listings only ever contain fresh
    #: announcements set this to False.
    baseline_first_scan: bool = True

    @abstractmethod
    async def search_events(
        self,
        city: str,
        genre: Optional[str] = None,
        date: Optional[str] = None,
        page: int = 0,
        size: int = 10,
    ) -> ConcertPage:
        """Search upcoming music events in a city.

        page is 0-indexed (the upstream API's convention). date, when
        given, is a YYYY-MM-DD day to restrict results to.
        """

    @abstractmethod
    async def events_for_artist(
        self,
        artist_id: str,
        artist_name: str,
        *,
        artist_image: Optional[str] = None,
        genre: Optional[str] = None,
    ) -> list[Concert]:
        """Return the artist's currently listed upcoming events.

        This is a snapshot: callers diff it against what they've seen
        before to find newly announced events.
        """

    async def close(self) -> None:
        """Release network resources. Default: nothing to release."""
