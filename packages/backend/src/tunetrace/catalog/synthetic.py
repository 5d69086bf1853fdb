"""Synthetic concert catalog — used when no Ticketmaster key is configured.

Learn: Two jobs:

1. search_events() serves a fixed, deterministic set of mock concerts
   (same city → same listings), so the mobile app has something to show.
2. events_for_artist() simulates announcements: each call, with
   probability new_event_probability, the artist "announces" one new
   concert that stays in their listing from then on. Probability 0
   switches announcements off without touching anything else.

The RNG is injectable so tests can make announcements deterministic.
"""

import itertools
import math
import random
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from tunetrace.catalog.base import ConcertCatalog
from tunetrace.schemas.concert import (
    Concert,
    ConcertArtist,
    ConcertPage,
    Coordinates,
    PriceRange,
    TicketInfo,
    Venue,
    VenueLocation,
)

MOCK_ARTISTS = [
    {"id": "artist1", "name": "The Killers", "image": "https://via.placeholder.com/150/FF6B6B/FFFFFF?text=Killers", "followers": "2.5M", "genre": "Rock"},
    {"id": "artist2", "name": "Arctic Monkeys", "image": "https://via.placeholder.com/150/4ECDC4/FFFFFF?text=AM", "followers": "3.1M", "genre": "Rock"},
    {"id": "artist3", "name": "Norah Jones", "image": "https://via.placeholder.com/150/45B7D1/FFFFFF?text=Norah", "followers": "1.8M", "genre": "Jazz"},
    {"id": "artist4", "name": "Martin Garrix", "image": "https://via.placeholder.com/150/F7DC6F/000000?text=MG", "followers": "4.2M", "genre": "EDM"},
    {"id": "artist5", "name": "David Guetta", "image": "https://via.placeholder.com/150/BB8FCE/FFFFFF?text=DG", "followers": "3.9M", "genre": "EDM"},
    {"id": "artist6", "name": "Kendrick Lamar", "image": "https://via.placeholder.com/150/E74C3C/FFFFFF?text=KL", "followers": "8.7M", "genre": "Hip Hop"},
    {"id": "artist7", "name": "J. Cole", "image": "https://via.placeholder.com/150/3498DB/FFFFFF?text=JC", "followers": "7.2M", "genre": "Hip Hop"},
    {"id": "artist8", "name": "Beyoncé", "image": "https://via.placeholder.com/150/9B59B6/FFFFFF?text=Bey", "followers": "6.8M", "genre": "R&B"},
]

MOCK_VENUES = [
    ("Madison Square Garden", "4 Pennsylvania Plaza"),
    ("Blue Note", "131 W 3rd St"),
    ("Brooklyn Steel", "319 Frost St"),
    ("Terminal 5", "610 W 56th St"),
    ("Radio City Music Hall", "1260 6th Ave"),
]

MOCK_CONCERT_COUNT = 25


def search_mock_artists(query: str) -> list[dict]:
    """Case-insensitive substring match on artist name or genre."""
    needle = query.casefold()
    return [
        artist
        for artist in MOCK_ARTISTS
        if needle in artist["name"].casefold() or needle in artist["genre"].casefold()
    ]


class SyntheticCatalog(ConcertCatalog):
    """Deterministic mock catalog with simulated announcements."""

    source = "Mock Data"

    # Every listed event was announced by this process, so none predates tracking.
    baseline_first_scan = False

    #: Announcements kept per artist; older ones fall out of the listing.
    max_announced_per_artist = 50

    def __init__(
        self,
        new_event_probability: float = 0.1,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.new_event_probability = new_event_probability
        self._rng = rng or random.Random()
        self._clock = clock
        self._seq = itertools.count(1)
        self._announced: dict[str, list[Concert]] = {}

    # ─── Search ───────────────────────────────────────────

    async def search_events(
        self,
        city: str,
        genre: Optional[str] = None,
        date: Optional[str] = None,
        page: int = 0,
        size: int = 10,
    ) -> ConcertPage:
        concerts = self._mock_listing(city or "New York")
        if genre:
            wanted = genre.casefold()
            concerts = [c for c in concerts if c.genre and wanted in c.genre.casefold()]
        if date:
            concerts = [c for c in concerts if c.date_time.startswith(date)]

        total = len(concerts)
        start = page * size
        return ConcertPage(
            concerts=concerts[start:start + size],
            total=total,
            page=page,
            total_pages=math.ceil(total / size) if size else 0,
            page_size=size,
        )

    def _mock_listing(self, city: str) -> list[Concert]:
        # Seeded by city so the same search always returns the same page.
        rng = random.Random(city.casefold())
        today = datetime.now(timezone.utc).replace(hour=20, minute=0, second=0, microsecond=0)
        concerts = []
        for i in range(MOCK_CONCERT_COUNT):
            artist = MOCK_ARTISTS[i % len(MOCK_ARTISTS)]
            venue_name, address = MOCK_VENUES[i % len(MOCK_VENUES)]
            low = rng.randint(25, 120)
            concerts.append(
                Concert(
                    id=f"mock-{city.casefold().replace(' ', '-')}-{i + 1}",
                    title=f"{artist['name']} Live",
                    artists=[ConcertArtist(id=artist["id"], name=artist["name"], image=artist["image"])],
                    venue=Venue(
                        name=venue_name,
                        location=VenueLocation(
                            address=address,
                            city=city,
                            country="USA",
                            coordinates=Coordinates(latitude=40.7128, longitude=-74.0060),
                        ),
                    ),
                    date_time=(today + timedelta(days=3 * (i + 1))).strftime("%Y-%m-%dT%H:%M:%S"),
                    ticket_info=TicketInfo(
                        price_range=PriceRange(min=low, max=low + rng.randint(20, 200)),
                        on_sale=True,
                    ),
                    attendees=rng.randint(100, 5100),
                    genre=artist["genre"],
                )
            )
        return concerts

    # ─── Simulated announcements ──────────────────────────

    async def events_for_artist(
        self,
        artist_id: str,
        artist_name: str,
        *,
        artist_image: Optional[str] = None,
        genre: Optional[str] = None,
    ) -> list[Concert]:
        listing = self._announced.setdefault(artist_id, [])
        if self.new_event_probability > 0 and self._rng.random() < self.new_event_probability:
            listing.append(self._announce(artist_id, artist_name, artist_image, genre))
            del listing[:-self.max_announced_per_artist]
        return list(listing)

    def _announce(
        self,
        artist_id: str,
        artist_name: str,
        artist_image: Optional[str],
        genre: Optional[str],
    ) -> Concert:
        now_ms = int(self._clock() * 1000)
        when = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc) + timedelta(days=30)
        return Concert(
            id=f"new-{now_ms}-{artist_id}-{next(self._seq)}",
            title=f"New {artist_name} Concert!",
            artists=[ConcertArtist(id=artist_id, name=artist_name, image=artist_image)],
            venue=Venue(
                name="New Venue",
                location=VenueLocation(city="New York", country="USA"),
            ),
            date_time=when.strftime("%Y-%m-%dT%H:%M:%S"),
            ticket_info=TicketInfo(on_sale=True),
            genre=genre,
        )
