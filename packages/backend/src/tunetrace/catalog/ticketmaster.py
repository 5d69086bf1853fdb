"""Ticketmaster Discovery API catalog.

Learn: Uses httpx for REST calls. Upstream events are transformed into
the app's Concert shape right here, so nothing outside this module knows
about "_embedded" or "priceRanges".

Network failures and 5xx responses become CatalogUnavailableError;
responses we can't parse become CatalogError. The poller treats both as
a failed check for that artist.
"""

import math
from typing import Any, Optional

import httpx
import structlog

from tunetrace.catalog.base import CatalogError, CatalogUnavailableError, ConcertCatalog
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

logger = structlog.get_logger()

PLACEHOLDER_ARTIST_IMAGE = "https://via.placeholder.com/150/666666/FFFFFF?text=Artist"
DEFAULT_COORDINATES = Coordinates(latitude=40.7128, longitude=-74.0060)


class TicketmasterCatalog(ConcertCatalog):
    """Concert catalog backed by the Ticketmaster Discovery v2 API."""

    source = "Ticketmaster API"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://app.ticketmaster.com/discovery/v2",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def search_events(
        self,
        city: str,
        genre: Optional[str] = None,
        date: Optional[str] = None,
        page: int = 0,
        size: int = 10,
    ) -> ConcertPage:
        params: dict[str, Any] = {
            "classificationName": "music",
            "city": city,
            "size": size,
            "page": page,
            "sort": "date,asc",
        }
        if genre:
            params["keyword"] = genre
        if date:
            params["localStartDateTime"] = f"{date}T00:00:00,{date}T23:59:59"

        data = await self._get_events(params)
        concerts = self._transform_all(data)
        page_info = data.get("page") or {}
        total = page_info.get("totalElements", len(concerts))
        pages = page_info.get("totalPages", math.ceil(total / size) if size else 0)
        return ConcertPage(
            concerts=concerts,
            total=total,
            page=page,
            total_pages=pages,
            page_size=size,
        )

    async def events_for_artist(
        self,
        artist_id: str,
        artist_name: str,
        *,
        artist_image: Optional[str] = None,
        genre: Optional[str] = None,
    ) -> list[Concert]:
        params = {
            "classificationName": "music",
            "keyword": artist_name,
            "size": 50,
            "sort": "date,asc",
        }
        data = await self._get_events(params)
        # Keyword search is fuzzy; keep events where the artist actually performs.
        wanted_name = artist_name.casefold()
        return [
            concert
            for concert in self._transform_all(data)
            if any(
                a.id == artist_id or a.name.casefold() == wanted_name
                for a in concert.artists
            )
        ]

    async def close(self) -> None:
        await self._client.aclose()

    # ─── Internals ────────────────────────────────────────

    async def _get_events(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.get(
                "/events.json", params={"apikey": self._api_key, **params}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500 or status == 429:
                raise CatalogUnavailableError(f"Ticketmaster returned {status}") from e
            raise CatalogError(f"Ticketmaster returned {status}") from e
        except httpx.HTTPError as e:
            raise CatalogUnavailableError(f"Ticketmaster unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise CatalogError("Ticketmaster returned invalid JSON") from e
        if not isinstance(data, dict):
            raise CatalogError("Ticketmaster returned an unexpected payload")
        return data

    def _transform_all(self, data: dict[str, Any]) -> list[Concert]:
        events = (data.get("_embedded") or {}).get("events") or []
        try:
            return [transform_event(event) for event in events]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning("catalog.malformed_event", error=str(e))
            raise CatalogError(f"Malformed Ticketmaster event: {e}") from e


def transform_event(event: dict[str, Any]) -> Concert:
    """Map one Ticketmaster event to a Concert."""
    embedded = event.get("_embedded") or {}

    attractions = embedded.get("attractions") or []
    artists = [
        ConcertArtist(
            id=a["id"],
            name=a["name"],
            image=(a.get("images") or [{}])[0].get("url", PLACEHOLDER_ARTIST_IMAGE),
        )
        for a in attractions
    ] or [ConcertArtist(id="unknown", name="Various Artists", image=PLACEHOLDER_ARTIST_IMAGE)]

    venue = embedded["venues"][0]
    location = venue.get("location") or {}
    try:
        coordinates = Coordinates(
            latitude=float(location["latitude"]),
            longitude=float(location["longitude"]),
        )
    except (KeyError, TypeError, ValueError):
        coordinates = DEFAULT_COORDINATES

    start = event["dates"]["start"]
    date_time = start.get("dateTime") or f"{start['localDate']}T20:00:00"

    price_ranges = event.get("priceRanges") or []
    price_range = PriceRange(**price_ranges[0]) if price_ranges else PriceRange()

    classifications = event.get("classifications") or []
    genre = (
        classifications[0].get("genre", {}).get("name", "Music")
        if classifications
        else "Music"
    )

    return Concert(
        id=event["id"],
        title=event["name"],
        artists=artists,
        venue=Venue(
            name=venue["name"],
            location=VenueLocation(
                address=(venue.get("address") or {}).get("line1", "Address not available"),
                city=venue["city"]["name"],
                country=venue["country"]["name"],
                coordinates=coordinates,
            ),
        ),
        date_time=date_time,
        ticket_info=TicketInfo(
            url=event.get("url"),
            price_range=price_range,
            on_sale=(event["dates"].get("status") or {}).get("code") == "onsale",
        ),
        genre=genre,
    )
