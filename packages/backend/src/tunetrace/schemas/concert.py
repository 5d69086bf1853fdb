"""Pydantic schemas for concerts as the app presents them.

Learn: Both catalog variants (Ticketmaster and the synthetic generator)
normalize into Concert, so search results, favorites and the "concert"
payload inside NEW_CONCERT notifications all share one shape.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ConcertArtist(_CamelModel):
    id: str
    name: str
    image: Optional[str] = None


class Coordinates(_CamelModel):
    latitude: float
    longitude: float


class VenueLocation(_CamelModel):
    address: Optional[str] = None
    city: str
    country: str
    coordinates: Optional[Coordinates] = None


class Venue(_CamelModel):
    name: str
    location: VenueLocation


class PriceRange(_CamelModel):
    min: float = 0
    max: float = 0
    currency: str = "USD"


class TicketInfo(_CamelModel):
    url: Optional[str] = None
    price_range: Optional[PriceRange] = Field(None, alias="priceRange")
    on_sale: bool = Field(False, alias="onSale")


class Concert(_CamelModel):
    id: str
    title: str
    artists: list[ConcertArtist] = Field(default_factory=list)
    venue: Venue
    date_time: str = Field(alias="dateTime")
    ticket_info: TicketInfo = Field(default_factory=TicketInfo, alias="ticketInfo")
    attendees: Optional[int] = None
    genre: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ConcertPage(_CamelModel):
    """One page of catalog search results."""

    concerts: list[Concert] = Field(default_factory=list)
    total: int = 0
    page: int = 0
    total_pages: int = Field(0, alias="totalPages")
    page_size: int = Field(10, alias="pageSize")

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages - 1
