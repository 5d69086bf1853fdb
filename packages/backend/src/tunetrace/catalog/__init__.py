"""Concert catalog — where concert listings come from.

Learn: Configuration picks the catalog once, at startup:
    catalog = build_catalog(settings)

A Ticketmaster API key selects the real catalog; without one, the
synthetic catalog takes over (a permanent condition, not a fallback for
transient upstream failures).
"""

from tunetrace.catalog.base import CatalogError, CatalogUnavailableError, ConcertCatalog
from tunetrace.catalog.synthetic import SyntheticCatalog
from tunetrace.catalog.ticketmaster import TicketmasterCatalog
from tunetrace.config import Settings

__all__ = [
    "CatalogError",
    "CatalogUnavailableError",
    "ConcertCatalog",
    "SyntheticCatalog",
    "TicketmasterCatalog",
    "build_catalog",
]


def build_catalog(config: Settings) -> ConcertCatalog:
    """Select the catalog variant from configuration."""
    if config.catalog_configured:
        return TicketmasterCatalog(
            api_key=config.ticketmaster_api_key,
            base_url=config.ticketmaster_base_url,
            timeout=config.catalog_timeout_seconds,
        )
    return SyntheticCatalog(new_event_probability=config.synthetic_event_probability)
