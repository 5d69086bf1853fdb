"""Concert API — public search plus the user's favorites.

Learn: Search is public and never fails because of the upstream: if
the configured catalog raises CatalogError, the same query is answered
from the synthetic catalog and "source" says so. Favorites are plain
per-user bookmarks of a client-side concert snapshot.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tunetrace.auth.dependencies import CurrentIdentity, get_current_user
from tunetrace.catalog import CatalogError, ConcertCatalog, SyntheticCatalog
from tunetrace.db.engine import get_db
from tunetrace.schemas.concert import ConcertPage
from tunetrace.schemas.library import FavoriteConcertRead, FavoriteConcertRequest
from tunetrace.services.tracking_service import FavoriteService

logger = structlog.get_logger()
router = APIRouter(prefix="/concerts")

# Search fallback only; never announces anything.
_fallback_catalog = SyntheticCatalog(new_event_probability=0)


def get_catalog(request: Request) -> ConcertCatalog:
    """The catalog selected at startup (see main.create_app)."""
    return request.app.state.catalog


def _search_response(
    result: ConcertPage, city: str, source: str, load_more: bool
) -> dict:
    return {
        "concerts": [c.to_wire() for c in result.concerts],
        "total": result.total,
        "page": result.page,
        "totalPages": result.total_pages,
        "hasNextPage": result.has_next_page,
        "pageSize": result.page_size,
        "city": city,
        "source": source,
        "isLoadMore": load_more,
    }


# ─── Search ──────────────────────────────────────────────


@router.get("")
async def search_concerts(
    city: str = Query("New York"),
    genre: Optional[str] = None,
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=200),
    load_more: bool = Query(False, alias="loadMore"),
    catalog: ConcertCatalog = Depends(get_catalog),
):
    """Search upcoming concerts in a city (0-indexed pages)."""
    try:
        result = await catalog.search_events(city, genre=genre, date=date, page=page, size=size)
        source = catalog.source
    except CatalogError as e:
        logger.warning("concerts.search_fallback", city=city, error=str(e))
        result = await _fallback_catalog.search_events(
            city, genre=genre, date=date, page=page, size=size
        )
        source = _fallback_catalog.source
    return _search_response(result, city, source, load_more)


# ─── Favorites ───────────────────────────────────────────


@router.post("/favorite")
async def add_favorite(
    body: FavoriteConcertRequest,
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.concert_id or not body.concert_data:
        raise HTTPException(status_code=400, detail="Concert ID and data are required")

    favorite, created = await FavoriteService(db).add(
        identity.user_id, body.concert_id, body.concert_data
    )
    return {
        "message": "Concert added to favorites" if created else "Concert already in favorites",
        "favorite": FavoriteConcertRead.model_validate(favorite).model_dump(mode="json", by_alias=True),
    }


@router.get("/favorites")
async def list_favorites(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    favorites = await FavoriteService(db).list_for_user(identity.user_id)
    return {
        "favorites": [
            FavoriteConcertRead.model_validate(f).model_dump(mode="json", by_alias=True)
            for f in favorites
        ]
    }


@router.delete("/favorite/{concert_id}")
async def remove_favorite(
    concert_id: str,
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await FavoriteService(db).remove(identity.user_id, concert_id)
    return {"message": "Concert removed from favorites"}
