"""Artist API — artist search and the user's tracked artists.

Learn: Tracking an artist is what feeds the concert-discovery poller;
the poller picks up the new row on its next run. Tracking is
idempotent and untracking an artist that isn't tracked still succeeds.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from tunetrace.auth.dependencies import CurrentIdentity, get_current_user
from tunetrace.catalog.synthetic import search_mock_artists
from tunetrace.db.engine import get_db
from tunetrace.schemas.library import TrackArtistRequest, TrackedArtistRead
from tunetrace.services.tracking_service import TrackingService

router = APIRouter(prefix="/artists")


def _wire(row) -> dict:
    return TrackedArtistRead.model_validate(row).model_dump(mode="json", by_alias=True)


@router.get("/search")
async def search_artists(query: str = ""):
    """Public artist search over the built-in artist list."""
    if not query.strip():
        return {"artists": []}
    artists = search_mock_artists(query.strip())
    return {"artists": artists, "total": len(artists), "source": "Mock Data"}


@router.post("/track")
async def track_artist(
    body: TrackArtistRequest,
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.artist_id or not body.artist_name:
        raise HTTPException(status_code=400, detail="Artist ID and name are required")

    tracked, created = await TrackingService(db).track(
        identity.user_id,
        body.artist_id,
        body.artist_name,
        artist_image=body.artist_image,
        genre=body.genre,
    )
    return {
        "message": "Artist tracked successfully" if created else "Artist already tracked",
        "artist": _wire(tracked),
    }


@router.get("/tracked")
async def list_tracked(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await TrackingService(db).list_for_user(identity.user_id)
    return {"artists": [_wire(r) for r in rows]}


@router.delete("/track/{artist_id}")
async def untrack_artist(
    artist_id: str,
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await TrackingService(db).untrack(identity.user_id, artist_id)
    return {"message": "Artist untracked successfully"}
