"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Unlike a blanket include_router(dependencies=...) guard, auth is
declared per route here: concert and artist search are public, while
favorites and tracking in the same routers need a bearer token. The
notifications router is fully protected and is guarded at include time
as well.
"""

from fastapi import APIRouter, Depends

from tunetrace.api.artists import router as artists_router
from tunetrace.api.auth import router as auth_router
from tunetrace.api.concerts import router as concerts_router
from tunetrace.api.health import router as health_router
from tunetrace.api.notifications import router as notifications_router
from tunetrace.auth.dependencies import get_current_user

_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api")

# Open routes: no auth required
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Mixed routes: per-handler auth
api_router.include_router(concerts_router, tags=["concerts", "favorites"])
api_router.include_router(artists_router, tags=["artists"])

# Protected routes: require a valid JWT
api_router.include_router(notifications_router, tags=["notifications"], dependencies=_auth)
