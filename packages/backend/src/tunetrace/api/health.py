"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and the
database is reachable. websocket.connectedClients is the size of the
live-delivery registry, which makes this a handy probe in tests.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from tunetrace import __version__
from tunetrace.config import settings
from tunetrace.db.engine import get_db

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """Check server health and dependency connectivity."""
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        database = f"error: {e}"

    registry = request.app.state.registry
    return {
        "status": "OK" if database == "ok" else "DEGRADED",
        "message": "TuneTrace Backend is running!",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "database": database,
        "ticketmaster": settings.catalog_configured,
        "authentication": True,
        "websocket": {
            "connectedClients": registry.connected_clients,
            "enabled": True,
        },
    }
