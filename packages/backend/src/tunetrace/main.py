"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Process-wide collaborators live on app.state and are created
here, not as module globals:

- app.state.registry  LiveDeliveryRegistry (WebSocket handshake binds,
                      poller pushes, health reports its size)
- app.state.catalog   the ConcertCatalog chosen from configuration
- app.state.poller    the ConcertPoller, once the lifespan has started it

Lifespan manages startup/shutdown: Redis (optional), the poller task,
the Redis relay task (fan-out mode only), and a graceful stop on the
way out. The poller finishes its in-flight run before the engine and
catalog are closed.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tunetrace import __version__
from tunetrace.api import api_router
from tunetrace.catalog import build_catalog
from tunetrace.config import settings
from tunetrace.log_config import configure_logging
from tunetrace.realtime.registry import LiveDeliveryRegistry

logger = structlog.get_logger()

# How long shutdown waits for an in-flight poller run.
POLLER_SHUTDOWN_GRACE_SECONDS = 30.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: FastAPI lifespan replaces on_event("startup") / on_event("shutdown").
    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "tunetrace.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        catalog=app.state.catalog.source,
    )

    # Redis is optional: rate limiting and multi-instance fan-out need it.
    from tunetrace.realtime.pubsub import RedisFanout, close_redis, init_redis, relay_notifications

    redis = None
    try:
        redis = await init_redis()
        logger.info("tunetrace.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("tunetrace.redis_unavailable", error=str(e))

    relay_task = None
    notifier = app.state.registry
    if settings.redis_fanout and redis is not None:
        notifier = RedisFanout(redis)
        relay_task = asyncio.create_task(relay_notifications(app.state.registry, redis))
    elif settings.redis_fanout:
        logger.warning("tunetrace.fanout_disabled", reason="redis unavailable")

    poller_task = None
    if settings.poller_enabled:
        from tunetrace.services.concert_poller import ConcertPoller

        poller = ConcertPoller(
            app.state.catalog,
            notifier,
            interval=settings.poll_interval_seconds,
            catalog_timeout=settings.catalog_timeout_seconds,
            max_concurrent=settings.poller_max_concurrent,
        )
        app.state.poller = poller
        poller_task = asyncio.create_task(poller.run_loop())
        logger.info("tunetrace.poller_started", interval=settings.poll_interval_seconds)

    yield

    # Shutdown
    logger.info("tunetrace.shutdown")

    if poller_task is not None:
        app.state.poller.stop()
        try:
            await asyncio.wait_for(poller_task, timeout=POLLER_SHUTDOWN_GRACE_SECONDS)
        except asyncio.TimeoutError:
            # wait_for has already cancelled the task.
            logger.warning("tunetrace.poller_shutdown_timeout")

    if relay_task is not None:
        relay_task.cancel()
        try:
            await relay_task
        except asyncio.CancelledError:
            pass

    await app.state.catalog.close()
    await close_redis()

    from tunetrace.db.engine import engine
    await engine.dispose()


# ─── Error responses ─────────────────────────────────────
# Every error leaves the API as {"error": message}.


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail) if exc.detail else "Request failed"},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.info("http.validation_error", path=request.url.path, errors=len(errors))
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("http.unhandled_error", method=request.method, path=request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging(settings)

    app = FastAPI(
        title="TuneTrace",
        description="Concert discovery backend with real-time new-concert notifications",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.registry = LiveDeliveryRegistry(push_timeout=settings.ws_push_timeout_seconds)
    app.state.catalog = build_catalog(settings)
    app.state.poller = None

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from tunetrace.middleware.rate_limit import RateLimitMiddleware
    from tunetrace.middleware.request_id import RequestIdMiddleware
    from tunetrace.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount API routes
    app.include_router(api_router)

    # Mount WebSocket routes (/ws and the bare host)
    from tunetrace.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: tunetrace.main:app)
app = create_app()
