"""Test fixtures — a fresh in-memory database and app per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI without a server:

1. Environment variables are set before tunetrace is imported, so the
   settings singleton sees a test configuration (SQLite, poller off,
   no synthetic announcements, unreachable Redis).
2. Each test gets its own engine on "sqlite+aiosqlite:///:memory:" with
   StaticPool, so every session shares one connection (and therefore
   one in-memory database), and the schema is created from the models.
3. Each test gets its own app from create_app(), so the live-delivery
   registry starts empty.
4. get_db is overridden to hand out sessions from the test engine;
   `client` also overrides get_current_user so protected routes work
   without real tokens.
"""

import asyncio
import json
import os
import uuid

os.environ["TUNETRACE_ENVIRONMENT"] = "test"
os.environ["TUNETRACE_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["TUNETRACE_POLLER_ENABLED"] = "false"
os.environ["TUNETRACE_SYNTHETIC_EVENT_PROBABILITY"] = "0"
os.environ["TUNETRACE_TICKETMASTER_API_KEY"] = ""
os.environ["TUNETRACE_REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["TUNETRACE_WS_AUTH_TIMEOUT_SECONDS"] = "2"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402
from starlette.websockets import WebSocketState  # noqa: E402

from tunetrace.auth.dependencies import CurrentIdentity, get_current_user  # noqa: E402
from tunetrace.auth.jwt import create_access_token  # noqa: E402
from tunetrace.auth.password import hash_password  # noqa: E402
from tunetrace.db.engine import get_db  # noqa: E402
from tunetrace.db.models import NEW_CONCERT, Base, User  # noqa: E402
from tunetrace.main import create_app  # noqa: E402
from tunetrace.services.notification_service import NotificationService  # noqa: E402

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
TEST_USER_ID = "00000000-0000-0000-0000-000000000001"
TEST_USER_EMAIL = "fan@example.com"


# ─── Database ────────────────────────────────────────────


@pytest_asyncio.fixture()
async def engine():
    """Fresh in-memory database with the full schema."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ─── Users ───────────────────────────────────────────────


@pytest.fixture()
def make_user(session_factory):
    """Factory: insert a user, return (user_id, bearer token)."""

    async def _make(email=None, display_name="Test Fan", user_id=None):
        async with session_factory() as session:
            user = User(
                id=uuid.UUID(user_id) if user_id else uuid.uuid4(),
                email=email or f"fan-{uuid.uuid4().hex[:8]}@example.com",
                display_name=display_name,
                password_hash=hash_password("password123"),
            )
            session.add(user)
            await session.commit()
            uid = str(user.id)
            return uid, create_access_token(uid, email=user.email)

    return _make


@pytest_asyncio.fixture()
async def test_user(make_user):
    """The user the `client` fixture is authenticated as."""
    user_id, token = await make_user(email=TEST_USER_EMAIL, user_id=TEST_USER_ID)
    return user_id


@pytest.fixture()
def make_notifications(session_factory):
    """Factory: create n notifications for a user, oldest first."""

    async def _make(user_id, n=1, title="New Concert Alert!", prefix="evt"):
        created = []
        async with session_factory() as session:
            svc = NotificationService(session)
            for i in range(n):
                created.append(
                    await svc.create(
                        user_id,
                        NEW_CONCERT,
                        title,
                        f"Concert #{i}",
                        {"index": i},
                        source_event_id=f"{prefix}-{uuid.uuid4().hex[:8]}-{i}",
                    )
                )
        return created

    return _make


# ─── App + clients ───────────────────────────────────────


@pytest.fixture()
def app(session_factory):
    """A fresh app whose get_db hands out sessions on the test engine."""
    application = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app, test_user):
    """HTTP client with auth overridden to TEST_USER_ID.

    Learn: Overriding get_current_user means protected routes work
    without minting tokens. Tests that exercise the real bearer
    pipeline use `unauthenticated_client` instead.
    """

    def override_get_current_user():
        return CurrentIdentity(user_id=TEST_USER_ID, email=TEST_USER_EMAIL)

    app.dependency_overrides[get_current_user] = override_get_current_user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def unauthenticated_client(app):
    """HTTP client WITHOUT auth override — real JWT validation."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ─── Fake WebSocket ──────────────────────────────────────


class FakeWebSocket:
    """Just enough of starlette's WebSocket for LiveConnection/ConnectionSession.

    Inbound frames are queued with feed()/feed_raw()/disconnect(); outbound
    JSON frames collect in .sent.
    """

    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict] = []
        self.close_code = None
        self.fail_sends = False
        self.send_delay = 0.0
        self._incoming: asyncio.Queue = asyncio.Queue()

    def feed(self, payload: dict) -> None:
        self.feed_raw(json.dumps(payload))

    def feed_raw(self, text: str) -> None:
        self._incoming.put_nowait({"type": "websocket.receive", "text": text})

    def disconnect(self, code: int = 1000) -> None:
        self._incoming.put_nowait({"type": "websocket.disconnect", "code": code})

    async def receive(self) -> dict:
        return await self._incoming.get()

    async def send_text(self, text: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_sends or self.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("socket is not connected")
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000, reason=None) -> None:
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def frames(self, frame_type: str) -> list[dict]:
        return [m for m in self.sent if m.get("type") == frame_type]


@pytest.fixture()
def fake_ws():
    """Factory for FakeWebSocket instances."""
    return FakeWebSocket
