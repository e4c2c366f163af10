"""Shared pytest fixtures: a throwaway SQLite database per test and an ASGI client."""

import os

# main builds its module-level app on import; give it something to read
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_KEY", "test-signing-key-that-is-long-enough-0123456789")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from booking import BookingService  # noqa: E402
from config import Settings  # noqa: E402
from database import init_db, make_engine, make_session_factory  # noqa: E402
from main import create_app  # noqa: E402
from models import Room  # noqa: E402
from tests.helpers import TEST_JWT_KEY, register_and_login  # noqa: E402


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}",
        JWT_KEY=TEST_JWT_KEY,
        LOG_LEVEL="WARNING",
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = make_engine(settings.DATABASE_URL)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def booking_service(session_factory):
    return BookingService(session_factory)


@pytest_asyncio.fixture
async def room(session_factory):
    async with session_factory() as session:
        room = Room(name="Sala Azul", capacity=8, location="2nd floor")
        session.add(room)
        await session.commit()
    return room


@pytest_asyncio.fixture
async def other_room(session_factory):
    async with session_factory() as session:
        room = Room(name="Sala Verde", capacity=4)
        session.add(room)
        await session.commit()
    return room


@pytest_asyncio.fixture
async def app(settings):
    app = create_app(settings)
    await init_db(app.state.engine)
    yield app
    await app.state.engine.dispose()


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def auth_headers(client):
    body = await register_and_login(client)
    return {"Authorization": f"Bearer {body['token']}"}
