from datetime import UTC, date, datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pageturn.database import Base, get_session
from pageturn.app import create_app
from pageturn.dependencies import build_services
from pageturn.id import book_id_for
from pageturn.models import Book
from pageturn.services.clock import OperationContext, TimezoneClock
import pageturn.models  # noqa: F401

TEST_DB_URL = "sqlite+aiosqlite://"  # in-memory

engine = create_async_engine(TEST_DB_URL, echo=False)
TestSession = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# Noon in New York (EDT) on a Saturday.
NOW = datetime(2025, 3, 15, 16, 0, tzinfo=UTC)
TODAY = date(2025, 3, 15)
TZ = "America/New_York"


class RecordingRatingSync:
    def __init__(self) -> None:
        self.calls = []

    async def sync_rating(self, book, rating) -> None:
        self.calls.append((book.id, rating))


class RecordingCacheSignal:
    def __init__(self) -> None:
        self.views = []

    def invalidate(self, views: set[str]) -> None:
        self.views.append(views)


@pytest.fixture(autouse=True)
async def setup_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def session():
    async with TestSession() as s:
        yield s


@pytest.fixture
def clock():
    return TimezoneClock(now=lambda: NOW, default_timezone=TZ)


@pytest.fixture
def ctx():
    return OperationContext(user_id=None, timezone=TZ)


@pytest.fixture
def rating_sync():
    return RecordingRatingSync()


@pytest.fixture
def cache_signal():
    return RecordingCacheSignal()


@pytest.fixture
def services(session, clock, rating_sync, cache_signal):
    return build_services(session, clock, rating_sync, cache_signal, cascade_pages_read=False)


@pytest.fixture
async def book(session):
    b = Book(id=book_id_for("Dune", "Frank Herbert"), title="Dune", author="Frank Herbert", total_pages=300)
    session.add(b)
    await session.flush()
    return b


@pytest.fixture
async def client(clock):
    app = create_app(clock=clock)
    app.state.rating_sync = RecordingRatingSync()

    async def override_session():
        async with TestSession() as s:
            yield s

    app.dependency_overrides[get_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
