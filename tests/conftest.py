"""
Pytest configuration and fixtures.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from src.models import Base, Listing, ListingStatus, User, UserRole
from src.realtime import events
from src.realtime.registry import InMemoryRoomRegistry


# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """
    File-backed engine with one connection per session.

    Needed when two sessions must really race, and when the app runs in
    the TestClient's own event loop.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def file_session_factory(file_engine):
    return async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)


async def seed_marketplace(session: AsyncSession, password_hash: str = "not-a-real-hash") -> SimpleNamespace:
    """Buyer, seller, admin, an unrelated user and one active listing."""
    buyer = User(email="buyer@example.com", name="Abebe Buyer", password_hash=password_hash,
                 roles=[UserRole.BUYER.value])
    seller = User(email="seller@example.com", name="Sara Seller", password_hash=password_hash,
                  phone="+251911000000", roles=[UserRole.BUYER.value, UserRole.SELLER.value])
    admin = User(email="admin@example.com", name="Admin", password_hash=password_hash,
                 roles=[UserRole.ADMIN.value])
    outsider = User(email="outsider@example.com", name="Other", password_hash=password_hash,
                    roles=[UserRole.BUYER.value])
    session.add_all([buyer, seller, admin, outsider])
    await session.flush()

    listing = Listing(
        seller_id=seller.id,
        title="Used bicycle",
        price=Decimal("5000.00"),
        currency="ETB",
        payment_methods=["cash", "m-birr"],
        status=ListingStatus.ACTIVE,
    )
    session.add(listing)
    await session.commit()

    return SimpleNamespace(buyer=buyer, seller=seller, admin=admin, outsider=outsider, listing=listing)


@pytest_asyncio.fixture
async def market(db_session):
    return await seed_marketplace(db_session)


class RecordingRegistry(InMemoryRoomRegistry):
    """In-memory registry that also remembers every publish."""

    def __init__(self):
        super().__init__(max_connections=100)
        self.published = []

    async def broadcast_many(self, rooms, event, data):
        rooms = list(rooms)
        self.published.append((rooms, event, data))
        return await super().broadcast_many(rooms, event, data)

    def named(self, event):
        return [(rooms, data) for rooms, name, data in self.published if name == event]

    def notifications(self, kind):
        return [
            (rooms, data["payload"])
            for rooms, data in self.named(events.NOTIFICATION)
            if data["type"] == kind
        ]


@pytest.fixture
def recorder():
    registry = RecordingRegistry()
    previous = events.set_registry(registry)
    yield registry
    events.set_registry(previous)
