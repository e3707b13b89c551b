"""
Pytest configuration and fixtures.

Provides fixtures for:
- Database sessions on an in-memory SQLite engine
- HTTP client with the database and broadcaster overridden
- Test users (shipper, two carriers, moderator) with auth headers
- A published load and bidding helpers
"""
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sendix.db.base import Base
from sendix.db.session import get_db
from sendix.db.transaction import KeyedLocks
from sendix.main import app
from sendix.models import Load, User, UserRole
from sendix.services.auth import create_access_token
from sendix.services.proposals import ProposalService
from sendix.services.realtime import get_broadcaster
from sendix.services.selection import SelectionCoordinator
from sendix.services.threads import ThreadGate

# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingBroadcaster:
    """Broadcaster that keeps every published event for assertions."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, room: str, event: dict[str, Any]) -> None:
        self.events.append((room, event))

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [event for _, event in self.events if event["type"] == event_type]


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest_asyncio.fixture(scope="function")
async def client(db_session, broadcaster) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client bound to the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# -----------------------------------------------------------------------------
# User Fixtures
# -----------------------------------------------------------------------------

async def make_user(db: AsyncSession, email: str, name: str, role: UserRole) -> User:
    user = User(email=email, name=name, role=role, is_active=True)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest_asyncio.fixture
async def shipper(db_session) -> User:
    return await make_user(db_session, "shipper@example.com", "Acme Foods", UserRole.SHIPPER)


@pytest_asyncio.fixture
async def other_shipper(db_session) -> User:
    return await make_user(db_session, "other@example.com", "Globex", UserRole.SHIPPER)


@pytest_asyncio.fixture
async def carrier_a(db_session) -> User:
    return await make_user(db_session, "carrier.a@example.com", "Rutas del Sur", UserRole.CARRIER)


@pytest_asyncio.fixture
async def carrier_b(db_session) -> User:
    return await make_user(db_session, "carrier.b@example.com", "Transportes Norte", UserRole.CARRIER)


@pytest_asyncio.fixture
async def moderator(db_session) -> User:
    return await make_user(db_session, "ops@sendix.example.com", "Sendix Ops", UserRole.NEXUS)


@pytest.fixture
def shipper_headers(shipper) -> dict:
    return headers_for(shipper)


@pytest.fixture
def carrier_a_headers(carrier_a) -> dict:
    return headers_for(carrier_a)


@pytest.fixture
def carrier_b_headers(carrier_b) -> dict:
    return headers_for(carrier_b)


@pytest.fixture
def moderator_headers(moderator) -> dict:
    return headers_for(moderator)


# -----------------------------------------------------------------------------
# Load Fixtures
# -----------------------------------------------------------------------------

@pytest_asyncio.fixture
async def load(db_session, shipper) -> Load:
    """A load published by the shipper."""
    load = Load(
        owner_id=shipper.id,
        origin="Rosario",
        destination="Cordoba",
        cargo_type="Refrigerated",
        description="20 pallets",
        attachments=[],
    )
    db_session.add(load)
    await db_session.commit()
    await db_session.refresh(load)
    return load


# -----------------------------------------------------------------------------
# Proposal Helpers
# -----------------------------------------------------------------------------

@pytest.fixture
def place_bid(db_session, broadcaster):
    """Submit a bid through the proposal service."""

    async def _place_bid(carrier: User, load: Load, price: int = 10000, vehicle: str = "Scania R450"):
        service = ProposalService(db_session, broadcaster)
        return await service.create_proposal(carrier, load.id, vehicle, price)

    return _place_bid


@pytest.fixture
def award(db_session):
    """Select a winner with a private lock registry."""

    async def _award(owner: User, proposal):
        coordinator = SelectionCoordinator(db_session, locks=KeyedLocks())
        return await coordinator.select_winner(owner, proposal.id)

    return _award


@pytest_asyncio.fixture
async def approved_chat(db_session, load, shipper, carrier_a, place_bid, award):
    """An approved proposal of carrier A on the load, with its thread."""
    proposal = await award(shipper, await place_bid(carrier_a, load, price=10000))
    thread = await ThreadGate(db_session).require_thread(proposal)
    return proposal, thread
