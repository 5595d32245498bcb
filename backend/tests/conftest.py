"""Pytest configuration and fixtures for AssetX token market tests"""
import os
from datetime import timedelta
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from dotenv import load_dotenv

from assetx.main import app
from assetx.models.database import Base, get_db, utcnow
from assetx.models.purchase_request import PurchaseRequestStatus
from assetx.schemas.auth import CurrentUser, UserRole
from assetx.services.listings import ListingMarket
from assetx.services.notifications import NotificationEmitter, get_notification_emitter
from assetx.services.offerings import OfferingService
from assetx.services.purchase_requests import PurchaseRequestService

# Load environment variables
load_dotenv()

# Point at a PostgreSQL database to run against the production dialect.
# Unset, every test gets its own SQLite file.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

LANDLORD_ID = "landlord-1"
BUYER_ID = "buyer-1"
SECOND_BUYER_ID = "buyer-2"


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Fresh schema per test. NullPool so every session gets its own connection."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'assetx_test.db'}"
    test_engine = create_async_engine(url, echo=False, poolclass=NullPool)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test"""
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def broadcaster() -> AsyncMock:
    """Stands in for the websocket broadcast; records every delivered event"""
    return AsyncMock()


@pytest.fixture
def emitter(session_factory, broadcaster) -> NotificationEmitter:
    return NotificationEmitter(session_factory=session_factory, broadcaster=broadcaster)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, emitter) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client"""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_emitter] = lambda: emitter

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# Actors
# =============================================================================

@pytest.fixture
def landlord() -> CurrentUser:
    return CurrentUser(user_id=LANDLORD_ID, role=UserRole.LANDLORD)


@pytest.fixture
def buyer() -> CurrentUser:
    return CurrentUser(user_id=BUYER_ID, role=UserRole.BUYER)


@pytest.fixture
def second_buyer() -> CurrentUser:
    return CurrentUser(user_id=SECOND_BUYER_ID, role=UserRole.BUYER)


@pytest.fixture
def superadmin() -> CurrentUser:
    return CurrentUser(user_id="ops", role=UserRole.SUPERADMIN)


def headers_for(user: CurrentUser) -> dict:
    return {"X-User-Id": user.user_id, "X-User-Role": user.role.value}


@pytest.fixture
def auth_headers():
    """Build identity headers for a user"""
    return headers_for


# =============================================================================
# Services and seeded data
# =============================================================================

@pytest.fixture
def offering_service(db_session) -> OfferingService:
    return OfferingService(db_session)


@pytest.fixture
def request_service(db_session, emitter) -> PurchaseRequestService:
    return PurchaseRequestService(db_session, emitter)


@pytest.fixture
def market(db_session, emitter) -> ListingMarket:
    return ListingMarket(db_session, emitter)


@pytest.fixture
def offering_data() -> dict:
    """1000 tokens at 10.00 EUR each"""
    now = utcnow()
    return {
        "property_id": "prop-villa-01",
        "property_title": "Seaside Villa",
        "token_name": "Seaside Villa Token",
        "token_symbol": "svt",
        "total_tokens": 1000,
        "token_price": 1000,
        "property_value": 1_000_000,
        "min_purchase": 1,
        "max_purchase": None,
        "expected_return": "8-10%",
        "property_type": "villa",
        "offering_start_date": now - timedelta(days=1),
        "offering_end_date": now + timedelta(days=90),
    }


@pytest_asyncio.fixture
async def active_offering(offering_service, landlord, offering_data):
    offering = await offering_service.create_offering(landlord, **offering_data)
    return await offering_service.activate_offering(offering.id, landlord)


@pytest.fixture
def advance_request(request_service, landlord, buyer):
    """
    Drive a freshly submitted request along the happy path up to (and
    including) the given status.
    """
    steps = [
        (PurchaseRequestStatus.APPROVED,
         lambda rid: request_service.approve(rid, landlord, "Bank X, ref 123")),
        (PurchaseRequestStatus.PAYMENT_PENDING,
         lambda rid: request_service.upload_payment_proof(rid, buyer, "https://blobs.example/proof.pdf")),
        (PurchaseRequestStatus.PAYMENT_CONFIRMED,
         lambda rid: request_service.confirm_payment(rid, landlord)),
        (PurchaseRequestStatus.TOKENS_ASSIGNED,
         lambda rid: request_service.assign_tokens(rid, landlord)),
        (PurchaseRequestStatus.COMPLETED,
         lambda rid: request_service.complete(rid, landlord)),
    ]

    async def _advance(request_id: int, to_status: PurchaseRequestStatus):
        request = None
        for status, step in steps:
            request = await step(request_id)
            if status == to_status:
                break
        return request

    return _advance


@pytest.fixture
def submit_request(request_service, buyer, active_offering):
    """Submit a purchase request against the active offering"""

    async def _submit(tokens: int = 100, user: CurrentUser = None):
        return await request_service.submit(
            user or buyer,
            offering_id=active_offering.id,
            tokens_requested=tokens,
            proposed_payment_method="bank_transfer",
            message="Interested in a long-term position",
        )

    return _submit


@pytest_asyncio.fixture
async def buyer_investment(submit_request, advance_request):
    """100 tokens settled to the buyer; returns the completed request"""
    request = await submit_request(100)
    return await advance_request(request.id, PurchaseRequestStatus.COMPLETED)
