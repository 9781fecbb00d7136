"""Pytest configuration and fixtures"""

import uuid
from collections.abc import AsyncGenerator
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from nannygold.api.deps import get_gateway
from nannygold.config import settings
from nannygold.db.database import Base, get_db
from nannygold.db.models import (
    ApprovalStatus,
    Booking,
    BookingStatus,
    BookingType,
    Client,
    HomeSize,
    LivingArrangement,
    Nanny,
    UserProfile,
    UserRole,
)
from nannygold.main import app
from nannygold.services.email_notifications import EmailNotificationService
from nannygold.services.gateway import GatewayResult, PaystackGateway
from nannygold.services.notifications import NotificationService

# In-memory SQLite shared across connections
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def test_db() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestSessionLocal = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with TestSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(autouse=True)
def quiet_settings(monkeypatch):
    """Keep tests off the network and the SMTP server"""
    monkeypatch.setattr(settings, "enable_email_notifications", False)
    monkeypatch.setattr(settings, "redis_url", None)
    monkeypatch.setattr(settings, "gateway_backoff_seconds", 0.0)


@pytest.fixture
def email_service():
    service = MagicMock(spec=EmailNotificationService)
    service.send_email.return_value = True
    return service


@pytest.fixture
def notifications(test_db, email_service):
    return NotificationService(test_db, email_service=email_service)


@pytest.fixture
def gateway():
    """Gateway double that approves every authorization and verification"""
    gateway = AsyncMock(spec=PaystackGateway)
    gateway.authorize.return_value = GatewayResult(
        status="success",
        reference="ref",
        authorization_id="9001",
        authorization_code="AUTH_saved",
        message="Approved",
    )
    gateway.verify.return_value = GatewayResult(
        status="success",
        reference="ref",
        authorization_id="9001",
        message="Successful",
    )
    return gateway


async def _add_profile(db: AsyncSession, role: UserRole, first_name: str, **fields) -> UserProfile:
    profile = UserProfile(
        id=uuid.uuid4(),
        role=role,
        first_name=first_name,
        last_name=fields.pop("last_name", "Tester"),
        **fields,
    )
    db.add(profile)
    return profile


@pytest.fixture
def make_client(test_db):
    async def _make(
        first_name: str = "Thandi",
        home_size: HomeSize | None = HomeSize.FAMILY_HUB,
        number_of_children: int = 2,
        other_dependents: int = 0,
        with_card: bool = True,
    ) -> Client:
        profile = await _add_profile(
            test_db,
            UserRole.CLIENT,
            first_name,
            last_name="Mokoena",
            email=f"{first_name.lower()}.{uuid.uuid4().hex[:6]}@example.com",
            paystack_authorization_code="AUTH_saved" if with_card else None,
        )
        client = Client(
            id=profile.id,
            home_size=home_size,
            number_of_children=number_of_children,
            other_dependents=other_dependents,
        )
        test_db.add(client)
        await test_db.commit()
        await test_db.refresh(client)
        return client

    return _make


@pytest.fixture
def make_nanny(test_db):
    async def _make(
        first_name: str = "Lerato",
        rating: float = 4.5,
        service_categories: tuple[str, ...] = ("long_term", "short_term"),
        living_arrangements: tuple[str, ...] = ("live_out",),
        skills: tuple[str, ...] = ("First Aid", "Cooking"),
        approval_status: ApprovalStatus = ApprovalStatus.APPROVED,
        is_available: bool = True,
    ) -> Nanny:
        profile = await _add_profile(
            test_db,
            UserRole.NANNY,
            first_name,
            email=f"{first_name.lower()}.{uuid.uuid4().hex[:6]}@example.com",
        )
        nanny = Nanny(
            id=profile.id,
            rating=rating,
            approval_status=approval_status,
            is_available=is_available,
            can_receive_bookings=True,
            service_categories=list(service_categories),
            admin_assigned_categories=[],
            skills=list(skills),
            living_arrangements=list(living_arrangements),
            monthly_rate=Decimal("8000.00"),
        )
        test_db.add(nanny)
        await test_db.commit()
        await test_db.refresh(nanny)
        return nanny

    return _make


@pytest_asyncio.fixture
async def admins(test_db) -> list[UserProfile]:
    profiles = [
        await _add_profile(test_db, UserRole.ADMIN, name, email=f"{name.lower()}@nannygold.co.za")
        for name in ("Admin", "Ops")
    ]
    await test_db.commit()
    return profiles


@pytest.fixture
def make_booking(test_db):
    async def _make(
        client: Client,
        nanny: Nanny,
        booking_type: BookingType = BookingType.LONG_TERM,
        status: BookingStatus = BookingStatus.PENDING,
        base_rate: Decimal = Decimal("8000.00"),
        home_size: HomeSize | None = HomeSize.FAMILY_HUB,
        start_date: date | None = None,
        end_date: date | None = None,
        living_arrangement: LivingArrangement | None = LivingArrangement.LIVE_OUT,
    ) -> Booking:
        booking = Booking(
            id=uuid.uuid4(),
            client_id=client.id,
            nanny_id=nanny.id,
            start_date=start_date or date.today() + timedelta(days=7),
            end_date=end_date,
            booking_type=booking_type,
            status=status,
            base_rate=base_rate,
            additional_services_cost=Decimal("0.00"),
            cost_adjustment=Decimal("0.00"),
            total_cost=base_rate,
            home_size=home_size,
            living_arrangement=living_arrangement,
            required_skills=[],
            services={},
        )
        test_db.add(booking)
        await test_db.commit()
        await test_db.refresh(booking)
        return booking

    return _make


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, gateway) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with overridden database and gateway dependencies"""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def headers_for():
    """Identity headers as forwarded by the auth proxy"""
    def _headers(user_id: uuid.UUID, role: UserRole | str) -> dict[str, str]:
        role_value = role.value if isinstance(role, UserRole) else role
        return {"X-User-Id": str(user_id), "X-User-Role": role_value}

    return _headers
