"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- HTTP test client with the database dependency overridden
- Test data factories (users, drivers, routes, recharges, notifications)
- Bearer tokens for API tests
"""
# JWT_SECRET_KEY must be set before rutapay is imported; the settings validator requires it
import os
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing-only-do-not-use-in-production")

import pytest
from decimal import Decimal
from typing import AsyncGenerator

from sqlalchemy import null
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from rutapay.core.auth import create_access_token
from rutapay.db.database import Base, get_db
from rutapay.db.models.driver import Driver
from rutapay.db.models.notification import Notification
from rutapay.db.models.recharge import Recharge, RechargeStatus
from rutapay.db.models.route import Route
from rutapay.db.models.user import User, UserRole
from rutapay.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(async_engine):
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Factory for creating test users"""
    async def _create_user(
        name: str | None = "Ana Quispe",
        email: str | None = None,
        role: UserRole = UserRole.PASSENGER,
        balance: Decimal | str = Decimal("0.00"),
        is_active: bool = True,
    ) -> User:
        user = User(
            name=name,
            email=email,
            role=role,
            balance=Decimal(str(balance)),
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def driver_factory(db_session: AsyncSession, user_factory):
    """Factory for creating a driver (and its owning user)"""
    async def _create_driver(
        driver_code: str = "107",
        name: str = "Carlos Mamani",
        is_active: bool = True,
    ) -> Driver:
        user = await user_factory(name=name, role=UserRole.DRIVER, is_active=is_active)
        driver = Driver(user_id=user.id, driver_code=driver_code, is_available=True)
        db_session.add(driver)
        await db_session.commit()
        await db_session.refresh(driver)
        return driver

    return _create_driver


@pytest.fixture
def route_factory(db_session: AsyncSession):
    """Factory for creating routes"""
    async def _create_route(
        name: str = "Ruta 1",
        fare: Decimal | str = Decimal("15.50"),
        is_active: bool = True,
    ) -> Route:
        route = Route(name=name, fare=Decimal(str(fare)), is_active=is_active)
        db_session.add(route)
        await db_session.commit()
        await db_session.refresh(route)
        return route

    return _create_route


@pytest.fixture
def recharge_factory(db_session: AsyncSession):
    """Factory for creating recharges in any state"""
    async def _create_recharge(
        user_id: int,
        amount: Decimal | str = Decimal("50.00"),
        reference: str = "TRX-0001",
        status: RechargeStatus = RechargeStatus.PENDING,
        applied: bool | None = False,
    ) -> Recharge:
        recharge = Recharge(
            user_id=user_id,
            amount=Decimal(str(amount)),
            reference=reference,
            status=status,
            # None means a row from before the column existed; the column default would turn it into False
            applied=null() if applied is None else applied,
        )
        db_session.add(recharge)
        await db_session.commit()
        await db_session.refresh(recharge)
        return recharge

    return _create_recharge


@pytest.fixture
def notification_factory(db_session: AsyncSession):
    """Factory for notification rows written directly (e.g. by an older deployment)"""
    async def _create_notification(
        user_id: int,
        title: str = "Aviso",
        body: str | None = None,
        data: dict | None = None,
        read: bool = False,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            title=title,
            body=body,
            data=data or {},
            read=read,
        )
        db_session.add(notification)
        await db_session.commit()
        await db_session.refresh(notification)
        return notification

    return _create_notification


# ============================================================================
# Sample Test Data
# ============================================================================

@pytest.fixture
async def passenger(user_factory) -> User:
    return await user_factory(name="Ana Quispe", email="ana@example.com")


@pytest.fixture
async def admin_user(user_factory) -> User:
    return await user_factory(name="Admin", email="admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def auth_headers():
    """Build an Authorization header for a user"""
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user.id, user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers
