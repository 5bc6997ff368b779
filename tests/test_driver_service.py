"""
Tests for DriverService: code allocation, lookup and earnings views.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from rutapay.core.config import settings
from rutapay.core.exceptions import DriverNotFoundError, ValidationException
from rutapay.db.models.driver import Driver, DriverCodeCounter
from rutapay.db.models.payment import Payment
from rutapay.db.models.user import User, UserRole
from rutapay.domain.services.driver_service import DriverService


@pytest.mark.unit
async def test_first_driver_gets_the_start_code(db_session):
    driver = await DriverService(db_session).create_driver(name="Carlos", email="Carlos@Example.com")

    assert driver.driver_code == str(settings.DRIVER_CODE_START)
    user = (await db_session.execute(select(User).where(User.id == driver.user_id))).scalar_one()
    assert user.role == UserRole.DRIVER
    assert user.email == "carlos@example.com"


@pytest.mark.unit
async def test_codes_are_sequential(db_session):
    service = DriverService(db_session)

    codes = [(await service.create_driver(name=f"Chofer {i}")).driver_code for i in range(3)]

    assert codes == ["101", "102", "103"]


@pytest.mark.unit
async def test_counter_is_seeded_from_existing_codes(driver_factory, db_session):
    await driver_factory(driver_code="150", name="Viejo")
    await driver_factory(driver_code="ABC", name="Manual")

    driver = await DriverService(db_session).create_driver(name="Nuevo")

    assert driver.driver_code == "151"


@pytest.mark.unit
async def test_startup_seeding_creates_the_counter_once(db_session):
    service = DriverService(db_session)

    assert await service.ensure_code_counter() == settings.DRIVER_CODE_START - 1
    assert await service.ensure_code_counter() == settings.DRIVER_CODE_START - 1

    counters = (await db_session.execute(select(DriverCodeCounter))).scalars().all()
    assert len(counters) == 1

    driver = await service.create_driver(name="Primero")
    assert driver.driver_code == str(settings.DRIVER_CODE_START)
    assert await service.ensure_code_counter() == settings.DRIVER_CODE_START


@pytest.mark.unit
async def test_startup_seeding_starts_after_existing_codes(driver_factory, db_session):
    await driver_factory(driver_code="150", name="Viejo")

    assert await DriverService(db_session).ensure_code_counter() == 150

    driver = await DriverService(db_session).create_driver(name="Nuevo")
    assert driver.driver_code == "151"


@pytest.mark.unit
async def test_codes_are_not_reused_after_deletion(db_session):
    service = DriverService(db_session)
    await service.create_driver(name="Uno")
    second = await service.create_driver(name="Dos")

    row = (await db_session.execute(select(Driver).where(Driver.id == second.id))).scalar_one()
    await db_session.delete(row)
    await db_session.commit()

    third = await service.create_driver(name="Tres")
    assert third.driver_code == "103"

    counter = (await db_session.execute(select(DriverCodeCounter))).scalar_one()
    assert counter.last_code == 103


@pytest.mark.unit
async def test_duplicate_email_is_rejected(user_factory, db_session):
    await user_factory(email="taken@example.com")

    with pytest.raises(ValidationException):
        await DriverService(db_session).create_driver(name="Otro", email="taken@example.com")


@pytest.mark.unit
async def test_resolve_by_code_and_id(driver_factory, db_session):
    driver = await driver_factory(driver_code="107")
    service = DriverService(db_session)

    assert (await service.resolve_by_code(" 107 ")).id == driver.id
    assert (await service.resolve_by_id(driver.id)).driver_code == "107"
    with pytest.raises(DriverNotFoundError):
        await service.resolve_by_code("")
    with pytest.raises(DriverNotFoundError):
        await service.resolve_by_id(driver.id + 1)


@pytest.mark.unit
async def test_get_by_user_id(driver_factory, passenger, db_session):
    driver = await driver_factory()
    service = DriverService(db_session)

    assert (await service.get_by_user_id(driver.user_id)).id == driver.id
    with pytest.raises(DriverNotFoundError):
        await service.get_by_user_id(passenger.id)


async def _payment(db_session, passenger_id, driver, route, amount, created_at):
    payment = Payment(
        passenger_id=passenger_id,
        driver_id=driver.id,
        driver_code=driver.driver_code,
        route_id=route.id,
        amount=Decimal(amount),
        created_at=created_at,
    )
    db_session.add(payment)
    await db_session.commit()
    return payment


@pytest.mark.integration
async def test_list_payments_newest_first(user_factory, driver_factory, route_factory, db_session):
    rider = await user_factory(name="Ana")
    driver = await driver_factory()
    other_driver = await driver_factory(driver_code="108", name="Otro")
    route = await route_factory(name="Ruta 2")
    now = datetime.utcnow()
    older = await _payment(db_session, rider.id, driver, route, "2.50", now - timedelta(hours=2))
    newer = await _payment(db_session, rider.id, driver, route, "2.50", now)
    await _payment(db_session, rider.id, other_driver, route, "2.50", now)
    service = DriverService(db_session)

    rows = await service.list_payments(driver)
    assert [r.payment.id for r in rows] == [newer.id, older.id]
    assert rows[0].route_name == "Ruta 2"
    assert rows[0].passenger_name == "Ana"

    page = await service.list_payments(driver, limit=1, offset=1)
    assert [r.payment.id for r in page] == [older.id]


@pytest.mark.integration
async def test_daily_summary_per_route(user_factory, driver_factory, route_factory, db_session):
    ana = await user_factory(name="Ana")
    luis = await user_factory(name="Luis")
    driver = await driver_factory()
    centro = await route_factory(name="Centro", fare="2.50")
    norte = await route_factory(name="Norte", fare="3.00")
    day = datetime(2026, 3, 10, 8, 0)
    await _payment(db_session, ana.id, driver, centro, "2.50", day)
    await _payment(db_session, ana.id, driver, centro, "2.50", day + timedelta(hours=4))
    await _payment(db_session, luis.id, driver, norte, "3.00", day + timedelta(hours=6))
    # next day, excluded
    await _payment(db_session, luis.id, driver, norte, "3.00", day + timedelta(days=1))

    summary = await DriverService(db_session).daily_summary(driver, day.date())

    assert summary.total == Decimal("8.00")
    assert summary.payments_count == 3
    assert summary.unique_passengers == 2
    by_route = {r.route_name: r for r in summary.routes}
    assert by_route["Centro"].total == Decimal("5.00")
    assert by_route["Centro"].count == 2
    assert by_route["Norte"].total == Decimal("3.00")


@pytest.mark.unit
async def test_daily_summary_empty_day(driver_factory, db_session):
    driver = await driver_factory()

    summary = await DriverService(db_session).daily_summary(driver, datetime(2026, 1, 1).date())

    assert summary.total == Decimal("0.00")
    assert summary.payments_count == 0
    assert summary.unique_passengers == 0
    assert summary.routes == []
