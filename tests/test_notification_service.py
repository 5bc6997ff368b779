"""
Tests for NotificationService (the per-user notification log).
"""
import pytest

from rutapay.core.config import settings
from rutapay.core.exceptions import ForbiddenError, NotificationNotFoundError
from rutapay.db.models.notification import NotificationType
from rutapay.db.models.user import UserRole
from rutapay.domain.services.notification_service import (
    NotificationService,
    clamp_limit,
    resolve_admin_type_filter,
)


@pytest.mark.unit
def test_clamp_limit(monkeypatch):
    monkeypatch.setattr(settings, "NOTIFICATIONS_DEFAULT_LIMIT", 20)
    monkeypatch.setattr(settings, "NOTIFICATIONS_MAX_LIMIT", 100)

    assert clamp_limit(None) == 20
    assert clamp_limit(0) == 20
    assert clamp_limit(5) == 5
    assert clamp_limit(5000) == 100


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw, expected",
    [
        ("recharge", NotificationType.RECHARGE_PENDING),
        ("RECHARGE_PENDING", NotificationType.RECHARGE_PENDING),
        ("recharge_confirmed", NotificationType.RECHARGE_CONFIRMED),
        ("payment", NotificationType.PAYMENT),
        ("payment_received", NotificationType.PAYMENT),
        ("unknown", None),
        ("", None),
        (None, None),
    ],
)
def test_resolve_admin_type_filter(raw, expected):
    assert resolve_admin_type_filter(raw) == expected


@pytest.mark.unit
async def test_exists_for_event_matches_type_and_entity(passenger, notification_factory, db_session):
    await notification_factory(
        user_id=passenger.id,
        title="Recarga confirmada",
        data={"type": "recharge_confirmed", "recharge_id": 7},
    )
    service = NotificationService(db_session)

    assert await service.exists_for_event(NotificationType.RECHARGE_CONFIRMED, 7) is True
    assert await service.exists_for_event(NotificationType.RECHARGE_CONFIRMED, 8) is False
    assert await service.exists_for_event(NotificationType.RECHARGE_REJECTED, 7) is False
    assert await service.exists_for_event(
        NotificationType.RECHARGE_CONFIRMED, 7, user_id=passenger.id + 1
    ) is False


@pytest.mark.unit
async def test_exists_for_event_legacy_title(passenger, notification_factory, db_session):
    await notification_factory(
        user_id=passenger.id,
        title="Recarga confirmada",
        data={"recharge_id": 3},
    )
    service = NotificationService(db_session)

    assert await service.exists_for_event(NotificationType.RECHARGE_CONFIRMED, 3) is False
    assert await service.exists_for_event(
        NotificationType.RECHARGE_CONFIRMED, 3, legacy_title="Recarga confirmada"
    ) is True


@pytest.mark.unit
async def test_exists_for_payment_uses_payment_id(passenger, notification_factory, db_session):
    await notification_factory(user_id=passenger.id, data={"type": "payment", "payment_id": 11})
    service = NotificationService(db_session)

    assert await service.exists_for_event(NotificationType.PAYMENT, 11) is True
    assert await service.exists_for_event("payment", 12) is False


@pytest.mark.unit
async def test_list_for_user_newest_first_with_offset(passenger, user_factory, notification_factory, db_session):
    other = await user_factory(name="Otro")
    first = await notification_factory(user_id=passenger.id, title="uno")
    second = await notification_factory(user_id=passenger.id, title="dos", read=True)
    third = await notification_factory(user_id=passenger.id, title="tres")
    await notification_factory(user_id=other.id, title="ajena")
    service = NotificationService(db_session)

    items = await service.list_for_user(passenger.id)
    assert [n.id for n in items] == [third.id, second.id, first.id]

    page = await service.list_for_user(passenger.id, limit=1, offset=1)
    assert [n.id for n in page] == [second.id]

    unread = await service.list_for_user(passenger.id, unread_only=True)
    assert [n.id for n in unread] == [third.id, first.id]

    assert await service.unread_count(passenger.id) == 2


@pytest.mark.unit
async def test_mark_read_by_owner(passenger, notification_factory, db_session):
    first = await notification_factory(user_id=passenger.id)
    await notification_factory(user_id=passenger.id)
    service = NotificationService(db_session)

    notification, unread = await service.mark_read(first.id, passenger.id, UserRole.PASSENGER)

    assert notification.read is True
    assert unread == 1


@pytest.mark.unit
async def test_mark_read_already_read_returns_current_state(passenger, notification_factory, db_session):
    seen = await notification_factory(user_id=passenger.id, read=True)
    service = NotificationService(db_session)

    notification, unread = await service.mark_read(seen.id, passenger.id, UserRole.PASSENGER)

    assert notification.id == seen.id
    assert notification.read is True
    assert unread == 0


@pytest.mark.unit
async def test_mark_read_of_someone_else_is_forbidden(passenger, user_factory, notification_factory, db_session):
    intruder = await user_factory(name="Intruso")
    notification = await notification_factory(user_id=passenger.id)

    with pytest.raises(ForbiddenError):
        await NotificationService(db_session).mark_read(notification.id, intruder.id, UserRole.PASSENGER)


@pytest.mark.unit
async def test_admin_may_mark_any_notification(passenger, admin_user, notification_factory, db_session):
    notification = await notification_factory(user_id=passenger.id)

    marked, unread = await NotificationService(db_session).mark_read(
        notification.id, admin_user.id, UserRole.ADMIN
    )

    assert marked.read is True
    assert unread == 0


@pytest.mark.unit
async def test_mark_read_unknown_id(passenger, db_session):
    with pytest.raises(NotificationNotFoundError):
        await NotificationService(db_session).mark_read(999, passenger.id, UserRole.PASSENGER)


@pytest.mark.unit
async def test_list_for_admin_with_type_filter(passenger, admin_user, notification_factory, db_session):
    pending = await notification_factory(
        user_id=admin_user.id, data={"type": "recharge_pending", "recharge_id": 1}
    )
    await notification_factory(user_id=passenger.id, data={"type": "payment", "payment_id": 1})
    service = NotificationService(db_session)

    everything = await service.list_for_admin()
    assert len(everything) == 2

    filtered = await service.list_for_admin(event_type="recharge")
    assert [n.id for n, _, _ in filtered] == [pending.id]
    assert filtered[0][1] == "Admin"
    assert filtered[0][2] == "admin@example.com"
