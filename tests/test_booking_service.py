"""
Service-level booking tests with an injected clock.
"""

import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from fastapi import BackgroundTasks
from sqlalchemy import func, select, update

from app.core.exceptions import ConflictError
from app.gateways.base import WebhookEvent
from app.models.booking import Booking
from app.services.booking_service import BookingService, to_minor_units

NOW = datetime(2030, 6, 1, 12, 0, tzinfo=UTC)


def fixed_clock() -> datetime:
    return NOW


def event(booking, event_type: str, session_id: str | None = None) -> WebhookEvent:
    return WebhookEvent(
        id="evt_test",
        type=event_type,
        data={
            "id": session_id or booking.payment_id,
            "metadata": {"bookingId": str(booking.id)},
        },
    )


@pytest.fixture
def service(fake_gateway, notifier) -> BookingService:
    return BookingService(gateway=fake_gateway, notifier=notifier, clock=fixed_clock)


def test_to_minor_units():
    assert to_minor_units(Decimal("20.00")) == 2000
    assert to_minor_units(Decimal("19.99")) == 1999
    assert to_minor_units(Decimal("0")) == 0


# ==================== CANCELLATION WINDOW ====================


@pytest.mark.asyncio
async def test_cancel_exactly_at_window_edge(
    service, session_factory, test_user, make_activity, make_booking, load_booking
):
    """Exactly 24 hours ahead is still cancellable."""
    activity = await make_activity(date=NOW + timedelta(hours=24))
    booking = await make_booking(test_user, activity)

    async with session_factory() as db:
        cancelled = await service.cancel_booking(db, booking.id, test_user)

    assert cancelled.status == "cancelled"
    assert (await load_booking(booking.id)).status == "cancelled"


@pytest.mark.asyncio
async def test_cancel_one_minute_inside_window(
    service, session_factory, test_user, make_activity, make_booking, load_booking
):
    activity = await make_activity(date=NOW + timedelta(hours=23, minutes=59))
    booking = await make_booking(test_user, activity)

    async with session_factory() as db:
        with pytest.raises(ConflictError) as exc_info:
            await service.cancel_booking(db, booking.id, test_user)

    assert exc_info.value.code == "CANCELLATION_WINDOW_CLOSED"
    assert "24 hours" in exc_info.value.details["policy"]
    assert (await load_booking(booking.id)).status == "pending"


@pytest.mark.asyncio
async def test_cancel_after_activity_started(
    service, session_factory, test_user, make_activity, make_booking
):
    activity = await make_activity(date=NOW - timedelta(hours=2))
    booking = await make_booking(test_user, activity)

    async with session_factory() as db:
        with pytest.raises(ConflictError) as exc_info:
            await service.cancel_booking(db, booking.id, test_user)

    assert exc_info.value.code == "CANCELLATION_WINDOW_CLOSED"
    assert exc_info.value.details["hours_until_activity"] == -2


@pytest.mark.asyncio
async def test_refund_failure_keeps_cancellation(
    service, session_factory, fake_gateway, test_user, make_activity, make_booking, load_booking
):
    async def broken_refund(session_id, amount, reason):
        raise RuntimeError("gateway unreachable")

    fake_gateway.request_refund = broken_refund
    activity = await make_activity(date=NOW + timedelta(days=3))
    booking = await make_booking(
        test_user, activity, status="confirmed", payment_status="completed"
    )

    async with session_factory() as db:
        await service.cancel_booking(db, booking.id, test_user)

    stored = await load_booking(booking.id)
    assert stored.status == "cancelled"
    assert stored.payment_status == "refunded"


# ==================== CREATE / COMPENSATION ====================


async def count_bookings(session_factory) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count(Booking.id)))).scalar_one()


@pytest.mark.asyncio
async def test_insert_race_expires_checkout_session(
    service, session_factory, fake_gateway, test_user, test_activity
):
    """A concurrent duplicate detected at insert time expires the new session."""
    async with session_factory() as db:

        def racing_insert():
            db.add(
                Booking(
                    user_id=test_user.id,
                    activity_id=test_activity.id,
                    date=test_activity.date,
                    total_amount=test_activity.price,
                    payment_id="cs_racer",
                )
            )

        fake_gateway.on_create = racing_insert

        with pytest.raises(ConflictError) as exc_info:
            await service.create_booking(db, test_activity.id, test_user.id)

    assert exc_info.value.code == "DUPLICATE_BOOKING"
    assert fake_gateway.expired == ["cs_test_1"]
    assert await count_bookings(session_factory) == 0


@pytest.mark.asyncio
async def test_failed_expiry_logs_orphaned_session(
    service, session_factory, fake_gateway, test_user, test_activity, caplog
):
    async with session_factory() as db:

        def racing_insert():
            db.add(
                Booking(
                    user_id=test_user.id,
                    activity_id=test_activity.id,
                    date=test_activity.date,
                    total_amount=test_activity.price,
                    payment_id="cs_racer",
                )
            )

        fake_gateway.on_create = racing_insert
        fake_gateway.expire_fails = True

        with caplog.at_level(logging.ERROR, logger="app.services.booking_service"):
            with pytest.raises(ConflictError):
                await service.create_booking(db, test_activity.id, test_user.id)

    assert "orphaned payment session: session_id=cs_test_1" in caplog.text
    assert fake_gateway.expired == []


# ==================== CONFIRMATION ====================


@pytest.mark.asyncio
async def test_notification_failure_keeps_confirmation(
    service, session_factory, notifier, test_user, test_activity, make_booking, load_booking
):
    notifier.fail = True
    booking = await make_booking(test_user, test_activity)

    async with session_factory() as db:
        outcome = await service.confirm_booking(db, booking.id, "completed")

    assert outcome.transitioned is True
    stored = await load_booking(booking.id)
    assert stored.status == "confirmed"
    assert stored.is_confirmed is True


@pytest.mark.asyncio
async def test_webhook_confirmation_email_is_deferred(
    fake_gateway, session_factory, notifier, test_user, test_activity, make_booking, load_booking
):
    """The event is handled before the email goes out."""
    tasks = BackgroundTasks()
    deferred = BookingService(
        gateway=fake_gateway, notifier=notifier, clock=fixed_clock, background_tasks=tasks
    )
    booking = await make_booking(test_user, test_activity)

    async with session_factory() as db:
        await deferred.handle_webhook_event(db, event(booking, "checkout.session.completed"))

    assert (await load_booking(booking.id)).status == "confirmed"
    assert notifier.sent == []
    assert len(tasks.tasks) == 1

    await tasks()

    assert notifier.sent == [
        {"booking_id": booking.id, "activity_id": test_activity.id, "email": test_user.email}
    ]


@pytest.mark.asyncio
async def test_deferred_email_failure_is_logged(
    fake_gateway, session_factory, notifier, test_user, test_activity, make_booking, caplog
):
    notifier.fail = True
    tasks = BackgroundTasks()
    deferred = BookingService(
        gateway=fake_gateway, notifier=notifier, clock=fixed_clock, background_tasks=tasks
    )
    booking = await make_booking(test_user, test_activity)

    async with session_factory() as db:
        await deferred.confirm_booking(db, booking.id, "completed")

    with caplog.at_level(logging.ERROR, logger="app.services.booking_service"):
        await tasks()

    assert f"Confirmation notification for booking {booking.id} failed" in caplog.text


@pytest.mark.asyncio
async def test_confirmation_timestamps_come_from_clock(
    service, session_factory, test_user, test_activity, make_booking, load_booking
):
    booking = await make_booking(test_user, test_activity)

    async with session_factory() as db:
        await service.confirm_booking(db, booking.id, "completed")

    stored = await load_booking(booking.id)
    assert stored.confirmed_at.replace(tzinfo=UTC) == NOW


@pytest.mark.asyncio
async def test_failed_payment_then_late_success(
    service, session_factory, notifier, test_user, test_activity, make_booking, load_booking
):
    booking = await make_booking(test_user, test_activity)

    async with session_factory() as db:
        await service.handle_webhook_event(
            db, event(booking, "checkout.session.async_payment_failed")
        )
    stored = await load_booking(booking.id)
    assert stored.status == "pending"
    assert stored.payment_status == "failed"

    async with session_factory() as db:
        await service.handle_webhook_event(
            db, event(booking, "checkout.session.async_payment_succeeded")
        )
    stored = await load_booking(booking.id)
    assert stored.status == "confirmed"
    assert stored.payment_status == "completed"
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_expired_session_marks_payment_failed(
    service, session_factory, test_user, test_activity, make_booking, load_booking
):
    booking = await make_booking(test_user, test_activity)

    async with session_factory() as db:
        await service.handle_webhook_event(db, event(booking, "checkout.session.expired"))

    assert (await load_booking(booking.id)).payment_status == "failed"


@pytest.mark.asyncio
async def test_failure_event_after_confirmation_is_ignored(
    service, session_factory, test_user, test_activity, make_booking, load_booking
):
    booking = await make_booking(
        test_user, test_activity, status="confirmed", payment_status="completed"
    )

    async with session_factory() as db:
        await service.handle_webhook_event(
            db, event(booking, "checkout.session.async_payment_failed")
        )

    stored = await load_booking(booking.id)
    assert stored.status == "confirmed"
    assert stored.payment_status == "completed"


@pytest.mark.asyncio
async def test_event_for_unknown_booking_is_ignored(service, session_factory, notifier):
    unknown = WebhookEvent(
        id="evt_unknown",
        type="checkout.session.completed",
        data={"id": "cs_nope", "metadata": {"bookingId": "00000000-0000-0000-0000-00000000dead"}},
    )

    async with session_factory() as db:
        await service.handle_webhook_event(db, unknown)

    assert notifier.sent == []
    assert await count_bookings(session_factory) == 0


@pytest.mark.asyncio
async def test_unhandled_event_type_is_ignored(
    service, session_factory, test_user, test_activity, make_booking, load_booking
):
    booking = await make_booking(test_user, test_activity)

    async with session_factory() as db:
        await service.handle_webhook_event(db, event(booking, "payment_intent.created"))

    assert (await load_booking(booking.id)).status == "pending"


# ==================== LOST RACES ====================


def race_first_transition(monkeypatch, service, **values):
    """Commit ``values`` to the booking just before the service's first conditional update."""
    transition = service._transition
    raced = False

    async def racing_transition(session, booking_id, *args, **kwargs):
        nonlocal raced
        if not raced:
            raced = True
            await session.execute(update(Booking).where(Booking.id == booking_id).values(**values))
            await session.commit()
        return await transition(session, booking_id, *args, **kwargs)

    monkeypatch.setattr(service, "_transition", racing_transition)


@pytest.mark.asyncio
async def test_confirm_loses_to_concurrent_cancel(
    service, session_factory, notifier, monkeypatch, test_user, test_activity, make_booking,
    load_booking,
):
    booking = await make_booking(test_user, test_activity)

    async with session_factory() as db:
        race_first_transition(monkeypatch, service, status="cancelled", cancelled_at=NOW)
        with pytest.raises(ConflictError) as exc_info:
            await service.confirm_booking(db, booking.id, "completed")

    assert exc_info.value.code == "INVALID_BOOKING_STATUS"
    stored = await load_booking(booking.id)
    assert stored.status == "cancelled"
    assert stored.payment_status == "pending"
    assert stored.is_confirmed is False
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_cancel_retries_after_concurrent_confirm(
    service, session_factory, fake_gateway, monkeypatch, test_user, make_activity, make_booking,
    load_booking,
):
    """A cancel that read the booking as pending refunds the payment that landed meanwhile."""
    activity = await make_activity(date=NOW + timedelta(days=3))
    booking = await make_booking(test_user, activity)

    async with session_factory() as db:
        race_first_transition(
            monkeypatch,
            service,
            status="confirmed",
            payment_status="completed",
            is_confirmed=True,
            confirmed_at=NOW,
        )
        cancelled = await service.cancel_booking(db, booking.id, test_user)

    assert cancelled.status == "cancelled"
    stored = await load_booking(booking.id)
    assert stored.status == "cancelled"
    assert stored.payment_status == "refunded"
    assert stored.is_confirmed is False
    assert fake_gateway.refunds == [
        {
            "session_id": booking.payment_id,
            "amount": 2000,
            "reason": f"Booking {booking.id} cancelled",
        }
    ]
