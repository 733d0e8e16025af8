"""Booking orchestration.

Coordinates local booking state with the external checkout session:
creation (capacity, duplicates, checkout, compensation), confirmation by an
admin or a payment webhook, time-gated cancellation and read projections.

Status changes are conditional updates (``UPDATE ... WHERE status IN``);
when one matches no row a concurrent request got there first, so the row
is re-read and the rules applied again.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from fastapi import BackgroundTasks
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    ExternalGatewayError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from app.domain.booking_state import BookingStatus, assert_booking_transition
from app.domain.cancellation_policy import (
    get_policy_description,
    hours_until,
    is_within_cancellation_window,
)
from app.domain.payment_state import PaymentStatus, assert_payment_transition
from app.gateways.base import CheckoutSession, PaymentGateway, WebhookEvent, WebhookEventType
from app.models.activity import Activity
from app.models.booking import Booking
from app.models.user import User, utcnow
from app.services.availability_service import count_active_bookings, find_active_booking
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

CONFIRMATION_EVENTS = frozenset(
    {
        WebhookEventType.CHECKOUT_COMPLETED.value,
        WebhookEventType.CHECKOUT_ASYNC_PAYMENT_SUCCEEDED.value,
    }
)
PAYMENT_FAILURE_EVENTS = frozenset(
    {
        WebhookEventType.CHECKOUT_ASYNC_PAYMENT_FAILED.value,
        WebhookEventType.CHECKOUT_EXPIRED.value,
    }
)


@dataclass
class CheckoutResult:
    booking_id: UUID
    url: str
    session_id: str


@dataclass
class ConfirmationResult:
    booking: Booking
    transitioned: bool


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (20.50) to minor units (2050)."""
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


class BookingService:
    """Service for the booking lifecycle."""

    def __init__(
        self,
        gateway: PaymentGateway,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utcnow,
        background_tasks: BackgroundTasks | None = None,
    ) -> None:
        self.gateway = gateway
        self.notifier = notifier
        self.clock = clock
        self.background_tasks = background_tasks

    # ==================== HELPERS ====================

    async def _get_booking(self, db: AsyncSession, booking_id: UUID) -> Booking:
        booking = await self._reload(db, booking_id)
        if not booking:
            raise NotFoundError("Booking", str(booking_id), code="BOOKING_NOT_FOUND")
        return booking

    async def _reload(self, db: AsyncSession, booking_id: UUID) -> Booking | None:
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _transition(
        self,
        db: AsyncSession,
        booking_id: UUID,
        expected: set[str],
        values: dict[str, Any],
        expected_payment: set[str] | None = None,
    ) -> bool:
        """Apply ``values`` only while the booking is in ``expected``.

        Returns:
            bool: False if the row had already moved on
        """
        stmt = update(Booking).where(
            Booking.id == booking_id,
            Booking.status.in_(sorted(expected)),
        )
        if expected_payment is not None:
            stmt = stmt.where(Booking.payment_status.in_(sorted(expected_payment)))

        result = await db.execute(
            stmt.values(**values, updated_at=self.clock()).execution_options(
                synchronize_session=False
            )
        )
        return result.rowcount == 1

    @staticmethod
    def _assert_can_view(booking: Booking, actor: User) -> None:
        if not actor.is_admin and booking.user_id != actor.id:
            raise AuthorizationError("You can only access your own bookings")

    # ==================== CREATE ====================

    async def create_booking(
        self,
        db: AsyncSession,
        activity_id: UUID,
        user_id: UUID,
    ) -> CheckoutResult:
        """Reserve a spot and open a checkout session for it.

        Args:
            db: Database session
            activity_id: Activity to book
            user_id: User the booking belongs to

        Returns:
            CheckoutResult: Booking id and where to send the payer

        Raises:
            NotFoundError: ACTIVITY_NOT_FOUND
            ConflictError: DUPLICATE_BOOKING or ACTIVITY_FULL
            ExternalGatewayError: Checkout session could not be opened
        """
        # Lock the activity row so concurrent bookings count capacity serially.
        # The lock is held through the gateway call until commit, so bookings for
        # one activity queue behind checkout latency (bounded by the gateway timeout).
        result = await db.execute(
            select(Activity).where(Activity.id == activity_id).with_for_update()
        )
        activity = result.scalar_one_or_none()
        if not activity:
            raise NotFoundError("Activity", str(activity_id), code="ACTIVITY_NOT_FOUND")

        existing = await find_active_booking(db, activity_id, user_id)
        if existing:
            raise ConflictError(
                "You already have a booking for this activity",
                code="DUPLICATE_BOOKING",
                details={"booking_id": str(existing.id)},
            )

        active = await count_active_bookings(db, activity_id)
        if active >= activity.max_attendees:
            raise ConflictError(
                "This activity is fully booked",
                code="ACTIVITY_FULL",
                details={"max_attendees": activity.max_attendees, "active_bookings": active},
            )

        booking = Booking(
            id=uuid4(),
            user_id=user_id,
            activity_id=activity.id,
            date=activity.date,
            total_amount=activity.price,
            currency=settings.payment_currency,
            status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            is_confirmed=False,
        )

        session = await self._open_checkout(booking, activity)
        booking.payment_id = session.session_id

        try:
            db.add(booking)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            await self._compensate(session.session_id, booking.id)
            raise ConflictError(
                "You already have a booking for this activity",
                code="DUPLICATE_BOOKING",
            ) from e
        except SQLAlchemyError as e:
            await db.rollback()
            await self._compensate(session.session_id, booking.id)
            raise InternalError("Failed to save booking", code="BOOKING_PERSISTENCE_FAILED") from e

        logger.info(
            f"Booking {booking.id} created for user {user_id} on activity {activity_id} "
            f"(session {session.session_id})"
        )
        return CheckoutResult(
            booking_id=booking.id,
            url=session.redirect_url,
            session_id=session.session_id,
        )

    async def _open_checkout(self, booking: Booking, activity: Activity) -> CheckoutSession:
        base = settings.frontend_url.rstrip("/")
        try:
            return await asyncio.wait_for(
                self.gateway.create_checkout_session(
                    amount=to_minor_units(booking.total_amount),
                    currency=booking.currency,
                    description=activity.name,
                    success_url=(
                        f"{base}/booking-confirmation"
                        f"?session_id={{CHECKOUT_SESSION_ID}}&booking_id={booking.id}"
                    ),
                    cancel_url=f"{base}/booking-cancelled?booking_id={booking.id}",
                    metadata={
                        "bookingId": str(booking.id),
                        "userId": str(booking.user_id),
                    },
                ),
                timeout=settings.payment_gateway_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Checkout session for booking {booking.id} timed out")
            raise ExternalGatewayError(
                self.gateway.gateway_type.value, "Timed out opening checkout session"
            ) from e

    async def _compensate(self, session_id: str, booking_id: UUID) -> None:
        """Expire a checkout session whose booking was never saved."""
        try:
            await self.gateway.expire_checkout_session(session_id)
        except Exception:
            logger.exception(
                f"orphaned payment session: session_id={session_id} booking_id={booking_id}"
            )
            return
        logger.warning(f"Expired checkout session {session_id} for unsaved booking {booking_id}")

    # ==================== CONFIRM ====================

    async def _apply_confirmation(self, db: AsyncSession, booking: Booking) -> ConfirmationResult:
        while True:
            if booking.status == BookingStatus.CONFIRMED.value:
                return ConfirmationResult(booking, transitioned=False)
            assert_booking_transition(booking.status, BookingStatus.CONFIRMED.value)

            won = await self._transition(
                db,
                booking.id,
                expected={BookingStatus.PENDING.value},
                values={
                    "status": BookingStatus.CONFIRMED.value,
                    "payment_status": PaymentStatus.COMPLETED.value,
                    "is_confirmed": True,
                    "confirmed_at": self.clock(),
                },
            )
            booking = await self._reload(db, booking.id)
            if won:
                return ConfirmationResult(booking, transitioned=True)

    async def _notify_confirmed(self, db: AsyncSession, booking: Booking) -> None:
        """Send the confirmation email, after the response when running in a request."""
        try:
            user = await db.get(User, booking.user_id)
            activity = await db.get(Activity, booking.activity_id)
        except Exception:
            logger.exception(f"Confirmation notification for booking {booking.id} failed")
            return

        if self.background_tasks is not None:
            self.background_tasks.add_task(self._send_confirmation, booking, activity, user.email)
        else:
            await self._send_confirmation(booking, activity, user.email)

    async def _send_confirmation(self, booking: Booking, activity: Activity, email: str) -> None:
        try:
            await self.notifier.send_booking_confirmation(booking, activity, email)
        except Exception:
            logger.exception(f"Confirmation notification for booking {booking.id} failed")

    async def confirm_booking(
        self,
        db: AsyncSession,
        booking_id: UUID,
        payment_status: str,
    ) -> ConfirmationResult:
        """Explicitly confirm a booking whose payment completed.

        Confirming an already confirmed booking succeeds without changes.

        Raises:
            NotFoundError: BOOKING_NOT_FOUND
            ValidationError: PAYMENT_NOT_COMPLETED
            ConflictError: INVALID_BOOKING_STATUS for cancelled/completed bookings
        """
        booking = await self._get_booking(db, booking_id)

        if payment_status != PaymentStatus.COMPLETED.value:
            raise ValidationError(
                "Payment has not been completed",
                code="PAYMENT_NOT_COMPLETED",
            )

        outcome = await self._apply_confirmation(db, booking)
        await db.commit()

        if outcome.transitioned:
            logger.info(f"Booking {booking_id} confirmed by admin")
            await self._notify_confirmed(db, outcome.booking)
        else:
            logger.info(f"Booking {booking_id} already confirmed")
        return outcome

    # ==================== WEBHOOKS ====================

    async def handle_webhook_event(self, db: AsyncSession, event: WebhookEvent) -> None:
        """Route a verified gateway event. Never raises for unknown bookings."""
        if event.type in CONFIRMATION_EVENTS:
            await self.handle_payment_confirmed(db, event)
        elif event.type in PAYMENT_FAILURE_EVENTS:
            await self.handle_payment_failed(db, event)
        else:
            logger.info(f"Ignoring webhook event {event.id} of type {event.type}")

    async def _booking_for_event(self, db: AsyncSession, event: WebhookEvent) -> Booking | None:
        raw_id = event.booking_id
        if not raw_id:
            logger.info(f"Webhook event {event.id} ({event.type}) carries no bookingId")
            return None

        try:
            booking_id = UUID(str(raw_id))
        except ValueError:
            logger.warning(f"Webhook event {event.id} has malformed bookingId {raw_id!r}")
            return None

        booking = await self._reload(db, booking_id)
        if not booking:
            logger.warning(f"Webhook event {event.id} references unknown booking {booking_id}")
            return None

        if event.session_id and booking.payment_id and event.session_id != booking.payment_id:
            logger.warning(
                f"Webhook event {event.id} session {event.session_id} does not match "
                f"booking {booking_id} session {booking.payment_id}"
            )
            return None
        return booking

    async def handle_payment_confirmed(self, db: AsyncSession, event: WebhookEvent) -> None:
        """Confirm the booking a completed checkout session belongs to."""
        booking = await self._booking_for_event(db, event)
        if booking is None:
            return

        try:
            outcome = await self._apply_confirmation(db, booking)
        except ConflictError:
            logger.warning(
                f"Payment confirmation for booking {booking.id} ignored: "
                f"booking is {booking.status}"
            )
            return

        await db.commit()

        if outcome.transitioned:
            logger.info(f"Booking {booking.id} confirmed by webhook event {event.id}")
            await self._notify_confirmed(db, outcome.booking)
        else:
            logger.info(f"Duplicate confirmation for booking {booking.id} (event {event.id})")

    async def handle_payment_failed(self, db: AsyncSession, event: WebhookEvent) -> None:
        """Mark a pending booking's payment as failed."""
        booking = await self._booking_for_event(db, event)
        if booking is None:
            return

        if booking.payment_status != PaymentStatus.PENDING.value:
            logger.info(
                f"Payment failure for booking {booking.id} ignored: "
                f"payment is {booking.payment_status}"
            )
            return

        assert_payment_transition(booking.payment_status, PaymentStatus.FAILED.value)
        won = await self._transition(
            db,
            booking.id,
            expected={BookingStatus.PENDING.value},
            expected_payment={PaymentStatus.PENDING.value},
            values={"payment_status": PaymentStatus.FAILED.value},
        )
        await db.commit()

        if won:
            logger.info(f"Payment for booking {booking.id} failed ({event.type})")
        else:
            logger.info(f"Payment failure for booking {booking.id} lost to a concurrent update")

    # ==================== CANCEL ====================

    async def cancel_booking(self, db: AsyncSession, booking_id: UUID, actor: User) -> Booking:
        """Cancel a booking at least the cancellation window before the activity.

        Raises:
            NotFoundError: BOOKING_NOT_FOUND
            AuthorizationError: Actor is neither the owner nor an admin
            ConflictError: ALREADY_CANCELLED, CANCELLATION_WINDOW_CLOSED
                or INVALID_BOOKING_STATUS
        """
        booking = await self._get_booking(db, booking_id)
        self._assert_can_view(booking, actor)

        activity = await db.get(Activity, booking.activity_id)
        window = settings.cancellation_window_hours

        while True:
            if booking.status == BookingStatus.CANCELLED.value:
                raise ConflictError("Booking is already cancelled", code="ALREADY_CANCELLED")
            assert_booking_transition(booking.status, BookingStatus.CANCELLED.value)

            now = self.clock()
            if not is_within_cancellation_window(activity.date, now, window):
                raise ConflictError(
                    f"Bookings can only be cancelled at least {window} hours before the activity",
                    code="CANCELLATION_WINDOW_CLOSED",
                    details={
                        "hours_until_activity": round(hours_until(activity.date, now), 2),
                        "policy": get_policy_description(window),
                    },
                )

            refund = (
                booking.payment_status == PaymentStatus.COMPLETED.value and booking.is_confirmed
            )
            values: dict[str, Any] = {
                "status": BookingStatus.CANCELLED.value,
                "cancelled_at": now,
                "is_confirmed": False,
            }
            if refund:
                assert_payment_transition(booking.payment_status, PaymentStatus.REFUNDED.value)
                values["payment_status"] = PaymentStatus.REFUNDED.value

            won = await self._transition(db, booking.id, expected={booking.status}, values=values)
            booking = await self._reload(db, booking.id)
            if won:
                break

        await db.commit()
        logger.info(f"Booking {booking_id} cancelled by {actor.id} (refund={refund})")

        if refund:
            await self._request_refund(booking)
        return booking

    async def _request_refund(self, booking: Booking) -> None:
        try:
            result = await self.gateway.request_refund(
                session_id=booking.payment_id,
                amount=to_minor_units(booking.total_amount),
                reason=f"Booking {booking.id} cancelled",
            )
        except Exception:
            logger.exception(f"Refund request for booking {booking.id} failed; reconcile manually")
            return

        if result.success:
            logger.info(f"Refund {result.refund_id} requested for booking {booking.id}")
        else:
            logger.error(
                f"Refund for booking {booking.id} rejected: {result.error_message}; reconcile manually"
            )

    # ==================== READ ====================

    async def get_booking(self, db: AsyncSession, booking_id: UUID, actor: User) -> Booking:
        """Booking with its activity, visible to the owner or an admin."""
        result = await db.execute(
            select(Booking)
            .options(selectinload(Booking.activity))
            .where(Booking.id == booking_id)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError("Booking", str(booking_id), code="BOOKING_NOT_FOUND")
        self._assert_can_view(booking, actor)
        return booking

    async def _paginate(
        self, db: AsyncSession, where, page: int, page_size: int
    ) -> tuple[list[Booking], int]:
        total = (
            await db.execute(select(func.count(Booking.id)).where(where))
        ).scalar_one()
        result = await db.execute(
            select(Booking)
            .options(selectinload(Booking.activity))
            .where(where)
            .order_by(Booking.created_at.desc(), Booking.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def get_user_bookings(
        self,
        db: AsyncSession,
        user_id: UUID,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Booking], int]:
        """A user's bookings, newest first."""
        return await self._paginate(db, Booking.user_id == user_id, page, page_size)

    async def get_activity_bookings(
        self,
        db: AsyncSession,
        activity_id: UUID,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Booking], int]:
        """An activity's bookings, newest first."""
        if not await db.get(Activity, activity_id):
            raise NotFoundError("Activity", str(activity_id), code="ACTIVITY_NOT_FOUND")
        return await self._paginate(db, Booking.activity_id == activity_id, page, page_size)
