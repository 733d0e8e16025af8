"""Availability and eligibility checks.

Read-only: capacity is derived by counting a booking against its activity
while the booking is pending, confirmed or completed.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.domain.booking_state import ACTIVE_STATUSES
from app.models.activity import Activity
from app.models.booking import Booking

ACTIVE_STATUS_VALUES = sorted(status.value for status in ACTIVE_STATUSES)


@dataclass
class Availability:
    activity_id: UUID
    available: bool
    remaining_spots: int
    max_attendees: int
    active_bookings: int


@dataclass
class Eligibility(Availability):
    user_id: UUID | None = None
    already_booked: bool = False
    existing_booking_id: UUID | None = None

    @property
    def can_book(self) -> bool:
        return self.available and not self.already_booked


async def count_active_bookings(db: AsyncSession, activity_id: UUID) -> int:
    """Number of bookings holding a spot on ``activity_id``."""
    result = await db.execute(
        select(func.count(Booking.id)).where(
            Booking.activity_id == activity_id,
            Booking.status.in_(ACTIVE_STATUS_VALUES),
        )
    )
    return result.scalar_one()


async def find_active_booking(
    db: AsyncSession, activity_id: UUID, user_id: UUID
) -> Booking | None:
    """The user's non-cancelled booking on the activity, if any."""
    result = await db.execute(
        select(Booking).where(
            Booking.activity_id == activity_id,
            Booking.user_id == user_id,
            Booking.status.in_(ACTIVE_STATUS_VALUES),
        )
    )
    return result.scalar_one_or_none()


def build_availability(activity: Activity, active_bookings: int) -> Availability:
    remaining = max(activity.max_attendees - active_bookings, 0)
    return Availability(
        activity_id=activity.id,
        available=remaining > 0,
        remaining_spots=remaining,
        max_attendees=activity.max_attendees,
        active_bookings=active_bookings,
    )


class AvailabilityService:
    """Service answering "how many spots remain" and "can this user book"."""

    async def _get_activity(self, db: AsyncSession, activity_id: UUID) -> Activity:
        activity = await db.get(Activity, activity_id)
        if not activity:
            raise NotFoundError("Activity", str(activity_id), code="ACTIVITY_NOT_FOUND")
        return activity

    async def check_availability(self, db: AsyncSession, activity_id: UUID) -> Availability:
        """Remaining capacity of an activity.

        Raises:
            NotFoundError: If the activity does not exist
        """
        activity = await self._get_activity(db, activity_id)
        active = await count_active_bookings(db, activity_id)
        return build_availability(activity, active)

    async def check_eligibility(
        self,
        db: AsyncSession,
        activity_id: UUID,
        user_id: UUID,
    ) -> Eligibility:
        """Availability plus the user's existing booking, if any."""
        availability = await self.check_availability(db, activity_id)
        existing = await find_active_booking(db, activity_id, user_id)
        return Eligibility(
            **vars(availability),
            user_id=user_id,
            already_booked=existing is not None,
            existing_booking_id=existing.id if existing else None,
        )


availability_service = AvailabilityService()
