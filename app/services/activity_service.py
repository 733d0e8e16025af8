"""Activity management and reporting service."""

import logging
from collections import Counter
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError
from app.domain.cancellation_policy import as_utc
from app.models.activity import Activity
from app.models.booking import Booking
from app.models.user import User, utcnow
from app.schemas.activity import (
    ActivityBookingStats,
    ActivityCreate,
    ActivityReport,
    ActivityUpdate,
)
from app.services.availability_service import ACTIVE_STATUS_VALUES, count_active_bookings

logger = logging.getLogger(__name__)


class ActivityService:
    """Service for admin activity operations."""

    async def get_activity(self, db: AsyncSession, activity_id: UUID) -> Activity:
        activity = await db.get(Activity, activity_id)
        if not activity:
            raise NotFoundError("Activity", str(activity_id), code="ACTIVITY_NOT_FOUND")
        return activity

    async def create_activity(
        self,
        db: AsyncSession,
        data: ActivityCreate,
        creator: User,
    ) -> Activity:
        """Create an activity owned by ``creator``."""
        activity = Activity(**data.model_dump(), created_by=creator.id, attendees=[])
        db.add(activity)
        await db.flush()
        logger.info(f"Activity {activity.id} created by {creator.id}")
        return activity

    async def list_activities(
        self,
        db: AsyncSession,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Activity], int]:
        """Activities ordered by date, soonest first."""
        total = (await db.execute(select(func.count(Activity.id)))).scalar_one()
        result = await db.execute(
            select(Activity)
            .order_by(Activity.date.asc(), Activity.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def update_activity(
        self,
        db: AsyncSession,
        activity_id: UUID,
        data: ActivityUpdate,
    ) -> Activity:
        """Apply the provided fields to an activity."""
        activity = await self.get_activity(db, activity_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(activity, field, value)
        activity.updated_at = utcnow()
        await db.flush()
        logger.info(f"Activity {activity_id} updated")
        return activity

    async def delete_activity(self, db: AsyncSession, activity_id: UUID) -> None:
        """Delete an activity that has never been booked.

        Raises:
            ConflictError: ACTIVITY_HAS_BOOKINGS
        """
        activity = await self.get_activity(db, activity_id)

        total = (
            await db.execute(
                select(func.count(Booking.id)).where(Booking.activity_id == activity_id)
            )
        ).scalar_one()
        if total:
            active = await count_active_bookings(db, activity_id)
            raise ConflictError(
                "Activity has bookings and cannot be deleted",
                code="ACTIVITY_HAS_BOOKINGS",
                details={"total_bookings": total, "active_bookings": active},
            )

        await db.delete(activity)
        await db.flush()
        logger.info(f"Activity {activity_id} deleted")

    async def track_attendance(
        self,
        db: AsyncSession,
        activity_id: UUID,
        user_id: UUID,
    ) -> Activity:
        """Add a user to the attendance roster (no-op if already present)."""
        activity = await self.get_activity(db, activity_id)
        user = await db.get(User, user_id)
        if not user:
            raise NotFoundError("User", str(user_id), code="USER_NOT_FOUND")

        if all(attendee.id != user_id for attendee in activity.attendees):
            activity.attendees.append(user)
            await db.flush()
            logger.info(f"Attendance tracked for user {user_id} on activity {activity_id}")
        return activity

    async def generate_report(self, db: AsyncSession) -> ActivityReport:
        """Summary statistics over every activity."""
        activities = (
            await db.execute(select(Activity).order_by(Activity.date.desc()))
        ).scalars().all()
        if not activities:
            raise NotFoundError("Activities", code="NO_ACTIVITIES")

        rows = await db.execute(
            select(
                Booking.activity_id,
                func.count(Booking.id),
                func.sum(case((Booking.status.in_(ACTIVE_STATUS_VALUES), 1), else_=0)),
            ).group_by(Booking.activity_id)
        )
        counts = {activity_id: (total, active or 0) for activity_id, total, active in rows}

        now = utcnow()
        upcoming = sum(1 for a in activities if as_utc(a.date) > now)
        attendance = [len(a.attendees) for a in activities]

        return ActivityReport(
            total_activities=len(activities),
            upcoming_activities=upcoming,
            past_activities=len(activities) - upcoming,
            average_attendance=round(sum(attendance) / len(activities), 2),
            activities_by_location=dict(Counter(a.location for a in activities)),
            activities=[
                ActivityBookingStats(
                    id=a.id,
                    name=a.name,
                    date=a.date,
                    location=a.location,
                    max_attendees=a.max_attendees,
                    attendee_count=len(a.attendees),
                    total_bookings=counts.get(a.id, (0, 0))[0],
                    active_bookings=counts.get(a.id, (0, 0))[1],
                )
                for a in activities
            ],
        )


activity_service = ActivityService()
