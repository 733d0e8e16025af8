"""Booking-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base
from app.models.user import utcnow

if TYPE_CHECKING:
    from app.models.activity import Activity
    from app.models.user import User

ACTIVE_BOOKING_PREDICATE = text("status <> 'cancelled'")


class Booking(Base):
    """A user's reservation against an activity."""

    __tablename__ = "bookings"

    # Assigned before the checkout session is opened so redirects can reference it
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("activities.id"), nullable=False, index=True
    )

    # Snapshots taken from the activity at booking time
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")

    # Status
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", index=True
    )  # pending, confirmed, cancelled, completed
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # pending, completed, failed, refunded
    is_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # External checkout session id
    payment_id: Mapped[str | None] = mapped_column(String(255), unique=True, index=True)

    # Timestamps
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="bookings")
    activity: Mapped["Activity"] = relationship("Activity", back_populates="bookings")

    __table_args__ = (
        # One active booking per user per activity
        Index(
            "uq_bookings_active_user_activity",
            "user_id",
            "activity_id",
            unique=True,
            postgresql_where=ACTIVE_BOOKING_PREDICATE,
            sqlite_where=ACTIVE_BOOKING_PREDICATE,
        ),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'completed', 'failed', 'refunded')",
            name="ck_bookings_payment_status",
        ),
        CheckConstraint("total_amount >= 0", name="ck_bookings_total_amount_non_negative"),
        CheckConstraint(
            "status <> 'confirmed' OR payment_status = 'completed'",
            name="ck_bookings_confirmed_requires_payment",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, user={self.user_id}, activity={self.activity_id}, "
            f"status={self.status}, payment_status={self.payment_status})>"
        )
