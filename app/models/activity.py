"""Activity database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base
from app.models.user import utcnow

if TYPE_CHECKING:
    from app.models.booking import Booking
    from app.models.user import User


# Attendance roster, informational only; capacity is derived from bookings
activity_attendees = Table(
    "activity_attendees",
    Base.metadata,
    Column("activity_id", Uuid, ForeignKey("activities.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Activity(Base):
    """A bookable activity with a date, price and attendee capacity."""

    __tablename__ = "activities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)

    # Price in major currency units (e.g. 20.00); converted to minor units at checkout
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    max_attendees: Mapped[int] = mapped_column(Integer, nullable=False)

    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    creator: Mapped["User"] = relationship("User", foreign_keys=[created_by])
    attendees: Mapped[list["User"]] = relationship(
        "User", secondary=activity_attendees, lazy="selectin"
    )
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="activity")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_activities_price_non_negative"),
        CheckConstraint("max_attendees >= 0", name="ck_activities_max_attendees_non_negative"),
        Index("ix_activities_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<Activity(id={self.id}, name={self.name}, max_attendees={self.max_attendees})>"
