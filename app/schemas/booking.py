"""Booking-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.activity import ActivitySummary


class BookingCreate(BaseModel):
    """Schema for creating a booking.

    ``user_id`` lets an admin book on behalf of another user; for everyone
    else it must be omitted or equal to the caller.
    """

    activity_id: UUID
    user_id: UUID | None = None


class BookingConfirm(BaseModel):
    """Schema for an explicit (admin) confirmation."""

    payment_status: Literal["pending", "completed", "failed"]


class CheckoutResponse(BaseModel):
    """Where to send the payer after a booking is created."""

    booking_id: UUID
    url: str
    session_id: str


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    activity_id: UUID
    date: datetime
    total_amount: Decimal
    currency: str

    # Status
    status: str
    payment_status: str
    is_confirmed: bool
    payment_id: str | None

    # Timestamps
    confirmed_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime


class BookingDetailResponse(BookingResponse):
    """Booking with its activity summary."""

    activity: ActivitySummary


class AvailabilityResponse(BaseModel):
    """Remaining capacity of an activity."""

    activity_id: UUID
    available: bool
    remaining_spots: int = Field(..., ge=0)
    max_attendees: int
    active_bookings: int


class EligibilityResponse(AvailabilityResponse):
    """Availability plus whether this user may book."""

    user_id: UUID
    already_booked: bool
    existing_booking_id: UUID | None = None
    can_book: bool
