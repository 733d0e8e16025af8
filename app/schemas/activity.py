"""Activity-related Pydantic schemas."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _aware(v: datetime | None) -> datetime | None:
    # Naive datetimes are taken as UTC
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=UTC)
    return v


class ActivityCreate(BaseModel):
    """Schema for creating an activity."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    date: datetime
    location: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    max_attendees: int = Field(..., ge=0)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: datetime) -> datetime:
        return _aware(v)


class ActivityUpdate(BaseModel):
    """Schema for partially updating an activity."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, min_length=1)
    date: datetime | None = None
    location: str | None = Field(None, min_length=1, max_length=255)
    price: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    max_attendees: int | None = Field(None, ge=0)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: datetime | None) -> datetime | None:
        return _aware(v)

    @model_validator(mode="after")
    def require_a_field(self) -> "ActivityUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self


class AttendanceCreate(BaseModel):
    """Schema for adding a user to an activity's roster."""

    user_id: UUID


class AttendeeSummary(BaseModel):
    """Roster entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str


class ActivityResponse(BaseModel):
    """Schema for activity response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str
    date: datetime
    location: str
    price: Decimal
    max_attendees: int
    created_by: UUID
    attendees: list[AttendeeSummary] = []
    created_at: datetime
    updated_at: datetime


class ActivitySummary(BaseModel):
    """Activity fields embedded in booking projections."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    date: datetime
    location: str
    price: Decimal


class ActivityBookingStats(BaseModel):
    """Per-activity line of the activity report."""

    id: UUID
    name: str
    date: datetime
    location: str
    max_attendees: int
    attendee_count: int
    total_bookings: int
    active_bookings: int


class ActivityReport(BaseModel):
    """Aggregate report over all activities."""

    total_activities: int
    upcoming_activities: int
    past_activities: int
    average_attendance: float
    activities_by_location: dict[str, int]
    activities: list[ActivityBookingStats]
