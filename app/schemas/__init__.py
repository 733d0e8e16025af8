"""Pydantic schemas for API validation."""

from app.schemas.activity import (
    ActivityCreate,
    ActivityReport,
    ActivityResponse,
    ActivitySummary,
    ActivityUpdate,
    AttendanceCreate,
)
from app.schemas.booking import (
    AvailabilityResponse,
    BookingConfirm,
    BookingCreate,
    BookingDetailResponse,
    BookingResponse,
    CheckoutResponse,
    EligibilityResponse,
)
from app.schemas.common import ApiResponse, Page
from app.schemas.user import (
    TokenResponse,
    UserCreate,
    UserLogin,
    UserResponse,
)

__all__ = [
    # Common
    "ApiResponse",
    "Page",
    # User
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "TokenResponse",
    # Activity
    "ActivityCreate",
    "ActivityUpdate",
    "ActivityResponse",
    "ActivitySummary",
    "ActivityReport",
    "AttendanceCreate",
    # Booking
    "BookingCreate",
    "BookingConfirm",
    "BookingResponse",
    "BookingDetailResponse",
    "CheckoutResponse",
    "AvailabilityResponse",
    "EligibilityResponse",
]
