"""Database models."""

from app.models.activity import Activity, activity_attendees
from app.models.booking import Booking
from app.models.user import User, UserRole

__all__ = [
    # User
    "User",
    "UserRole",
    # Activity
    "Activity",
    "activity_attendees",
    # Booking
    "Booking",
]
