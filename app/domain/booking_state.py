"""Booking state machine."""

from enum import Enum

from app.core.exceptions import ConflictError


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that hold a spot against the activity's capacity
ACTIVE_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.COMPLETED}
)

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return BookingStatus(target) in BOOKING_TRANSITIONS.get(BookingStatus(current), set())


def assert_booking_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise ConflictError(
            f"Invalid booking transition: {current} → {target}",
            code="INVALID_BOOKING_STATUS",
            details={"current": current, "target": target},
        )
