"""Cancellation window domain logic.

A booking can be cancelled while its activity starts at least
``window_hours`` from now. Activities that already started (negative
lead time) are never cancellable.
"""

from datetime import UTC, datetime, timedelta

DEFAULT_WINDOW_HOURS = 24


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def hours_until(activity_date: datetime, now: datetime) -> float:
    """Signed hours from ``now`` until ``activity_date``."""
    return (as_utc(activity_date) - as_utc(now)) / timedelta(hours=1)


def is_within_cancellation_window(
    activity_date: datetime,
    now: datetime,
    window_hours: int = DEFAULT_WINDOW_HOURS,
) -> bool:
    """Return True if cancelling at ``now`` is still allowed.

    Args:
        activity_date: When the activity starts
        now: Time of the cancellation request
        window_hours: Minimum lead time required

    Returns:
        bool: True when the activity is ``window_hours`` or more away
    """
    return as_utc(activity_date) - as_utc(now) >= timedelta(hours=window_hours)


def get_policy_description(window_hours: int = DEFAULT_WINDOW_HOURS) -> str:
    """Get human-readable policy description."""
    return (
        f"Bookings can be cancelled up to {window_hours} hours before the activity starts. "
        "Paid bookings are refunded in full."
    )
