"""Payment state machine."""

from enum import Enum

from app.core.exceptions import ConflictError


class PaymentStatus(str, Enum):
    """Payment status tracked alongside the booking status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    # A late success event can still settle a payment previously marked failed
    PaymentStatus.FAILED: {PaymentStatus.COMPLETED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return PaymentStatus(target) in PAYMENT_TRANSITIONS.get(PaymentStatus(current), set())


def assert_payment_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise ConflictError(
            f"Invalid payment transition: {current} → {target}",
            code="INVALID_PAYMENT_STATUS",
            details={"current": current, "target": target},
        )
