"""Base payment gateway interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class GatewayType(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    MANUAL = "manual"


class WebhookEventType(str, Enum):
    """Webhook events the booking flow reacts to."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    CHECKOUT_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
    CHECKOUT_ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
    CHECKOUT_EXPIRED = "checkout.session.expired"


@dataclass
class CheckoutSession:
    """A hosted checkout session opened with the gateway."""

    session_id: str
    redirect_url: str
    raw_response: dict | None = None


@dataclass
class RefundResult:
    """Result of a refund operation."""

    success: bool
    refund_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


@dataclass
class WebhookEvent:
    """A verified webhook event."""

    id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def metadata(self) -> dict[str, Any]:
        return self.data.get("metadata") or {}

    @property
    def booking_id(self) -> str | None:
        return self.metadata.get("bookingId")

    @property
    def session_id(self) -> str | None:
        return self.data.get("id")


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""
        pass

    @abstractmethod
    async def create_checkout_session(
        self,
        amount: int,
        currency: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str] | None = None,
    ) -> CheckoutSession:
        """Open a hosted checkout session.

        Args:
            amount: Amount in smallest currency unit (cents)
            currency: Currency code (usd)
            description: Line item name shown to the payer
            success_url: Redirect target after payment
            cancel_url: Redirect target if the payer abandons checkout
            metadata: Echoed back on webhook events (bookingId, userId)

        Returns:
            CheckoutSession with the session id and payer redirect URL

        Raises:
            ExternalGatewayError: If the gateway rejects or fails the request
        """
        pass

    @abstractmethod
    async def expire_checkout_session(self, session_id: str) -> None:
        """Expire an open checkout session so it can no longer be paid.

        Raises:
            ExternalGatewayError: If the session could not be expired
        """
        pass

    @abstractmethod
    async def request_refund(
        self,
        session_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Refund the payment collected by a checkout session.

        Args:
            session_id: Checkout session that collected the payment
            amount: Refund amount in smallest currency unit
            reason: Refund reason

        Returns:
            RefundResult with refund details
        """
        pass

    @abstractmethod
    def verify_webhook(
        self,
        payload: bytes,
        signature: str | None,
    ) -> WebhookEvent:
        """Verify webhook signature and parse payload.

        Args:
            payload: Raw request body
            signature: Webhook signature header

        Returns:
            Parsed event

        Raises:
            WebhookSignatureError: If the signature or payload is invalid
        """
        pass
