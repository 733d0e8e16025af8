"""Manual payment gateway adapter for local development and offline payments.

Checkout sessions are issued locally and payment is confirmed either by an
admin or by posting an HMAC-SHA256 signed event to the webhook endpoint.
"""

import hashlib
import hmac
import json
import logging
import uuid
from urllib.parse import urlencode

from app.config import settings
from app.core.exceptions import WebhookSignatureError
from app.gateways.base import (
    CheckoutSession,
    GatewayType,
    PaymentGateway,
    RefundResult,
    WebhookEvent,
)

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


class ManualGateway(PaymentGateway):
    """Manual gateway: sessions need admin or signed-webhook confirmation."""

    def __init__(self, webhook_secret: str | None = None, checkout_base_url: str | None = None):
        self.webhook_secret = webhook_secret or settings.payment_webhook_secret
        self.checkout_base_url = checkout_base_url or f"{settings.frontend_url}/checkout/manual"

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.MANUAL

    async def create_checkout_session(
        self,
        amount: int,
        currency: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str] | None = None,
    ) -> CheckoutSession:
        """Issue a local checkout session (always succeeds).

        Sessions opened for a booking are named after it, so the id can be
        derived from the booking when confirming by hand.
        """
        booking_id = (metadata or {}).get("bookingId")
        session_id = f"manual_{booking_id or uuid.uuid4().hex}"
        query = urlencode({"session_id": session_id, "amount": amount, "currency": currency.lower()})
        return CheckoutSession(
            session_id=session_id,
            redirect_url=f"{self.checkout_base_url}?{query}",
            raw_response={
                "type": "manual",
                "status": "open",
                "description": description,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata or {},
            },
        )

    async def expire_checkout_session(self, session_id: str) -> None:
        """Nothing to expire remotely; the session simply goes unused."""
        logger.info(f"Manual checkout session {session_id} expired")

    async def request_refund(
        self,
        session_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Record a manual refund (requires admin action)."""
        return RefundResult(
            success=True,
            refund_id=f"refund_{session_id}",
            raw_response={
                "type": "manual_refund",
                "status": "pending",
                "note": "Admin must return funds manually",
                "amount": amount,
                "reason": reason,
            },
        )

    def sign_payload(self, payload: bytes) -> str:
        """Signature header value for ``payload``."""
        digest = hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()
        return f"{SIGNATURE_PREFIX}{digest}"

    def verify_webhook(
        self,
        payload: bytes,
        signature: str | None,
    ) -> WebhookEvent:
        """Verify an HMAC-SHA256 signed event."""
        if not signature:
            raise WebhookSignatureError("manual", "Missing signature header")

        if not hmac.compare_digest(self.sign_payload(payload), signature.strip()):
            raise WebhookSignatureError("manual")

        try:
            body = json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError("manual", "Invalid payload") from e

        return WebhookEvent(
            id=body.get("id") or f"evt_{uuid.uuid4().hex}",
            type=body.get("type", ""),
            data=(body.get("data") or {}).get("object") or {},
        )
