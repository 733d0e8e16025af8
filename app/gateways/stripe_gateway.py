"""Stripe payment gateway adapter."""

import asyncio
import json
import logging

import stripe

from app.config import settings
from app.core.exceptions import ExternalGatewayError, WebhookSignatureError
from app.gateways.base import (
    CheckoutSession,
    GatewayType,
    PaymentGateway,
    RefundResult,
    WebhookEvent,
)

logger = logging.getLogger(__name__)

# Seconds of clock skew tolerated on webhook timestamps
WEBHOOK_TOLERANCE = 300


class StripeGateway(PaymentGateway):
    """Stripe Checkout implementation."""

    def __init__(
        self,
        secret_key: str | None = None,
        webhook_secret: str | None = None,
    ):
        self.secret_key = secret_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    def _require_key(self) -> str:
        if not self.secret_key:
            raise ExternalGatewayError("stripe", "Stripe not configured", retryable=False)
        return self.secret_key

    async def create_checkout_session(
        self,
        amount: int,
        currency: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str] | None = None,
    ) -> CheckoutSession:
        """Create a Stripe Checkout Session in payment mode."""
        api_key = self._require_key()

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "product_data": {"name": description},
                            "unit_amount": amount,
                        },
                        "quantity": 1,
                    }
                ],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata or {},
            )
        except stripe.StripeError as e:
            raise ExternalGatewayError("stripe", str(e)) from e

        return CheckoutSession(
            session_id=session.id,
            redirect_url=session.url,
            raw_response={"id": session.id, "status": session.status},
        )

    async def expire_checkout_session(self, session_id: str) -> None:
        """Expire an unpaid Stripe Checkout Session."""
        api_key = self._require_key()

        try:
            await asyncio.to_thread(stripe.checkout.Session.expire, session_id, api_key=api_key)
        except stripe.StripeError as e:
            raise ExternalGatewayError("stripe", str(e), retryable=False) from e

    async def request_refund(
        self,
        session_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Refund the PaymentIntent behind a completed Checkout Session."""
        if not self.secret_key:
            return RefundResult(
                success=False,
                error_message="Stripe not configured",
            )

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.retrieve, session_id, api_key=self.secret_key
            )
            if not session.payment_intent:
                return RefundResult(
                    success=False,
                    error_message="Checkout session has no payment to refund",
                )

            refund = await asyncio.to_thread(
                stripe.Refund.create,
                api_key=self.secret_key,
                payment_intent=session.payment_intent,
                amount=amount,
                reason="requested_by_customer",
                metadata={"reason": reason[:500]},
            )

            return RefundResult(
                success=refund.status in ("succeeded", "pending"),
                refund_id=refund.id,
                raw_response={"status": refund.status, "id": refund.id},
            )

        except stripe.StripeError as e:
            return RefundResult(
                success=False,
                error_message=str(e),
            )

    def verify_webhook(
        self,
        payload: bytes,
        signature: str | None,
    ) -> WebhookEvent:
        """Verify the Stripe-Signature header and parse the event body."""
        if not self.webhook_secret:
            raise ExternalGatewayError("stripe", "Stripe webhook secret is not configured", retryable=False)
        if not signature:
            raise WebhookSignatureError("stripe", "Missing Stripe-Signature header")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                self.webhook_secret,
                WEBHOOK_TOLERANCE,
            )
            body = json.loads(payload)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError("stripe", str(e)) from e
        except (UnicodeDecodeError, ValueError) as e:
            raise WebhookSignatureError("stripe", "Invalid payload") from e

        return WebhookEvent(
            id=body.get("id", ""),
            type=body.get("type", ""),
            data=(body.get("data") or {}).get("object") or {},
        )
