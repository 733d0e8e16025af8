"""Webhook endpoint for payment gateways.

The body is read raw so the gateway signature can be checked over the exact
bytes that were signed. Once the signature checks out the endpoint always
acknowledges with 200; what happens to the booking is logged, never
reported back to the gateway.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_service, get_db
from app.services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", status_code=status.HTTP_200_OK)
async def payment_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    booking_service: Annotated[BookingService, Depends(get_booking_service)],
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    payment_signature: str | None = Header(None, alias="X-Payment-Signature"),
) -> dict:
    """Handle checkout session events."""
    payload = await request.body()

    # Raises WebhookSignatureError (400) or ExternalGatewayError (503)
    event = booking_service.gateway.verify_webhook(payload, stripe_signature or payment_signature)
    logger.info(f"Webhook event {event.id} received: {event.type}")

    try:
        await booking_service.handle_webhook_event(db, event)
    except Exception:
        await db.rollback()
        logger.exception(f"Webhook event {event.id} could not be processed")

    return {"received": True}
