"""
Tests for the payment webhook endpoint.
"""

import hashlib
import hmac
import json
import time

import pytest

from app.config import settings
from app.gateways.stripe_gateway import StripeGateway
from app.main import app
from app.services.gateway_service import get_payment_gateway

WEBHOOK_URL = "/api/v1/webhooks/payments"


@pytest.mark.asyncio
async def test_invalid_signature_rejected(client, test_user, test_activity, make_booking, make_event, load_booking):
    booking = await make_booking(test_user, test_activity)
    payload = json.dumps(make_event(booking.id, booking.payment_id)).encode()

    response = await client.post(
        WEBHOOK_URL,
        content=payload,
        headers={"X-Payment-Signature": "sha256=deadbeef"},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_WEBHOOK_SIGNATURE"
    assert (await load_booking(booking.id)).status == "pending"


@pytest.mark.asyncio
async def test_missing_signature_rejected(client, make_event):
    payload = json.dumps(make_event("00000000-0000-0000-0000-000000000003", "cs_x")).encode()

    response = await client.post(WEBHOOK_URL, content=payload)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_WEBHOOK_SIGNATURE"


@pytest.mark.asyncio
async def test_tampered_payload_rejected(client, fake_gateway, test_user, test_activity, make_booking, make_event):
    booking = await make_booking(test_user, test_activity)
    payload, headers = fake_gateway.signed(make_event(booking.id, booking.payment_id))

    response = await client.post(WEBHOOK_URL, content=payload + b" ", headers=headers)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_completed_event_confirms_booking(
    client, fake_gateway, notifier, test_user, test_activity, make_booking, make_event, load_booking
):
    booking = await make_booking(test_user, test_activity)
    payload, headers = fake_gateway.signed(make_event(booking.id, booking.payment_id))

    response = await client.post(WEBHOOK_URL, content=payload, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    stored = await load_booking(booking.id)
    assert stored.status == "confirmed"
    assert stored.payment_status == "completed"
    assert stored.is_confirmed is True
    assert notifier.sent == [
        {"booking_id": booking.id, "activity_id": test_activity.id, "email": test_user.email}
    ]


@pytest.mark.asyncio
async def test_redelivered_event_notifies_once(
    client, fake_gateway, notifier, test_user, test_activity, make_booking, make_event, load_booking
):
    """Gateways retry deliveries; a repeated event changes nothing."""
    booking = await make_booking(test_user, test_activity)
    payload, headers = fake_gateway.signed(make_event(booking.id, booking.payment_id))

    first = await client.post("/webhook", content=payload, headers=headers)
    second = await client.post("/webhook", content=payload, headers=headers)

    assert first.status_code == 200
    assert second.status_code == 200
    assert (await load_booking(booking.id)).status == "confirmed"
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_unknown_booking_acknowledged(client, fake_gateway, notifier, make_event):
    payload, headers = fake_gateway.signed(
        make_event("00000000-0000-0000-0000-000000000004", "cs_missing")
    )

    response = await client.post(WEBHOOK_URL, content=payload, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_event_without_booking_id_acknowledged(client, fake_gateway):
    payload, headers = fake_gateway.signed(
        {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {"id": "cs_1"}}}
    )

    response = await client.post(WEBHOOK_URL, content=payload, headers=headers)

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_malformed_booking_id_acknowledged(client, fake_gateway, make_event):
    payload, headers = fake_gateway.signed(make_event("not-a-uuid", "cs_1"))

    response = await client.post(WEBHOOK_URL, content=payload, headers=headers)

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_cancelled_booking_stays_cancelled(
    client, fake_gateway, notifier, test_user, test_activity, make_booking, make_event, load_booking
):
    booking = await make_booking(test_user, test_activity, status="cancelled")
    payload, headers = fake_gateway.signed(make_event(booking.id, booking.payment_id))

    response = await client.post(WEBHOOK_URL, content=payload, headers=headers)

    assert response.status_code == 200
    assert (await load_booking(booking.id)).status == "cancelled"
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_session_mismatch_ignored(
    client, fake_gateway, test_user, test_activity, make_booking, make_event, load_booking
):
    booking = await make_booking(test_user, test_activity, payment_id="cs_real")
    payload, headers = fake_gateway.signed(make_event(booking.id, "cs_other"))

    response = await client.post(WEBHOOK_URL, content=payload, headers=headers)

    assert response.status_code == 200
    assert (await load_booking(booking.id)).status == "pending"


@pytest.mark.asyncio
async def test_async_payment_failed_marks_payment(
    client, fake_gateway, test_user, test_activity, make_booking, make_event, load_booking
):
    booking = await make_booking(test_user, test_activity)
    payload, headers = fake_gateway.signed(
        make_event(booking.id, booking.payment_id, "checkout.session.async_payment_failed")
    )

    response = await client.post(WEBHOOK_URL, content=payload, headers=headers)

    assert response.status_code == 200
    stored = await load_booking(booking.id)
    assert stored.status == "pending"
    assert stored.payment_status == "failed"


# ==================== STRIPE ====================


def stripe_signature(payload: bytes, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.mark.asyncio
async def test_stripe_webhook_confirms_booking(
    client, test_user, test_activity, make_booking, make_event, load_booking
):
    gateway = StripeGateway(secret_key="sk_test_x", webhook_secret="whsec_test")
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    booking = await make_booking(test_user, test_activity)
    payload = json.dumps(make_event(booking.id, booking.payment_id)).encode()

    response = await client.post(
        WEBHOOK_URL,
        content=payload,
        headers={"Stripe-Signature": stripe_signature(payload, "whsec_test")},
    )

    assert response.status_code == 200
    assert (await load_booking(booking.id)).status == "confirmed"


@pytest.mark.asyncio
async def test_stripe_webhook_wrong_secret(client, test_user, test_activity, make_booking, make_event):
    gateway = StripeGateway(secret_key="sk_test_x", webhook_secret="whsec_test")
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    booking = await make_booking(test_user, test_activity)
    payload = json.dumps(make_event(booking.id, booking.payment_id)).encode()

    response = await client.post(
        WEBHOOK_URL,
        content=payload,
        headers={"Stripe-Signature": stripe_signature(payload, "whsec_other")},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_WEBHOOK_SIGNATURE"


@pytest.mark.asyncio
async def test_stripe_webhook_secret_not_configured(client, make_event, monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", None)
    gateway = StripeGateway(secret_key="sk_test_x")
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    payload = json.dumps(make_event("00000000-0000-0000-0000-000000000005", "cs_x")).encode()

    response = await client.post(
        WEBHOOK_URL, content=payload, headers={"Stripe-Signature": "t=1,v1=abc"}
    )

    assert response.status_code == 503
    assert response.json()["code"] == "PAYMENT_GATEWAY_ERROR"
