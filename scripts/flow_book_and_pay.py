#!/usr/bin/env python3
"""
Booking and payment flow against a running server using the manual gateway.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/flow_book_and_pay.py --activity-id <UUID> --email user@example.com --password Secret123
    python scripts/flow_book_and_pay.py --activity-id <UUID> --email user@example.com --password Secret123 --cancel

Flow:
    1. Login as user
    2. Check availability
    3. Create booking (opens a manual checkout session)
    4. Deliver a signed checkout.session.completed webhook
    5. Fetch the confirmed booking
    6. Optionally cancel it
"""

import argparse
import hashlib
import hmac
import json
import os
import sys
import uuid

import httpx

BASE_URL = os.environ.get("BASE_URL", "http://localhost:8000")


def login(email: str, password: str) -> str:
    """Login and return token."""
    response = httpx.post(
        f"{BASE_URL}/api/v1/auth/login",
        json={"email": email, "password": password},
        timeout=10.0,
    )
    if response.status_code != 200:
        print(f"ERROR: Login failed for {email}: {response.status_code}")
        print(response.text)
        sys.exit(1)

    return response.json()["data"]["access_token"]


def api_request(token: str, method: str, endpoint: str, data: dict | None = None) -> dict:
    """Make authenticated API request."""
    response = httpx.request(
        method,
        f"{BASE_URL}{endpoint}",
        headers={"Authorization": f"Bearer {token}"},
        json=data if method != "GET" else None,
        timeout=10.0,
    )
    return {"status": response.status_code, "data": response.json() if response.text else {}}


def send_webhook(secret: str, booking_id: str, session_id: str) -> dict:
    """Deliver a signed checkout.session.completed event."""
    payload = json.dumps(
        {
            "id": f"evt_{uuid.uuid4().hex}",
            "type": "checkout.session.completed",
            "data": {"object": {"id": session_id, "metadata": {"bookingId": booking_id}}},
        }
    ).encode()
    signature = "sha256=" + hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    response = httpx.post(
        f"{BASE_URL}/webhook",
        content=payload,
        headers={"Content-Type": "application/json", "X-Payment-Signature": signature},
        timeout=10.0,
    )
    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def print_result(result: dict, fields: list[str] | None = None):
    """Print result, optionally filtering fields of the envelope's data."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        return False

    data = result["data"].get("data", result["data"])
    print(f"Status: {result['status']}")
    if fields and isinstance(data, dict):
        data = {k: data.get(k) for k in fields if k in data}
    print(json.dumps(data, indent=2))
    return True


def main():
    parser = argparse.ArgumentParser(description="Booking and payment flow")
    parser.add_argument("--activity-id", required=True, help="Activity UUID")
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--password", required=True, help="User password")
    parser.add_argument(
        "--webhook-secret",
        default=os.environ.get("PAYMENT_WEBHOOK_SECRET", "manual-webhook-secret-change-me"),
        help="Manual gateway webhook secret",
    )
    parser.add_argument("--cancel", action="store_true", help="Cancel the booking at the end")
    args = parser.parse_args()

    print_step(1, "Login as user")
    token = login(args.email, args.password)
    print(f"Logged in as {args.email}")

    print_step(2, "Check availability")
    availability = api_request(token, "GET", f"/api/v1/bookings/availability/{args.activity_id}")
    if not print_result(availability):
        sys.exit(1)

    print_step(3, "Create booking")
    created = api_request(token, "POST", "/api/v1/bookings", {"activity_id": args.activity_id})
    if not print_result(created, ["booking_id", "session_id", "url"]):
        sys.exit(1)
    booking_id = created["data"]["data"]["booking_id"]
    session_id = created["data"]["data"]["session_id"]

    print_step(4, "Deliver payment webhook")
    if not print_result(send_webhook(args.webhook_secret, booking_id, session_id)):
        sys.exit(1)

    print_step(5, "Fetch booking")
    booking = api_request(token, "GET", f"/api/v1/bookings/{booking_id}")
    if not print_result(booking, ["id", "status", "payment_status", "is_confirmed", "confirmed_at"]):
        sys.exit(1)

    if args.cancel:
        print_step(6, "Cancel booking")
        cancelled = api_request(token, "POST", f"/api/v1/bookings/{booking_id}/cancel")
        if not print_result(cancelled, ["id", "status", "payment_status", "cancelled_at"]):
            sys.exit(1)

    print("\n" + "="*60)
    print("FLOW COMPLETE")
    print("="*60)


if __name__ == "__main__":
    main()
