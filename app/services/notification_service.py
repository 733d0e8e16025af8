"""Notification Service for booking emails.

Email is delivered through the SendGrid HTTP API. Sending is best-effort:
failures are logged and reported as ``False``, never raised.
"""

import html
import logging
from typing import Any

import httpx

from app.config import settings
from app.models.activity import Activity
from app.models.booking import Booking

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class NotificationService:
    """Service for sending booking notifications."""

    def __init__(self, api_key: str | None = None) -> None:
        self.api_key = api_key or settings.sendgrid_api_key
        self._http_client: httpx.AsyncClient | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
    ) -> bool:
        """Send an email via SendGrid.

        Args:
            to_email: Recipient email
            subject: Email subject
            html_content: HTML body
            text_content: Plain text body

        Returns:
            bool: True if sent successfully
        """
        if not self.api_key:
            logger.info(f"SendGrid not configured; skipping email to {to_email}")
            return False

        payload: dict[str, Any] = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {
                "email": settings.email_from_address,
                "name": settings.email_from_name,
            },
            "subject": subject,
            "content": [{"type": "text/html", "value": html_content}],
        }
        if text_content:
            payload["content"].insert(0, {"type": "text/plain", "value": text_content})

        try:
            response = await self.http_client.post(
                SENDGRID_SEND_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Email to {to_email} failed: {e}")
            return False

        if response.status_code not in (200, 202):
            logger.warning(
                f"Email to {to_email} rejected by SendGrid: {response.status_code} {response.text[:200]}"
            )
            return False
        return True

    async def send_booking_confirmation(
        self,
        booking: Booking,
        activity: Activity,
        email: str,
    ) -> bool:
        """Tell the user their booking is paid and confirmed."""
        when = activity.date.strftime("%A %d %B %Y, %H:%M %Z").strip()
        subject = f"Booking confirmed: {activity.name}"
        text = (
            f"Your booking for {activity.name} on {when} at {activity.location} "
            f"is confirmed.\nBooking reference: {booking.id}\n"
            f"Amount paid: {booking.total_amount} {booking.currency.upper()}"
        )
        body = (
            f"<h2>Your booking is confirmed</h2>"
            f"<p><strong>{html.escape(activity.name)}</strong><br>{when}<br>"
            f"{html.escape(activity.location)}</p>"
            f"<p>Booking reference: {booking.id}<br>"
            f"Amount paid: {booking.total_amount} {booking.currency.upper()}</p>"
        )

        try:
            sent = await self.send_email(email, subject, body, text)
        except Exception:
            logger.exception(f"Confirmation email for booking {booking.id} failed")
            return False

        if sent:
            logger.info(f"Confirmation email sent for booking {booking.id}")
        return sent


notification_service = NotificationService()


def get_notification_service() -> NotificationService:
    """FastAPI dependency returning the shared notifier."""
    return notification_service
