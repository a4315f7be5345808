"""
Notification dispatcher and email transports.

Booking routes hand the intents returned by the lifecycle engine to
NotificationDispatcher.dispatch through a FastAPI background task, after the
booking change is committed. Dispatch is best-effort: every failure is logged
and counted, never raised, and never undoes a booking change.

Transports: console (dev), SMTP, Brevo transactional API.
"""
import asyncio
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Callable, Iterable, List, Optional
from uuid import UUID

import httpx
from sqlalchemy.orm import Session
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from coolfix.lib.db import get_db_context
from coolfix.lib.logging import get_logger
from coolfix.lib.metrics import get_metrics_collector
from coolfix.lib.settings import settings
from coolfix.models.bookings import Booking
from coolfix.models.notifications import Notification
from coolfix.services import email_templates
from coolfix.services.notification_policy import (
    Channel,
    NotificationEvent,
    NotificationIntent,
    Recipient,
)


logger = get_logger(__name__)


STATUS_MESSAGES = {
    "confirmed": "confirmed",
    "assigned": "assigned to a technician",
    "on_the_way": "technician is on the way",
    "in_progress": "in progress",
    "completed": "completed",
    "cancelled": "cancelled",
}


class EmailTransport(ABC):
    """
    Abstract base class for email delivery.
    """

    name: str = "email"

    @abstractmethod
    async def deliver(self, to: str, subject: str, html: str) -> bool:
        """
        Deliver one email.

        Returns:
            True if handed off successfully, False otherwise
        """
        pass


class ConsoleEmailTransport(EmailTransport):
    """
    Console transport for development/testing.
    Logs emails instead of sending them.
    """

    name = "console"

    async def deliver(self, to: str, subject: str, html: str) -> bool:
        logger.info("Email logged to console", extra={"to": to, "subject": subject})
        return True


class SMTPEmailTransport(EmailTransport):
    """
    SMTP transport (STARTTLS on 587, implicit TLS on 465).
    """

    name = "smtp"

    def __init__(self):
        if not settings.smtp_username or not settings.smtp_password:
            raise ValueError(
                "SMTP credentials not configured. "
                "Set SMTP_USERNAME and SMTP_PASSWORD environment variables."
            )

        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_username = settings.smtp_username
        self.smtp_password = settings.smtp_password
        self.from_email = settings.email_from_address or settings.smtp_username
        self.from_name = settings.email_from_name

    def _send_blocking(self, to: str, subject: str, html: str) -> None:
        import smtplib
        from email.mime.multipart import MIMEMultipart
        from email.mime.text import MIMEText

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to
        msg.attach(MIMEText(html, "html"))

        if self.smtp_port == 465:
            with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port) as server:
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)

    async def deliver(self, to: str, subject: str, html: str) -> bool:
        await asyncio.to_thread(self._send_blocking, to, subject, html)
        logger.info("Email sent via SMTP", extra={"to": to, "subject": subject})
        return True


class BrevoEmailTransport(EmailTransport):
    """
    Brevo (Sendinblue) transactional email API transport.
    Transient network errors are retried with exponential backoff.
    """

    name = "brevo"

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        if not settings.brevo_api_key:
            raise ValueError("Brevo API key not configured. Set BREVO_API_KEY environment variable.")
        self.api_key = settings.brevo_api_key
        self.api_url = settings.brevo_api_url
        self.from_email = settings.email_from_address
        self.from_name = settings.email_from_name
        self._client = client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post(self, payload: dict) -> httpx.Response:
        headers = {"api-key": self.api_key, "Content-Type": "application/json"}
        if self._client is not None:
            return await self._client.post(self.api_url, json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=15.0) as client:
            return await client.post(self.api_url, json=payload, headers=headers)

    async def deliver(self, to: str, subject: str, html: str) -> bool:
        payload = {
            "sender": {"name": self.from_name, "email": self.from_email},
            "to": [{"email": to}],
            "subject": subject,
            "htmlContent": html,
        }
        response = await self._post(payload)
        if response.status_code >= 400:
            logger.error(
                "Brevo rejected email",
                extra={"to": to, "status_code": response.status_code, "body": response.text[:500]},
            )
            return False

        logger.info(
            "Email sent via Brevo",
            extra={"to": to, "message_id": response.json().get("messageId")},
        )
        return True


def build_email_transport(provider: Optional[str] = None) -> EmailTransport:
    """Pick the transport named by settings.email_provider, falling back to console."""
    provider_name = (provider or settings.email_provider).lower()

    if provider_name == "console":
        return ConsoleEmailTransport()
    if provider_name in ("smtp", "brevo"):
        try:
            return SMTPEmailTransport() if provider_name == "smtp" else BrevoEmailTransport()
        except ValueError as e:
            logger.warning(f"Email provider {provider_name} not available ({e}), falling back to console")
            return ConsoleEmailTransport()
    raise ValueError(
        f"Unknown email provider: {provider_name}. Valid options: console, smtp, brevo"
    )


def build_booking_payload(
    booking: Booking,
    account_email: Optional[str] = None,
    confirm_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> dict:
    """
    Snapshot the booking fields templates need.
    Built inside the request so the background task never touches the ORM object.
    """
    snapshot = booking.service_snapshot or {}
    status = booking.status.value if hasattr(booking.status, "value") else booking.status
    return {
        "booking_id": booking.public_id,
        "order_number": booking.order_number,
        "owner_id": str(booking.owner_id) if booking.owner_id else None,
        "customer_name": booking.customer_name,
        "phone": booking.phone,
        "email": booking.email or None,
        "account_email": account_email,
        "address": booking.address,
        "comments": booking.comments,
        "service_name": snapshot.get("name"),
        "date": booking.date,
        "time": booking.time,
        "total_amount": booking.total_amount,
        "status": status,
        "cancellation_reason": booking.cancellation_reason,
        "technician_notes": booking.technician_notes,
        "confirm_url": confirm_url,
        "cancel_url": cancel_url,
    }


class NotificationDispatcher:
    """
    Delivers notification intents for one booking.

    Handles:
    - Recipient resolution (booking email, linked account email, admin inbox)
    - Email rendering and hand-off to the transport
    - In-app notification rows for account holders
    - Failure containment and metrics
    """

    def __init__(
        self,
        transport: Optional[EmailTransport] = None,
        admin_email: Optional[str] = None,
        session_factory: Callable[[], AbstractContextManager[Session]] = get_db_context,
    ):
        self.transport = transport or build_email_transport()
        self.admin_email = admin_email if admin_email is not None else settings.admin_email
        self.session_factory = session_factory
        self.metrics = get_metrics_collector()

    async def send(self, to_address: str, event_type: NotificationEvent, template_data: dict) -> bool:
        """Render one event template and hand it to the transport."""
        subject, html = email_templates.render(event_type, template_data)
        return await self.transport.deliver(to_address, subject, html)

    def resolve_email(self, intent: NotificationIntent, payload: dict) -> Optional[str]:
        if intent.recipient == Recipient.ADMIN:
            return self.admin_email or None
        email = payload.get("email")
        if not email and intent.account_email_fallback:
            email = payload.get("account_email")
        return email or None

    async def dispatch(self, intents: Iterable[NotificationIntent], payload: dict) -> List[NotificationEvent]:
        """
        Deliver every intent independently.

        Returns:
            Events that were handed off successfully. Failures are logged and
            swallowed.
        """
        delivered: List[NotificationEvent] = []
        for intent in intents:
            try:
                if intent.channel == Channel.IN_APP:
                    sent = await asyncio.to_thread(self._store_in_app, intent, payload)
                else:
                    sent = await self._send_email(intent, payload)
            except Exception as e:
                logger.error(
                    f"Notification dispatch failed: {e}",
                    extra={
                        "booking_id": payload.get("booking_id"),
                        "event_type": intent.event.value,
                        "channel": intent.channel.value,
                    },
                    exc_info=True,
                )
                self.metrics.increment_notifications_failed(intent.event.value, intent.channel.value, reason="error")
                continue

            if sent:
                delivered.append(intent.event)
                self.metrics.increment_notifications_sent(intent.event.value, intent.channel.value)
        return delivered

    async def _send_email(self, intent: NotificationIntent, payload: dict) -> bool:
        to_address = self.resolve_email(intent, payload)
        if not to_address:
            logger.info(
                "No email on file, skipping notification",
                extra={"booking_id": payload.get("booking_id"), "event_type": intent.event.value},
            )
            return False

        if await self.send(to_address, intent.event, payload):
            logger.info(
                "Notification sent",
                extra={
                    "booking_id": payload.get("booking_id"),
                    "event_type": intent.event.value,
                    "to": to_address,
                },
            )
            return True

        self.metrics.increment_notifications_failed(intent.event.value, intent.channel.value, reason="rejected")
        return False

    def _store_in_app(self, intent: NotificationIntent, payload: dict) -> bool:
        owner_id = payload.get("owner_id")
        if not owner_id:
            return False

        status = payload.get("status") or ""
        description = STATUS_MESSAGES.get(status, status.replace("_", " "))
        with self.session_factory() as db:
            db.add(Notification(
                user_id=UUID(owner_id),
                type="booking",
                title=f"Booking {description}",
                message=f"Your booking #{payload.get('order_number')} is now {description}.",
                data={
                    "booking_id": payload.get("booking_id"),
                    "order_number": payload.get("order_number"),
                    "status": status,
                    "event": intent.event.value,
                },
            ))
        return True


# Factory function
def get_notification_dispatcher() -> NotificationDispatcher:
    """Get NotificationDispatcher configured from settings."""
    return NotificationDispatcher()
