"""
Transactional email templates keyed by notification event.

Each template turns the booking payload built by the dispatcher into a
subject line and an HTML body. Markup is intentionally plain.
"""
from html import escape
from typing import Callable, Dict, Tuple

from coolfix.lib.settings import settings
from coolfix.services.notification_policy import NotificationEvent


def _row(label: str, value) -> str:
    return (
        f'<tr><td style="padding: 4px 12px 4px 0; color: #6b7280;">{escape(label)}</td>'
        f'<td style="padding: 4px 0;">{escape(str(value if value not in (None, "") else "-"))}</td></tr>'
    )


def _details(data: dict) -> str:
    rows = [
        _row("Booking ID", data.get("booking_id")),
        _row("Order", data.get("order_number")),
        _row("Service", data.get("service_name")),
        _row("Date", data.get("date")),
        _row("Time", data.get("time")),
        _row("Address", data.get("address")),
        _row("Total", data.get("total_amount")),
    ]
    return f'<table style="border-collapse: collapse;">{"".join(rows)}</table>'


def _layout(heading: str, body: str) -> str:
    return f"""
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <h2 style="color: #2196F3;">{escape(heading)}</h2>
      {body}
      <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 20px 0;">
      <p style="color: #6b7280; font-size: 12px;">{escape(settings.email_from_name)}</p>
    </div>
  </body>
</html>
"""


def _received(data: dict) -> Tuple[str, str]:
    body = (
        f"<p>Hello {escape(data.get('customer_name') or '')},</p>"
        "<p>We have received your booking request. Our team will confirm it shortly.</p>"
        f"{_details(data)}"
    )
    return f"Booking received - {data.get('booking_id')}", _layout("Booking Received", body)


def _new_booking_alert(data: dict) -> Tuple[str, str]:
    body = (
        f"<p>New booking from <strong>{escape(data.get('customer_name') or '')}</strong> "
        f"({escape(data.get('phone') or '')}).</p>"
        f"{_details(data)}"
        f"<p>{escape(data.get('comments') or '')}</p>"
        '<p style="margin-top: 24px;">'
        f'<a href="{escape(data.get("confirm_url") or "#")}" style="background: #16a34a; color: #fff; '
        'padding: 10px 18px; border-radius: 6px; text-decoration: none;">Confirm booking</a> '
        f'<a href="{escape(data.get("cancel_url") or "#")}" style="background: #dc2626; color: #fff; '
        'padding: 10px 18px; border-radius: 6px; text-decoration: none;">Cancel booking</a>'
        "</p>"
    )
    return f"New booking {data.get('booking_id')}", _layout("New Booking", body)


def _cancelled(data: dict) -> Tuple[str, str]:
    body = (
        f"<p>Hello {escape(data.get('customer_name') or '')},</p>"
        "<p>Your booking has been cancelled.</p>"
        f"<p>Reason: {escape(data.get('cancellation_reason') or '-')}</p>"
        f"{_details(data)}"
    )
    return f"Booking cancelled - {data.get('booking_id')}", _layout("Booking Cancelled", body)


def _cancellation_alert(data: dict) -> Tuple[str, str]:
    body = (
        f"<p>Booking {escape(data.get('booking_id') or '')} was cancelled.</p>"
        f"<p>Reason: {escape(data.get('cancellation_reason') or '-')}</p>"
        f"{_details(data)}"
    )
    return f"Booking {data.get('booking_id')} cancelled", _layout("Cancellation", body)


def _confirmed(data: dict) -> Tuple[str, str]:
    body = (
        f"<p>Hello {escape(data.get('customer_name') or '')},</p>"
        "<p>Your booking is confirmed. A technician will be assigned soon.</p>"
        f"{_details(data)}"
    )
    return f"Booking confirmed - {data.get('booking_id')}", _layout("Booking Confirmed", body)


def _completed(data: dict) -> Tuple[str, str]:
    body = (
        f"<p>Hello {escape(data.get('customer_name') or '')},</p>"
        "<p>Your service has been completed. Thank you for choosing us.</p>"
        f"{_details(data)}"
    )
    return f"Service completed - {data.get('booking_id')}", _layout("Service Completed", body)


def _completion_summary(data: dict) -> Tuple[str, str]:
    body = (
        f"<p>Booking {escape(data.get('booking_id') or '')} was completed.</p>"
        f"<p>Technician notes: {escape(data.get('technician_notes') or '-')}</p>"
        f"{_details(data)}"
    )
    return f"Booking {data.get('booking_id')} completed", _layout("Completion Summary", body)


def _status_changed(data: dict) -> Tuple[str, str]:
    status = (data.get("status") or "").replace("_", " ")
    body = f"<p>Your booking #{escape(data.get('order_number') or '')} is now {escape(status)}.</p>"
    return f"Booking {status}", _layout("Booking Update", body)


TEMPLATES: Dict[NotificationEvent, Callable[[dict], Tuple[str, str]]] = {
    NotificationEvent.RECEIVED: _received,
    NotificationEvent.NEW_BOOKING_ALERT: _new_booking_alert,
    NotificationEvent.CANCELLED: _cancelled,
    NotificationEvent.CANCELLATION_ALERT: _cancellation_alert,
    NotificationEvent.CONFIRMED: _confirmed,
    NotificationEvent.COMPLETED: _completed,
    NotificationEvent.COMPLETION_SUMMARY: _completion_summary,
    NotificationEvent.STATUS_CHANGED: _status_changed,
}


def render(event: NotificationEvent, data: dict) -> Tuple[str, str]:
    """Return (subject, html) for an event."""
    return TEMPLATES[NotificationEvent(event)](data)
