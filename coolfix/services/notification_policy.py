"""
Notification-trigger policy.

Static mapping from a booking event to the notifications it must raise.
The lifecycle engine returns these intents; the notification dispatcher
delivers them after the state change has been committed.

    creation                          -> customer received, admin new-booking alert
    pending|confirmed -> cancelled    -> customer cancelled, admin cancellation alert
    * -> confirmed (admin email link) -> customer confirmed
    * -> completed                    -> customer completed, admin completion summary
    anything else                     -> customer status-changed (in-app only)
"""
import enum
from dataclasses import dataclass
from typing import Dict, Tuple

from coolfix.models.bookings import BookingStatus


class Recipient(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class NotificationEvent(str, enum.Enum):
    RECEIVED = "received"
    NEW_BOOKING_ALERT = "new-booking-alert"
    CANCELLED = "cancelled"
    CANCELLATION_ALERT = "cancellation-alert"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    COMPLETION_SUMMARY = "completion-summary"
    STATUS_CHANGED = "status-changed"


class Channel(str, enum.Enum):
    EMAIL = "email"
    IN_APP = "in_app"


@dataclass(frozen=True)
class NotificationIntent:
    """
    One notification to raise.

    account_email_fallback: when the booking has no contact email, use the
    linked account's email instead of skipping the customer.
    """
    recipient: Recipient
    event: NotificationEvent
    channel: Channel = Channel.EMAIL
    account_email_fallback: bool = False


S = BookingStatus

CREATION_NOTIFICATIONS: Tuple[NotificationIntent, ...] = (
    NotificationIntent(Recipient.CUSTOMER, NotificationEvent.RECEIVED),
    NotificationIntent(Recipient.ADMIN, NotificationEvent.NEW_BOOKING_ALERT),
)

_CANCELLATION = (
    NotificationIntent(Recipient.CUSTOMER, NotificationEvent.CANCELLED),
    NotificationIntent(Recipient.ADMIN, NotificationEvent.CANCELLATION_ALERT),
)

_COMPLETION = (
    NotificationIntent(Recipient.CUSTOMER, NotificationEvent.COMPLETED, account_email_fallback=True),
    NotificationIntent(Recipient.ADMIN, NotificationEvent.COMPLETION_SUMMARY),
)

_LINK_CONFIRMATION = (
    NotificationIntent(Recipient.CUSTOMER, NotificationEvent.CONFIRMED),
)

STATUS_CHANGED_NOTIFICATIONS: Tuple[NotificationIntent, ...] = (
    NotificationIntent(Recipient.CUSTOMER, NotificationEvent.STATUS_CHANGED, Channel.IN_APP),
)

# (from, to) -> intents, for transitions made through any channel
TRANSITION_NOTIFICATIONS: Dict[Tuple[BookingStatus, BookingStatus], Tuple[NotificationIntent, ...]] = {
    (S.PENDING, S.CANCELLED): _CANCELLATION,
    (S.CONFIRMED, S.CANCELLED): _CANCELLATION,
    (S.PENDING, S.COMPLETED): _COMPLETION,
    (S.CONFIRMED, S.COMPLETED): _COMPLETION,
    (S.ASSIGNED, S.COMPLETED): _COMPLETION,
    (S.ON_THE_WAY, S.COMPLETED): _COMPLETION,
    (S.IN_PROGRESS, S.COMPLETED): _COMPLETION,
}

# Overrides for transitions made through the admin email link
ADMIN_LINK_NOTIFICATIONS: Dict[Tuple[BookingStatus, BookingStatus], Tuple[NotificationIntent, ...]] = {
    (S.PENDING, S.CONFIRMED): _LINK_CONFIRMATION,
}


def notifications_for_creation() -> Tuple[NotificationIntent, ...]:
    return CREATION_NOTIFICATIONS


def notifications_for_transition(
    previous: BookingStatus,
    target: BookingStatus,
    via_admin_link: bool = False,
) -> Tuple[NotificationIntent, ...]:
    """Look up the intents for an applied transition."""
    key = (BookingStatus(previous), BookingStatus(target))
    if via_admin_link and key in ADMIN_LINK_NOTIFICATIONS:
        return ADMIN_LINK_NOTIFICATIONS[key]
    return TRANSITION_NOTIFICATIONS.get(key, STATUS_CHANGED_NOTIFICATIONS)
