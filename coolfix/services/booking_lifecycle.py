"""
Booking lifecycle engine.

Owns the transition table and the only function allowed to change a
booking's status. It mutates the in-memory booking and returns the
notification intents to raise; persisting and dispatching are the caller's job.

    pending     -> confirmed | completed | cancelled
    confirmed   -> assigned | in_progress | completed | cancelled
    assigned    -> on_the_way | in_progress | completed | cancelled
    on_the_way  -> in_progress | completed | cancelled
    in_progress -> completed | cancelled
    completed, cancelled: terminal
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional, Tuple
from uuid import UUID

from coolfix.lib.logging import get_logger
from coolfix.models.bookings import Booking, BookingStatus
from coolfix.services.notification_policy import NotificationIntent, notifications_for_transition


logger = get_logger(__name__)

S = BookingStatus

TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.COMPLETED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.ASSIGNED, S.IN_PROGRESS, S.COMPLETED, S.CANCELLED}),
    S.ASSIGNED: frozenset({S.ON_THE_WAY, S.IN_PROGRESS, S.COMPLETED, S.CANCELLED}),
    S.ON_THE_WAY: frozenset({S.IN_PROGRESS, S.COMPLETED, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATES: FrozenSet[BookingStatus] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)

# States from which the booking owner (or guest with the right phone) may cancel
CUSTOMER_CANCELLABLE: FrozenSet[BookingStatus] = frozenset({S.PENDING, S.CONFIRMED})


class ActorRole(str, enum.Enum):
    GUEST = "guest"
    CUSTOMER = "customer"
    TECHNICIAN = "technician"
    ADMIN = "admin"
    ADMIN_LINK = "admin_link"


DEFAULT_CANCELLATION_REASONS: Dict[ActorRole, str] = {
    ActorRole.GUEST: "Cancelled by customer",
    ActorRole.CUSTOMER: "Cancelled by customer",
    ActorRole.TECHNICIAN: "Cancelled by technician",
    ActorRole.ADMIN: "Cancelled by admin",
    ActorRole.ADMIN_LINK: "Cancelled by admin via email link",
}

_ACTOR_LABELS: Dict[ActorRole, str] = {
    ActorRole.GUEST: "customer",
    ActorRole.CUSTOMER: "customer",
    ActorRole.TECHNICIAN: "technician",
    ActorRole.ADMIN: "admin",
    ActorRole.ADMIN_LINK: "admin (email link)",
}


@dataclass(frozen=True)
class Actor:
    """Who is changing the booking."""
    role: ActorRole
    user_id: Optional[UUID] = None

    @property
    def is_staff(self) -> bool:
        return self.role in (ActorRole.ADMIN, ActorRole.TECHNICIAN, ActorRole.ADMIN_LINK)


class InvalidTransition(Exception):
    """Target status is not reachable from the booking's current status."""

    def __init__(self, current: BookingStatus, target: BookingStatus, message: Optional[str] = None):
        self.current = BookingStatus(current)
        self.target = BookingStatus(target)
        super().__init__(
            message or f"Invalid status transition from {self.current.value} to {self.target.value}"
        )


class BookingConflict(Exception):
    """Booking changed under us between read and write."""

    def __init__(self, booking_public_id: str):
        self.booking_public_id = booking_public_id
        super().__init__(
            f"Booking {booking_public_id} was modified by another request, reload and try again"
        )


@dataclass(frozen=True)
class TransitionOutcome:
    previous_status: BookingStatus
    status: BookingStatus
    notifications: Tuple[NotificationIntent, ...] = field(default_factory=tuple)


def allowed_targets(current: BookingStatus) -> FrozenSet[BookingStatus]:
    return TRANSITIONS.get(BookingStatus(current), frozenset())


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return BookingStatus(target) in allowed_targets(current)


def default_note(target: BookingStatus, actor: Actor) -> str:
    return f"Status changed to {BookingStatus(target).value} by {_ACTOR_LABELS[actor.role]}"


def apply_transition(
    booking: Booking,
    target: BookingStatus,
    actor: Actor,
    note: Optional[str] = None,
    reason: Optional[str] = None,
    technician_id: Optional[UUID] = None,
    via_admin_link: bool = False,
    now: Optional[datetime] = None,
) -> TransitionOutcome:
    """
    Move a booking to `target`.

    Raises:
        InvalidTransition: target is not in the allowed set for the current
            status. The booking is left unchanged.

    Returns:
        TransitionOutcome carrying the notification intents to dispatch once
        the change is persisted.
    """
    current = BookingStatus(booking.status)
    target = BookingStatus(target)

    if not can_transition(current, target):
        raise InvalidTransition(current, target)

    now = now or datetime.now(timezone.utc)
    note = note.strip() if note else None

    booking.status = target
    booking.add_history(target, note or default_note(target, actor), at=now)

    if note and actor.role in (ActorRole.ADMIN, ActorRole.TECHNICIAN):
        booking.technician_notes = note

    if target == S.COMPLETED:
        booking.completed_at = now
    elif target == S.CANCELLED:
        booking.cancelled_at = now
        booking.cancellation_reason = (reason or "").strip() or DEFAULT_CANCELLATION_REASONS[actor.role]

    if technician_id is not None:
        booking.technician_id = technician_id
    elif actor.role == ActorRole.TECHNICIAN and booking.technician_id is None:
        booking.technician_id = actor.user_id

    logger.info(
        "Booking status transition applied",
        extra={
            "booking_id": booking.public_id,
            "from_status": current.value,
            "to_status": target.value,
            "actor": actor.role.value,
        }
    )

    return TransitionOutcome(
        previous_status=current,
        status=target,
        notifications=notifications_for_transition(current, target, via_admin_link=via_admin_link),
    )
