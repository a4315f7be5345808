"""
Booking service - the application layer between the HTTP routes and the
lifecycle engine.

Each call works on a booking read fresh in the caller's session. Status
changes go through booking_lifecycle.apply_transition and are committed with
the booking's version check, so a concurrent writer makes the commit fail
with BookingConflict instead of overwriting the other change.

Methods never send notifications. They return a BookingResult carrying the
intents and a payload snapshot; the route schedules the dispatch after the
response.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from coolfix.api.middleware.error_handler import (
    BadRequestException,
    ForbiddenException,
    NotFoundException,
)
from coolfix.api.schemas import BookingCreate, BookingUpdate, PublicBookingCreate
from coolfix.lib.action_tokens import (
    ActionScope,
    ActionTokenIssuer,
    TokenExpired,
    TokenMalformed,
    get_action_token_issuer,
)
from coolfix.lib.logging import get_logger
from coolfix.lib.metrics import get_metrics_collector
from coolfix.lib.phone import normalize_phone, phones_match
from coolfix.lib.settings import settings
from coolfix.models.bookings import (
    Booking,
    BookingStatus,
    generate_order_number,
    generate_public_id,
)
from coolfix.models.services import Service
from coolfix.models.technicians import Technician
from coolfix.models.users import User, UserRole
from coolfix.services.booking_lifecycle import (
    CUSTOMER_CANCELLABLE,
    TERMINAL_STATES,
    Actor,
    ActorRole,
    BookingConflict,
    InvalidTransition,
    apply_transition,
    can_transition,
)
from coolfix.services.notification_policy import NotificationIntent, notifications_for_creation
from coolfix.services.notification_service import build_booking_payload


logger = get_logger(__name__)

ON_THE_WAY_ETA = "15-20 minutes"


def normalize_schedule(date_text: Optional[str], time_text: Optional[str]) -> Optional[datetime]:
    """
    Combine the client's date and time strings into one UTC datetime.

    Accepts ISO dates ("2026-03-01", "2026-03-01T00:00:00Z") and 24h or 12h
    times ("14:30", "2:30 PM", "10:00 AM - 12:00 PM" uses the start).
    Returns None when either part cannot be parsed; the raw strings are kept
    on the booking regardless.
    """
    if not date_text or not time_text:
        return None
    try:
        day = datetime.fromisoformat(date_text.strip()[:10]).date()
    except ValueError:
        return None

    clock_text = time_text.split("-")[0].strip().upper()
    for fmt in ("%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M%p", "%I %p"):
        try:
            clock = datetime.strptime(clock_text, fmt).time()
        except ValueError:
            continue
        return datetime.combine(day, clock, tzinfo=timezone.utc)
    return None


def actor_for(user: User) -> Actor:
    return Actor(role=ActorRole(UserRole(user.role).value), user_id=user.id)


@dataclass
class BookingResult:
    """A committed booking plus the notifications it raised."""
    booking: Booking
    notifications: Tuple[NotificationIntent, ...] = ()
    payload: dict = field(default_factory=dict)

    @property
    def is_linked_to_user(self) -> bool:
        return self.booking.owner_id is not None


class AdminLinkOutcome(str, enum.Enum):
    APPLIED = "applied"
    ALREADY_DONE = "already_done"
    NOT_ALLOWED = "not_allowed"
    EXPIRED = "expired"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


@dataclass
class AdminActionResult:
    outcome: AdminLinkOutcome
    scope: ActionScope
    booking_public_id: str
    status: Optional[BookingStatus] = None
    notifications: Tuple[NotificationIntent, ...] = ()
    payload: dict = field(default_factory=dict)


class BookingService:
    """
    Booking use cases for guests, customers, staff and admin email links.
    """

    def __init__(self, session: Session, issuer: Optional[ActionTokenIssuer] = None):
        self.session = session
        self.issuer = issuer or get_action_token_issuer()
        self.metrics = get_metrics_collector()

    # Lookups

    def get_by_public_id(self, public_id: str) -> Booking:
        booking = self.session.execute(
            select(Booking).where(Booking.public_id == public_id)
        ).scalar_one_or_none()
        if booking is None:
            raise NotFoundException("Booking", public_id)
        return booking

    def get(self, booking_ref: str) -> Booking:
        """Find a booking by internal UUID or public id."""
        try:
            booking_uuid = UUID(str(booking_ref))
        except ValueError:
            return self.get_by_public_id(booking_ref)

        booking = self.session.get(Booking, booking_uuid)
        if booking is None:
            raise NotFoundException("Booking", str(booking_ref))
        return booking

    def get_for_actor(self, booking_ref: str, user: User) -> Booking:
        """Owner, admin or technician may read a booking."""
        booking = self.get(booking_ref)
        if booking.owner_id != user.id and not user.is_staff:
            raise ForbiddenException("Access denied")
        return booking

    def list_by_phone(self, phone: str) -> List[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.phone == normalize_phone(phone))
            .order_by(Booking.created_at.desc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def list_for_user(
        self,
        user: User,
        status: Optional[BookingStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Booking], int]:
        """Newest first, paginated. Returns (bookings, total)."""
        conditions = [Booking.owner_id == user.id]
        if status is not None:
            conditions.append(Booking.status == status)

        total = self.session.execute(
            select(func.count(Booking.id)).where(*conditions)
        ).scalar_one()

        stmt = (
            select(Booking)
            .where(*conditions)
            .order_by(Booking.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all()), total

    # Creation

    def create_public(self, data: PublicBookingCreate, caller: Optional[User] = None) -> BookingResult:
        """
        Create a booking from the public form.

        A supplied userId is trusted only when it names an active account;
        anything else silently falls back to a guest booking. With no userId,
        the signed-in caller (if any) owns the booking.
        """
        owner = self._find_account(data.user_id) if data.user_id else caller

        if isinstance(data.service, str):
            service = self._get_service(data.service)
            service_id, snapshot = service.id, service.snapshot()
        else:
            service_id, snapshot = None, data.service.snapshot()

        note = (
            f"Booking created by logged-in user: {data.user_name or data.customer_name}"
            if owner else "Booking created by guest"
        )
        booking = self._new_booking(
            owner_id=owner.id if owner else None,
            customer_name=data.customer_name,
            phone=data.phone,
            email=data.email or data.user_email,
            address=data.address,
            comments=data.comments or "",
            service_id=service_id,
            service_snapshot=snapshot,
            date=data.date,
            time=data.time,
            platform=data.platform or "web",
            language=data.language or "en",
        )
        return self._commit_creation(booking, note, source="public", account=owner)

    def create_for_user(self, user: User, data: BookingCreate) -> BookingResult:
        """Create a booking for a signed-in account from a catalog service."""
        service = self._get_service(data.service_id)
        if data.technician_id is not None and self.session.get(Technician, data.technician_id) is None:
            raise NotFoundException("Technician", str(data.technician_id))

        booking = self._new_booking(
            owner_id=user.id,
            customer_name=user.full_name,
            phone=data.phone,
            email=user.email,
            address=data.address,
            problem_description=data.problem_description.strip(),
            service_id=service.id,
            service_snapshot=service.snapshot(),
            date=data.scheduled_date,
            time=data.scheduled_time,
            priority=data.priority,
            technician_id=data.technician_id,
        )
        note = f"Booking created by logged-in user: {user.full_name}"
        return self._commit_creation(booking, note, source="app", account=user)

    # Updates

    def update_details(self, booking_ref: str, user: User, data: BookingUpdate) -> Booking:
        """
        Edit contact details. The schedule can only change while pending.
        """
        booking = self.get(booking_ref)
        if booking.owner_id != user.id and user.role != UserRole.ADMIN:
            raise ForbiddenException("Access denied")
        if booking.status in TERMINAL_STATES:
            raise BadRequestException(
                f"Booking cannot be updated in {booking.status.value} status"
            )

        if data.address is not None and data.address.strip():
            booking.address = data.address.strip()
        if data.phone is not None:
            booking.phone = data.phone
        if data.problem_description is not None:
            booking.problem_description = data.problem_description.strip()

        if booking.status == BookingStatus.PENDING:
            if data.scheduled_date:
                booking.date = data.scheduled_date
            if data.scheduled_time:
                booking.time = data.scheduled_time
            booking.scheduled_at = normalize_schedule(booking.date, booking.time)

        self._commit(booking)
        return booking

    def transition(
        self,
        booking_ref: str,
        target: BookingStatus,
        user: User,
        notes: Optional[str] = None,
        technician_id: Optional[UUID] = None,
    ) -> BookingResult:
        """Staff status change."""
        if not user.is_staff:
            raise ForbiddenException("Access denied. Staff only.")
        if technician_id is not None and self.session.get(Technician, technician_id) is None:
            raise NotFoundException("Technician", str(technician_id))

        booking = self.get(booking_ref)
        return self._apply(booking, target, actor_for(user), note=notes, technician_id=technician_id)

    def cancel_guest(self, public_id: str, phone: str, reason: Optional[str] = None) -> BookingResult:
        """
        Guest cancellation, authorized by the phone number on the booking.

        Raises:
            ForbiddenException: phone does not match
            InvalidTransition: booking is past the customer-cancellable states
        """
        booking = self.get_by_public_id(public_id)
        if not phones_match(booking.phone, phone):
            logger.warning(
                "Guest cancellation rejected, phone mismatch",
                extra={"booking_id": public_id},
            )
            raise ForbiddenException("Phone number does not match booking")

        self._require_customer_cancellable(booking)
        return self._apply(booking, BookingStatus.CANCELLED, Actor(ActorRole.GUEST), reason=reason)

    def cancel_by_owner(self, booking_ref: str, user: User, reason: Optional[str] = None) -> BookingResult:
        booking = self.get(booking_ref)
        if booking.owner_id != user.id and user.role != UserRole.ADMIN:
            raise ForbiddenException("Access denied")

        self._require_customer_cancellable(booking)
        return self._apply(booking, BookingStatus.CANCELLED, actor_for(user), reason=reason)

    def submit_feedback(self, booking_ref: str, user: User, rating: int, comment: str = "") -> Booking:
        """Owner rates a completed booking once; the technician's rating follows."""
        booking = self.get(booking_ref)
        if booking.owner_id != user.id:
            raise ForbiddenException("Access denied")
        if booking.status != BookingStatus.COMPLETED:
            raise BadRequestException("Feedback can only be submitted for completed bookings")
        if booking.customer_feedback:
            raise BadRequestException("Feedback already submitted")

        booking.customer_feedback = {
            "rating": rating,
            "comment": (comment or "").strip(),
            "date": datetime.now(timezone.utc).isoformat(),
        }
        if booking.technician_id is not None:
            technician = self.session.get(Technician, booking.technician_id)
            if technician is not None:
                technician.record_rating(rating)

        self._commit(booking)
        logger.info("Feedback submitted", extra={"booking_id": booking.public_id, "rating": rating})
        return booking

    def track(self, booking_ref: str, user: User) -> dict:
        booking = self.get_for_actor(booking_ref, user)

        location = None
        if booking.technician_id is not None:
            technician = self.session.get(Technician, booking.technician_id)
            if (
                technician is not None
                and technician.current_latitude is not None
                and technician.current_longitude is not None
            ):
                location = {
                    "latitude": technician.current_latitude,
                    "longitude": technician.current_longitude,
                    "last_updated": technician.location_updated_at,
                }

        return {
            "booking_id": booking.public_id,
            "status": booking.status,
            "location": location,
            "estimated_arrival": ON_THE_WAY_ETA if booking.status == BookingStatus.ON_THE_WAY else None,
        }

    # Admin email links

    def admin_link_action(self, public_id: str, token: str, scope: ActionScope) -> AdminActionResult:
        """
        Apply a confirm/cancel link from the admin email.

        Never raises for link problems: every result is reported through
        AdminLinkOutcome so the route can always render a page. Clicking a
        link twice is harmless; the second click reports ALREADY_DONE.
        """
        scope = ActionScope(scope)
        target = BookingStatus.CONFIRMED if scope == ActionScope.ADMIN_CONFIRM else BookingStatus.CANCELLED
        result = AdminActionResult(outcome=AdminLinkOutcome.APPLIED, scope=scope, booking_public_id=public_id)

        try:
            self.issuer.verify_for(token, public_id, scope)
        except TokenExpired:
            result.outcome = AdminLinkOutcome.EXPIRED
            return self._record_link(result)
        except TokenMalformed:
            result.outcome = AdminLinkOutcome.INVALID
            return self._record_link(result)

        try:
            booking = self.get_by_public_id(public_id)
        except NotFoundException:
            result.outcome = AdminLinkOutcome.NOT_FOUND
            return self._record_link(result)

        result.status = booking.status
        if booking.status == target:
            result.outcome = AdminLinkOutcome.ALREADY_DONE
            return self._record_link(result)
        if not can_transition(booking.status, target):
            result.outcome = AdminLinkOutcome.NOT_ALLOWED
            return self._record_link(result)

        try:
            applied = self._apply(booking, target, Actor(ActorRole.ADMIN_LINK), via_admin_link=True)
        except BookingConflict:
            result.outcome = AdminLinkOutcome.CONFLICT
            return self._record_link(result)

        result.status = applied.booking.status
        result.notifications = applied.notifications
        result.payload = applied.payload
        return self._record_link(result)

    # Internals

    def _record_link(self, result: AdminActionResult) -> AdminActionResult:
        self.metrics.increment_admin_link_actions(result.scope.value, result.outcome.value)
        logger.info(
            "Admin link handled",
            extra={
                "booking_id": result.booking_public_id,
                "scope": result.scope.value,
                "outcome": result.outcome.value,
            },
        )
        return result

    def _find_account(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        try:
            account = self.session.get(User, UUID(str(user_id)))
        except ValueError:
            logger.info("Ignoring malformed userId on public booking", extra={"user_id": user_id})
            return None
        if account is None or not account.is_active:
            logger.info("userId does not match an account, creating guest booking", extra={"user_id": user_id})
            return None
        return account

    def _get_service(self, service_id) -> Service:
        try:
            service_uuid = service_id if isinstance(service_id, UUID) else UUID(str(service_id))
        except ValueError:
            raise NotFoundException("Service", str(service_id))
        service = self.session.get(Service, service_uuid)
        if service is None or not service.active:
            raise NotFoundException("Service", str(service_id))
        return service

    def _new_booking(self, **fields) -> Booking:
        booking = Booking(
            public_id=generate_public_id(),
            order_number=generate_order_number(),
            status=BookingStatus.PENDING,
            status_history=[],
            visit_charge=settings.visit_charge,
            scheduled_at=normalize_schedule(fields.get("date"), fields.get("time")),
            **fields,
        )
        booking.reprice(booking.service_snapshot.get("price", 0))
        return booking

    def _commit_creation(self, booking: Booking, note: str, source: str, account: Optional[User]) -> BookingResult:
        booking.add_history(BookingStatus.PENDING, note)
        self.session.add(booking)
        self.session.commit()

        self.metrics.increment_bookings_created(source)
        logger.info(
            "Booking created",
            extra={
                "booking_id": booking.public_id,
                "order_number": booking.order_number,
                "source": source,
                "linked_to_user": booking.owner_id is not None,
            },
        )

        payload = build_booking_payload(
            booking,
            account_email=account.email if account else None,
            confirm_url=self.issuer.build_link(booking.public_id, ActionScope.ADMIN_CONFIRM),
            cancel_url=self.issuer.build_link(booking.public_id, ActionScope.ADMIN_CANCEL),
        )
        return BookingResult(booking, notifications_for_creation(), payload)

    def _require_customer_cancellable(self, booking: Booking) -> None:
        if booking.status not in CUSTOMER_CANCELLABLE:
            raise InvalidTransition(
                booking.status,
                BookingStatus.CANCELLED,
                f"Booking cannot be cancelled in {booking.status.value} status",
            )

    def _apply(self, booking: Booking, target: BookingStatus, actor: Actor, **kwargs) -> BookingResult:
        outcome = apply_transition(booking, target, actor, **kwargs)
        self._commit(booking)

        self.metrics.increment_transitions(
            outcome.previous_status.value, outcome.status.value, actor.role.value
        )
        payload = build_booking_payload(booking, account_email=self._account_email(booking))
        return BookingResult(booking, outcome.notifications, payload)

    def _commit(self, booking: Booking) -> None:
        """Commit with the version check; a lost race becomes BookingConflict."""
        public_id = booking.public_id
        try:
            self.session.commit()
        except StaleDataError as e:
            self.session.rollback()
            logger.warning("Concurrent booking update lost", extra={"booking_id": public_id})
            raise BookingConflict(public_id) from e

    def _account_email(self, booking: Booking) -> Optional[str]:
        if booking.owner_id is None:
            return None
        owner = self.session.get(User, booking.owner_id)
        return owner.email if owner else None
