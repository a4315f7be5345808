"""
Tests for BookingService against the test database.
"""
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from coolfix.api.middleware.error_handler import (
    BadRequestException,
    ForbiddenException,
    NotFoundException,
)
from coolfix.api.schemas import BookingCreate, PublicBookingCreate
from coolfix.lib.action_tokens import ActionScope
from coolfix.lib.db import SessionLocal
from coolfix.lib.metrics import get_metrics_collector
from coolfix.models.bookings import Booking, BookingStatus
from coolfix.models.technicians import Technician
from coolfix.services.booking_lifecycle import BookingConflict, InvalidTransition
from coolfix.services.booking_service import (
    AdminLinkOutcome,
    BookingService,
    normalize_schedule,
)
from coolfix.services.notification_policy import NotificationEvent


@pytest.fixture
def service(db_session, issuer):
    return BookingService(db_session, issuer)


@pytest.fixture
def guest_booking(service, public_booking_body):
    return service.create_public(PublicBookingCreate.model_validate(public_booking_body)).booking


@pytest.mark.unit
@pytest.mark.parametrize("date_text,time_text,expected", [
    ("2026-11-02", "14:30", datetime(2026, 11, 2, 14, 30, tzinfo=timezone.utc)),
    ("2026-11-02T00:00:00.000Z", "2:30 PM", datetime(2026, 11, 2, 14, 30, tzinfo=timezone.utc)),
    ("2026-11-02", "10:00 AM - 12:00 PM", datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)),
    ("tomorrow", "10:00", None),
    ("2026-11-02", "morning", None),
    (None, "10:00", None),
])
def test_normalize_schedule(date_text, time_text, expected):
    assert normalize_schedule(date_text, time_text) == expected


@pytest.mark.integration
class TestCreation:

    def test_guest_booking(self, service, public_booking_body):
        result = service.create_public(PublicBookingCreate.model_validate(public_booking_body))
        booking = result.booking

        assert booking.public_id.startswith("BK")
        assert booking.order_number.startswith("ORD-")
        assert booking.owner_id is None
        assert booking.status == BookingStatus.PENDING
        assert booking.service_price == 3000
        assert booking.visit_charge == 200
        assert booking.total_amount == 3200
        assert booking.status_history[0]["note"] == "Booking created by guest"
        assert booking.scheduled_at == datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)
        assert result.is_linked_to_user is False
        assert [i.event for i in result.notifications] == [
            NotificationEvent.RECEIVED,
            NotificationEvent.NEW_BOOKING_ALERT,
        ]
        assert "/bookings/admin/confirm/" in result.payload["confirm_url"]
        assert get_metrics_collector().get_counter_value("bookings_created_total", {"source": "public"}) == 1

    def test_links_existing_account(self, service, public_booking_body, customer):
        body = dict(public_booking_body, userId=str(customer.id), userName="Ayesha K")

        result = service.create_public(PublicBookingCreate.model_validate(body))

        assert result.booking.owner_id == customer.id
        assert result.is_linked_to_user
        assert result.booking.status_history[0]["note"] == "Booking created by logged-in user: Ayesha K"
        assert result.payload["account_email"] == customer.email

    @pytest.mark.parametrize("user_id", ["not-a-uuid", str(uuid4())])
    def test_unknown_account_falls_back_to_guest(self, service, public_booking_body, user_id):
        result = service.create_public(PublicBookingCreate.model_validate(dict(public_booking_body, userId=user_id)))

        assert result.booking.owner_id is None

    def test_catalog_service_snapshot(self, service, public_booking_body, ac_service):
        body = dict(public_booking_body, service=str(ac_service.id))

        booking = service.create_public(PublicBookingCreate.model_validate(body)).booking

        assert booking.service_id == ac_service.id
        assert booking.service_snapshot == {"name": "AC Repair", "icon": "❄️", "price": 3000.0, "category": "ac"}
        assert booking.total_amount == 3200

    def test_unknown_catalog_service(self, service, public_booking_body):
        with pytest.raises(NotFoundException):
            service.create_public(PublicBookingCreate.model_validate(dict(public_booking_body, service=str(uuid4()))))

    def test_client_total_is_ignored(self, service, public_booking_body):
        body = dict(public_booking_body, totalAmount=1, servicePrice=1)

        booking = service.create_public(PublicBookingCreate.model_validate(body)).booking

        assert booking.total_amount == 3200

    def test_account_booking_with_technician_stays_pending(self, service, customer, ac_service, technician):
        data = BookingCreate(
            service_id=ac_service.id,
            scheduled_date="2026-11-02",
            scheduled_time="10:00",
            address="House 12, Lahore",
            phone="+923001234567",
            technician_id=technician.id,
        )

        booking = service.create_for_user(customer, data).booking

        assert booking.status == BookingStatus.PENDING
        assert booking.technician_id == technician.id
        assert booking.email == customer.email
        assert booking.customer_name == "Ayesha Khan"


@pytest.mark.integration
class TestGuestCancellation:

    def test_phone_mismatch_is_forbidden(self, service, guest_booking):
        with pytest.raises(ForbiddenException, match="Phone number does not match booking"):
            service.cancel_guest(guest_booking.public_id, "+923009999999")

        assert service.get_by_public_id(guest_booking.public_id).status == BookingStatus.PENDING

    def test_cancel_with_matching_phone(self, service, guest_booking):
        result = service.cancel_guest(guest_booking.public_id, "+92 300 1234567", reason="Fixed itself")

        assert result.booking.status == BookingStatus.CANCELLED
        assert result.booking.cancellation_reason == "Fixed itself"
        assert [i.event for i in result.notifications] == [
            NotificationEvent.CANCELLED,
            NotificationEvent.CANCELLATION_ALERT,
        ]

    def test_cannot_cancel_once_assigned(self, service, guest_booking, admin):
        service.transition(guest_booking.public_id, BookingStatus.CONFIRMED, admin)
        service.transition(guest_booking.public_id, BookingStatus.ASSIGNED, admin)

        with pytest.raises(InvalidTransition, match="cannot be cancelled in assigned status"):
            service.cancel_guest(guest_booking.public_id, "+923001234567")


@pytest.mark.integration
class TestStaffTransitions:

    def test_customer_is_not_staff(self, service, guest_booking, customer):
        with pytest.raises(ForbiddenException):
            service.transition(guest_booking.public_id, BookingStatus.ON_THE_WAY, customer)

    def test_unknown_technician(self, service, guest_booking, admin):
        with pytest.raises(NotFoundException):
            service.transition(guest_booking.public_id, BookingStatus.CONFIRMED, admin, technician_id=uuid4())

    def test_transition_is_counted(self, service, guest_booking, admin):
        service.transition(guest_booking.public_id, BookingStatus.CONFIRMED, admin)

        assert get_metrics_collector().get_counter_value(
            "booking_transitions_total",
            {"from_status": "pending", "to_status": "confirmed", "actor": "admin"},
        ) == 1

    def test_version_increments(self, service, guest_booking, admin):
        version = guest_booking.version

        service.transition(guest_booking.public_id, BookingStatus.CONFIRMED, admin)

        assert guest_booking.version == version + 1


@pytest.mark.integration
def test_concurrent_writer_gets_conflict(guest_booking, admin, issuer):
    """Two requests read the same booking; the second commit loses."""
    first_session, second_session = SessionLocal(), SessionLocal()
    try:
        first = BookingService(first_session, issuer)
        second = BookingService(second_session, issuer)

        # Both read before either writes; held so each session keeps its copy
        first_copy = first.get_by_public_id(guest_booking.public_id)
        second_copy = second.get_by_public_id(guest_booking.public_id)
        assert first_copy.version == second_copy.version

        first.transition(guest_booking.public_id, BookingStatus.CONFIRMED, admin)

        with pytest.raises(BookingConflict):
            second.cancel_guest(guest_booking.public_id, "+923001234567")
    finally:
        first_session.close()
        second_session.close()

    with SessionLocal() as session:
        booking = session.get(Booking, guest_booking.id)
        assert booking.status == BookingStatus.CONFIRMED
        assert [h["status"] for h in booking.status_history] == ["pending", "confirmed"]


@pytest.mark.integration
class TestAdminLinks:

    def test_confirm_then_confirm_again(self, service, guest_booking, issuer):
        token = issuer.issue(guest_booking.public_id, ActionScope.ADMIN_CONFIRM)

        first = service.admin_link_action(guest_booking.public_id, token, ActionScope.ADMIN_CONFIRM)
        second = service.admin_link_action(guest_booking.public_id, token, ActionScope.ADMIN_CONFIRM)

        assert first.outcome == AdminLinkOutcome.APPLIED
        assert [i.event for i in first.notifications] == [NotificationEvent.CONFIRMED]
        assert second.outcome == AdminLinkOutcome.ALREADY_DONE
        assert second.notifications == ()
        history = service.get_by_public_id(guest_booking.public_id).status_history
        assert [h["status"] for h in history] == ["pending", "confirmed"]

    def test_token_for_other_booking(self, service, guest_booking, issuer):
        token = issuer.issue("BK0000000000000000", ActionScope.ADMIN_CONFIRM)

        result = service.admin_link_action(guest_booking.public_id, token, ActionScope.ADMIN_CONFIRM)

        assert result.outcome == AdminLinkOutcome.INVALID
        assert service.get_by_public_id(guest_booking.public_id).status == BookingStatus.PENDING

    def test_cancel_token_cannot_confirm(self, service, guest_booking, issuer):
        token = issuer.issue(guest_booking.public_id, ActionScope.ADMIN_CANCEL)

        result = service.admin_link_action(guest_booking.public_id, token, ActionScope.ADMIN_CONFIRM)

        assert result.outcome == AdminLinkOutcome.INVALID

    def test_expired(self, service, guest_booking, issuer):
        issued = datetime(2020, 1, 1, tzinfo=timezone.utc)
        token = issuer.issue(guest_booking.public_id, ActionScope.ADMIN_CONFIRM, issued_at=issued)

        result = service.admin_link_action(guest_booking.public_id, token, ActionScope.ADMIN_CONFIRM)

        assert result.outcome == AdminLinkOutcome.EXPIRED

    def test_unknown_booking(self, service, issuer):
        token = issuer.issue("BK404", ActionScope.ADMIN_CANCEL)

        assert service.admin_link_action("BK404", token, ActionScope.ADMIN_CANCEL).outcome == AdminLinkOutcome.NOT_FOUND

    def test_cancel_completed_booking_not_allowed(self, service, guest_booking, issuer, admin):
        service.transition(guest_booking.public_id, BookingStatus.COMPLETED, admin)
        token = issuer.issue(guest_booking.public_id, ActionScope.ADMIN_CANCEL)

        result = service.admin_link_action(guest_booking.public_id, token, ActionScope.ADMIN_CANCEL)

        assert result.outcome == AdminLinkOutcome.NOT_ALLOWED
        assert result.status == BookingStatus.COMPLETED
        assert get_metrics_collector().get_counter_value(
            "admin_link_actions_total", {"scope": "admin-cancel", "outcome": "not_allowed"}
        ) == 1


@pytest.mark.integration
class TestFeedback:

    def test_feedback_updates_technician_rating(self, service, customer, ac_service, technician, admin, db_session):
        data = BookingCreate(
            service_id=ac_service.id,
            scheduled_date="2026-11-02",
            scheduled_time="10:00",
            address="House 12",
            phone="+923001234567",
        )
        booking = service.create_for_user(customer, data).booking
        service.transition(booking.public_id, BookingStatus.CONFIRMED, admin)
        service.transition(booking.public_id, BookingStatus.ASSIGNED, admin, technician_id=technician.id)
        service.transition(booking.public_id, BookingStatus.COMPLETED, admin)

        service.submit_feedback(str(booking.id), customer, 4, "Quick fix")

        assert booking.customer_feedback["rating"] == 4
        profile = db_session.get(Technician, technician.id)
        assert profile.rating == 4.0
        assert profile.total_ratings == 1

        with pytest.raises(BadRequestException, match="Feedback already submitted"):
            service.submit_feedback(str(booking.id), customer, 5)

    def test_feedback_requires_completion(self, service, customer, public_booking_body):
        body = dict(public_booking_body, userId=str(customer.id))
        booking = service.create_public(PublicBookingCreate.model_validate(body)).booking

        with pytest.raises(BadRequestException, match="only be submitted for completed"):
            service.submit_feedback(booking.public_id, customer, 5)
