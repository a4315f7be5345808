"""
Public booking routes - no session token required.

Provides:
- POST /bookings/public: booking form (guest, or linked to an account)
- GET /bookings/public/{public_id}: look up one booking
- GET /bookings/phone/{phone}: bookings for a phone number
- PUT /bookings/public/cancel/{public_id}: guest cancellation (phone-verified)
- GET /bookings/admin/confirm|cancel/{public_id}?token=: admin email links

The admin link endpoints are opened from an email client, so they always
answer 200 with a readable HTML page, whatever the outcome.
"""
from html import escape
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi.responses import HTMLResponse

from coolfix.api.dependencies import get_booking_service, get_dispatcher, get_optional_user
from coolfix.api.schemas import (
    BookingActionResponse,
    BookingCreatedResponse,
    BookingResponse,
    GuestCancelRequest,
    PublicBookingCreate,
)
from coolfix.lib.action_tokens import ActionScope
from coolfix.lib.logging import get_logger
from coolfix.lib.settings import settings
from coolfix.models.users import User
from coolfix.services.booking_service import (
    AdminActionResult,
    AdminLinkOutcome,
    BookingResult,
    BookingService,
)
from coolfix.services.notification_service import NotificationDispatcher


logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings", "public"])


def schedule_notifications(
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher,
    result: BookingResult,
) -> None:
    """Queue dispatch to run after the response is sent."""
    if result.notifications:
        background_tasks.add_task(dispatcher.dispatch, result.notifications, result.payload)


@router.post(
    "/public",
    response_model=BookingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a booking from the public form",
)
def create_public_booking(
    body: PublicBookingCreate,
    background_tasks: BackgroundTasks,
    caller: Optional[User] = Depends(get_optional_user),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingCreatedResponse:
    """
    Create a booking without a session.

    A userId is linked only when it names an existing account; without one,
    a valid Bearer token sent along links the booking to its account. The customer
    receives a "received" email and the admin a new-booking alert carrying
    confirm/cancel links.
    """
    result = service.create_public(body, caller=caller)
    schedule_notifications(background_tasks, dispatcher, result)

    return BookingCreatedResponse(
        booking=BookingResponse.from_booking(result.booking),
        booking_id=result.booking.public_id,
        is_linked_to_user=result.is_linked_to_user,
    )


@router.get("/public/{public_id}", response_model=BookingResponse)
def get_public_booking(
    public_id: str,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return BookingResponse.from_booking(service.get_by_public_id(public_id))


@router.get("/phone/{phone}", response_model=List[BookingResponse])
def list_bookings_by_phone(
    phone: str,
    service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    """Bookings made with this phone number, newest first."""
    return [BookingResponse.from_booking(b) for b in service.list_by_phone(phone)]


@router.put("/public/cancel/{public_id}", response_model=BookingActionResponse)
def cancel_public_booking(
    public_id: str,
    body: GuestCancelRequest,
    background_tasks: BackgroundTasks,
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingActionResponse:
    """
    Guest cancellation.

    Returns 403 when the phone does not match the booking and 400 when the
    booking is no longer pending or confirmed.
    """
    result = service.cancel_guest(public_id, body.phone, body.reason)
    schedule_notifications(background_tasks, dispatcher, result)

    return BookingActionResponse(
        message="Booking cancelled successfully",
        booking=BookingResponse.from_booking(result.booking),
    )


# Admin email links

_LINK_PAGES = {
    AdminLinkOutcome.APPLIED: ("Booking {done}", "Booking {id} is now {done}. The customer will be notified."),
    AdminLinkOutcome.ALREADY_DONE: ("Already {done}", "Booking {id} is already {done}. No changes were made."),
    AdminLinkOutcome.NOT_ALLOWED: ("Action not possible", "Booking {id} is {status} and cannot be {done}."),
    AdminLinkOutcome.EXPIRED: ("Link expired", "This link has expired. Please manage booking {id} from the admin panel."),
    AdminLinkOutcome.INVALID: ("Invalid link", "This link is not valid for booking {id}."),
    AdminLinkOutcome.NOT_FOUND: ("Booking not found", "Booking {id} was not found."),
    AdminLinkOutcome.CONFLICT: (
        "Booking was just changed",
        "Booking {id} was updated by someone else at the same moment. Open the link again to retry.",
    ),
}

_PAGE_COLORS = {
    AdminLinkOutcome.APPLIED: "#16a34a",
    AdminLinkOutcome.ALREADY_DONE: "#2563eb",
}


def render_admin_page(result: AdminActionResult) -> str:
    """HTML page describing what the admin link did."""
    done = "confirmed" if result.scope == ActionScope.ADMIN_CONFIRM else "cancelled"
    current = result.status.value.replace("_", " ") if result.status else "unknown"
    title, message = _LINK_PAGES[result.outcome]
    title = title.format(done=done)
    message = message.format(id=result.booking_public_id, done=done, status=current)
    color = _PAGE_COLORS.get(result.outcome, "#d97706")

    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{escape(title)}</title>
  </head>
  <body style="font-family: Arial, sans-serif; background: #f3f4f6; margin: 0; padding: 40px 16px;">
    <div style="max-width: 480px; margin: 0 auto; background: #fff; border-radius: 8px; padding: 32px; text-align: center;">
      <h1 style="color: {color}; font-size: 22px;">{escape(title)}</h1>
      <p style="color: #374151;">{escape(message)}</p>
      <p style="color: #9ca3af; font-size: 12px;">{escape(settings.app_name)}</p>
    </div>
  </body>
</html>
"""


def _handle_admin_link(
    public_id: str,
    token: str,
    scope: ActionScope,
    background_tasks: BackgroundTasks,
    service: BookingService,
    dispatcher: NotificationDispatcher,
) -> HTMLResponse:
    result = service.admin_link_action(public_id, token, scope)
    if result.notifications:
        background_tasks.add_task(dispatcher.dispatch, result.notifications, result.payload)
    return HTMLResponse(content=render_admin_page(result), status_code=status.HTTP_200_OK)


@router.get("/admin/confirm/{public_id}", response_class=HTMLResponse)
def admin_confirm_booking(
    public_id: str,
    background_tasks: BackgroundTasks,
    token: str = Query("", description="Signed action token from the admin email"),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> HTMLResponse:
    return _handle_admin_link(public_id, token, ActionScope.ADMIN_CONFIRM, background_tasks, service, dispatcher)


@router.get("/admin/cancel/{public_id}", response_class=HTMLResponse)
def admin_cancel_booking(
    public_id: str,
    background_tasks: BackgroundTasks,
    token: str = Query("", description="Signed action token from the admin email"),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> HTMLResponse:
    return _handle_admin_link(public_id, token, ActionScope.ADMIN_CANCEL, background_tasks, service, dispatcher)
