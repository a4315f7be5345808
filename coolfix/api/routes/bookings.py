"""
Booking routes for signed-in accounts (Bearer session token).

Provides:
- POST /bookings: create from a catalog service
- GET /bookings/my-bookings: the caller's bookings, paginated
- GET /bookings/{booking_id}: owner, admin or technician
- PUT /bookings/{booking_id}: edit contact details / schedule
- PUT /bookings/{booking_id}/cancel: owner or admin, while pending/confirmed
- PUT /bookings/{booking_id}/status: staff status change
- POST /bookings/{booking_id}/feedback: owner rating after completion
- GET /bookings/{booking_id}/track: technician location and ETA

{booking_id} accepts the internal UUID or the public booking id.
"""
import math
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from coolfix.api.dependencies import (
    get_booking_service,
    get_current_user,
    get_dispatcher,
    require_staff,
)
from coolfix.api.routes.public_bookings import schedule_notifications
from coolfix.api.schemas import (
    BookingActionResponse,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingUpdate,
    CancelRequest,
    FeedbackRequest,
    Pagination,
    StatusUpdateRequest,
    TrackResponse,
)
from coolfix.lib.logging import get_logger
from coolfix.models.bookings import BookingStatus
from coolfix.models.users import User
from coolfix.services.booking_service import BookingService
from coolfix.services.notification_service import NotificationDispatcher


logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingActionResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    body: BookingCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingActionResponse:
    """
    Create a booking for the signed-in account.

    Returns 404 when the service (or the requested technician) does not exist.
    The booking starts pending even when a technician is named.
    """
    result = service.create_for_user(user, body)
    schedule_notifications(background_tasks, dispatcher, result)

    return BookingActionResponse(
        message="Booking created successfully",
        booking=BookingResponse.from_booking(result.booking),
    )


@router.get("/my-bookings", response_model=BookingListResponse)
def list_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    bookings, total = service.list_for_user(user, status=status_filter, page=page, limit=limit)

    return BookingListResponse(
        bookings=[BookingResponse.from_booking(b) for b in bookings],
        pagination=Pagination(total=total, page=page, limit=limit, pages=math.ceil(total / limit)),
    )


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return BookingResponse.from_booking(service.get_for_actor(booking_id, user))


@router.put("/{booking_id}", response_model=BookingActionResponse)
def update_booking(
    booking_id: str,
    body: BookingUpdate,
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
) -> BookingActionResponse:
    """
    Edit address, phone or problem description.
    scheduledDate/scheduledTime are applied only while the booking is pending.
    """
    booking = service.update_details(booking_id, user, body)
    return BookingActionResponse(
        message="Booking updated successfully",
        booking=BookingResponse.from_booking(booking),
    )


@router.put("/{booking_id}/cancel", response_model=BookingActionResponse)
def cancel_booking(
    booking_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[CancelRequest] = None,
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingActionResponse:
    result = service.cancel_by_owner(booking_id, user, body.reason if body else None)
    schedule_notifications(background_tasks, dispatcher, result)

    return BookingActionResponse(
        message="Booking cancelled successfully",
        booking=BookingResponse.from_booking(result.booking),
    )


@router.put("/{booking_id}/status", response_model=BookingActionResponse)
def update_booking_status(
    booking_id: str,
    body: StatusUpdateRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_staff),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingActionResponse:
    """
    Staff status change (admin or technician).

    Returns 400 when the transition is not allowed from the current status
    and 409 when another request changed the booking first.
    """
    result = service.transition(
        booking_id,
        body.status,
        user,
        notes=body.notes,
        technician_id=body.technician_id,
    )
    schedule_notifications(background_tasks, dispatcher, result)

    return BookingActionResponse(
        message=f"Booking status updated to {result.booking.status.value}",
        booking=BookingResponse.from_booking(result.booking),
    )


@router.post("/{booking_id}/feedback", response_model=BookingActionResponse)
def submit_feedback(
    booking_id: str,
    body: FeedbackRequest,
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
) -> BookingActionResponse:
    booking = service.submit_feedback(booking_id, user, body.rating, body.comment)
    return BookingActionResponse(
        message="Feedback submitted successfully",
        booking=BookingResponse.from_booking(booking),
    )


@router.get("/{booking_id}/track", response_model=TrackResponse)
def track_booking(
    booking_id: str,
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
) -> TrackResponse:
    return TrackResponse(**service.track(booking_id, user))
