"""
Request and response schemas for the booking API.

Bodies and responses use camelCase on the wire (customerName, bookingId)
while Python code uses snake_case field names.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from coolfix.lib.phone import validate_international_phone
from coolfix.models.bookings import Booking, BookingPriority, BookingStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _required_text(value: Optional[str], message: str) -> str:
    value = value.strip() if isinstance(value, str) else ""
    if not value:
        raise ValueError(message)
    return value


def _optional_phone(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return validate_international_phone(value)


# Requests
class ServiceSelection(CamelModel):
    """Inline service sent by the booking form instead of a catalog id."""
    name: Optional[str] = None
    title_key: Optional[str] = None
    icon: Optional[str] = None
    base_price: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = None

    def snapshot(self) -> dict:
        return {
            "name": self.title_key or self.name or "AC Service",
            "icon": self.icon or "❄️",
            "price": float(self.base_price or 0),
            "category": self.category or "general",
        }


class PublicBookingCreate(CamelModel):
    """
    Guest booking form.

    Every required field is validated with its own message so the first
    error can be shown to the customer as-is.
    """
    customer_name: Optional[str] = Field(default=None, validate_default=True)
    phone: Optional[str] = Field(default=None, validate_default=True)
    email: Optional[EmailStr] = None
    service: Union[str, ServiceSelection, None] = Field(default=None, validate_default=True)
    date: Optional[str] = Field(default=None, validate_default=True)
    time: Optional[str] = Field(default=None, validate_default=True)
    address: Optional[str] = Field(default=None, validate_default=True)
    comments: Optional[str] = None
    user_id: Optional[str] = None
    user_email: Optional[EmailStr] = None
    user_name: Optional[str] = None
    platform: Optional[str] = None
    language: Optional[str] = None

    @field_validator("customer_name")
    @classmethod
    def validate_customer_name(cls, v):
        v = _required_text(v, "Customer name is required")
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        _required_text(v, "Phone number is required")
        return validate_international_phone(v)

    @field_validator("email", "user_email", mode="wrap")
    @classmethod
    def validate_email(cls, v, handler):
        # Blank means "not given"; EmailStr does the address check
        if v is None or not str(v).strip():
            return None
        try:
            return handler(str(v).strip().lower())
        except ValidationError:
            raise ValueError("Please enter a valid email") from None

    @field_validator("service")
    @classmethod
    def validate_service(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("Service is required")
        return v.strip() if isinstance(v, str) else v

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        return _required_text(v, "Date is required")

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        return _required_text(v, "Time is required")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        return _required_text(v, "Address is required")

    @field_validator("comments")
    @classmethod
    def strip_comments(cls, v):
        return (v or "").strip()


class GuestCancelRequest(CamelModel):
    phone: Optional[str] = Field(default=None, validate_default=True)
    reason: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return _required_text(v, "Phone number is required")


class BookingCreate(CamelModel):
    """Booking made from the app by a signed-in customer."""
    service_id: UUID
    scheduled_date: str = Field(min_length=1)
    scheduled_time: str = Field(min_length=1)
    address: str = Field(min_length=1)
    phone: str
    problem_description: str = ""
    priority: BookingPriority = BookingPriority.NORMAL
    technician_id: Optional[UUID] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_international_phone(v)

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        return _required_text(v, "Address is required")


class BookingUpdate(CamelModel):
    address: Optional[str] = None
    phone: Optional[str] = None
    problem_description: Optional[str] = None
    scheduled_date: Optional[str] = None
    scheduled_time: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return _optional_phone(v)


class StatusUpdateRequest(CamelModel):
    status: BookingStatus
    notes: Optional[str] = None
    technician_id: Optional[UUID] = None


class CancelRequest(CamelModel):
    reason: Optional[str] = None


class FeedbackRequest(CamelModel):
    rating: int = Field(ge=1, le=5)
    comment: str = ""


# Responses
class StatusHistoryEntry(CamelModel):
    status: BookingStatus
    timestamp: str
    note: str = ""


class BookingResponse(CamelModel):
    id: UUID
    booking_id: str
    order_number: str
    user_id: Optional[UUID] = None
    customer_name: str
    phone: str
    email: Optional[str] = None
    address: str
    comments: str = ""
    problem_description: str = ""
    service_id: Optional[UUID] = None
    service: Dict[str, Any]
    date: Optional[str] = None
    time: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    priority: BookingPriority
    platform: str
    language: str
    service_price: float
    visit_charge: float
    total_amount: float
    status: BookingStatus
    status_history: List[StatusHistoryEntry]
    technician_id: Optional[UUID] = None
    technician_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    customer_feedback: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            booking_id=booking.public_id,
            order_number=booking.order_number,
            user_id=booking.owner_id,
            customer_name=booking.customer_name,
            phone=booking.phone,
            email=booking.email,
            address=booking.address,
            comments=booking.comments or "",
            problem_description=booking.problem_description or "",
            service_id=booking.service_id,
            service=booking.service_snapshot or {},
            date=booking.date,
            time=booking.time,
            scheduled_at=booking.scheduled_at,
            priority=booking.priority,
            platform=booking.platform,
            language=booking.language,
            service_price=booking.service_price,
            visit_charge=booking.visit_charge,
            total_amount=booking.total_amount,
            status=booking.status,
            status_history=[StatusHistoryEntry(**entry) for entry in booking.status_history or []],
            technician_id=booking.technician_id,
            technician_notes=booking.technician_notes,
            cancellation_reason=booking.cancellation_reason,
            cancelled_at=booking.cancelled_at,
            completed_at=booking.completed_at,
            customer_feedback=booking.customer_feedback,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class BookingCreatedResponse(CamelModel):
    message: str = "Booking created successfully"
    booking: BookingResponse
    booking_id: str
    is_linked_to_user: bool


class BookingActionResponse(CamelModel):
    message: str
    booking: BookingResponse


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    pages: int


class BookingListResponse(CamelModel):
    bookings: List[BookingResponse]
    pagination: Pagination


class TechnicianLocation(CamelModel):
    latitude: float
    longitude: float
    last_updated: Optional[datetime] = None


class TrackResponse(CamelModel):
    booking_id: str
    status: BookingStatus
    location: Optional[TechnicianLocation] = None
    estimated_arrival: Optional[str] = None
