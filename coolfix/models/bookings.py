"""
Booking model - repair visits requested by customers or guests.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum
import secrets

from sqlalchemy import String, Text, Numeric, Integer, DateTime, ForeignKey, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from coolfix.lib.db import JSONType, Base


class BookingStatus(str, enum.Enum):
    """Booking status state machine (transitions live in services.booking_lifecycle)."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    ON_THE_WAY = "on_the_way"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingPriority(str, enum.Enum):
    NORMAL = "normal"
    EMERGENCY = "emergency"


def generate_public_id(now: Optional[datetime] = None) -> str:
    """Public reference shared with customers, e.g. BK1718000000123042."""
    now = now or datetime.now(timezone.utc)
    return f"BK{int(now.timestamp() * 1000)}{secrets.randbelow(1000):03d}"


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Human-readable order number, e.g. ORD-20260216-4821."""
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{1000 + secrets.randbelow(9000)}"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Booking(Base):
    """
    Booking entity - service appointments.

    Status only changes through services.booking_lifecycle.apply_transition.
    Writes are guarded by `version` so two actors changing the same booking
    cannot silently overwrite each other.
    """
    __tablename__ = "bookings"

    # Identifiers
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    public_id: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        index=True,
        default=generate_public_id,
    )
    order_number: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        default=generate_order_number,
    )

    # Linked account (absent for guest bookings)
    owner_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Contact
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    comments: Mapped[str] = mapped_column(Text, nullable=False, default="")
    problem_description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Service at booking time
    service_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("services.id", ondelete="SET NULL"),
        nullable=True,
    )
    service_snapshot: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        comment="{name, icon, price, category} copied from the catalog",
    )

    # Schedule as sent by the client plus the normalized datetime
    date: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    time: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    priority: Mapped[BookingPriority] = mapped_column(
        SQLEnum(BookingPriority, name="booking_priority", values_callable=_enum_values),
        nullable=False,
        default=BookingPriority.NORMAL,
    )
    platform: Mapped[str] = mapped_column(String(16), nullable=False, default="web")
    language: Mapped[str] = mapped_column(String(8), nullable=False, default="en")

    # Pricing
    service_price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    visit_charge: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    total_amount: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)

    # Lifecycle
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, name="booking_status", values_callable=_enum_values),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )
    status_history: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Append-only [{status, timestamp, note}]",
    )

    technician_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    technician_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    customer_feedback: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="{rating, comment, date}",
    )

    # Optimistic lock
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __mapper_args__ = {"version_id_col": version}

    def reprice(self, service_price: float, visit_charge: Optional[float] = None) -> None:
        """Set the service price and recompute the total; client totals are never trusted."""
        self.service_price = float(service_price or 0)
        if visit_charge is not None:
            self.visit_charge = float(visit_charge)
        self.total_amount = float(self.service_price) + float(self.visit_charge or 0)

    def add_history(self, status: BookingStatus, note: str, at: Optional[datetime] = None) -> None:
        """Append one status history entry. JSON columns need a new list to register the change."""
        at = at or datetime.now(timezone.utc)
        entry = {"status": BookingStatus(status).value, "timestamp": at.isoformat(), "note": note}
        self.status_history = [*(self.status_history or []), entry]

    @property
    def is_guest(self) -> bool:
        return self.owner_id is None

    def __repr__(self) -> str:
        return f"<Booking(public_id={self.public_id}, status={self.status}, owner_id={self.owner_id})>"
