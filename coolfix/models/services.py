"""
Service model - appliance repair services that can be booked.
"""
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Numeric, Boolean, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from coolfix.lib.db import Base


class ServiceCategory(str, enum.Enum):
    """Service category enumeration."""
    AC = "ac"
    REFRIGERATOR = "refrigerator"
    WASHING_MACHINE = "washing-machine"
    STOVE = "stove"
    GENERAL = "general"


class Service(Base):
    """
    Service entity - catalog entries.
    Bookings copy name/icon/price/category at booking time, so edits here never
    change historical bookings.
    """
    __tablename__ = "services"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[ServiceCategory] = mapped_column(
        SQLEnum(ServiceCategory, name="service_category", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    icon: Mapped[str] = mapped_column(String(16), nullable=False, default="🔧")

    base_price: Mapped[float] = mapped_column(
        Numeric(10, 2, asdecimal=False),
        nullable=False,
    )

    is_emergency: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def snapshot(self) -> dict:
        """Denormalized copy stored on a booking."""
        return {
            "name": self.name,
            "icon": self.icon,
            "price": float(self.base_price),
            "category": self.category.value,
        }

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name={self.name}, category={self.category})>"
