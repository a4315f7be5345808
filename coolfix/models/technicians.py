"""
Technician model - extends User for field technicians.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import String, Integer, Float, Boolean, ForeignKey, DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from coolfix.lib.db import JSONType, Base


class Technician(Base):
    """
    Technician entity - field staff profile (1:1 with User).
    """
    __tablename__ = "technicians"

    # Primary key (also foreign key to users)
    id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    skills: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    experience: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    # Rolling rating from customer feedback
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_ratings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_jobs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    availability: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Last reported position
    current_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    current_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    location_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def record_rating(self, rating: int) -> None:
        """Fold one customer rating into the running average."""
        new_total = self.total_ratings + 1
        self.rating = round((self.rating * self.total_ratings + rating) / new_total, 1)
        self.total_ratings = new_total
        self.completed_jobs += 1

    def __repr__(self) -> str:
        return f"<Technician(id={self.id}, rating={self.rating}, available={self.availability})>"
