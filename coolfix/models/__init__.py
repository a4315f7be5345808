"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from coolfix.models.users import User, UserRole
from coolfix.models.services import Service, ServiceCategory
from coolfix.models.technicians import Technician
from coolfix.models.bookings import Booking, BookingStatus, BookingPriority
from coolfix.models.notifications import Notification

__all__ = [
    "User",
    "UserRole",
    "Service",
    "ServiceCategory",
    "Technician",
    "Booking",
    "BookingStatus",
    "BookingPriority",
    "Notification",
]
