"""
API middleware module.
"""
from coolfix.api.middleware.error_handler import (
    AppException,
    NotFoundException,
    ForbiddenException,
    BadRequestException,
    ConflictException,
    app_exception_handler,
    booking_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)

__all__ = [
    "AppException",
    "NotFoundException",
    "ForbiddenException",
    "BadRequestException",
    "ConflictException",
    "app_exception_handler",
    "booking_exception_handler",
    "validation_exception_handler",
    "http_exception_handler",
    "unhandled_exception_handler",
]
