"""
FastAPI application entry point with health check route.
"""
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.exceptions import RequestValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from coolfix.api.routes import bookings, public_bookings, services
from coolfix.api.middleware.error_handler import (
    AppException,
    app_exception_handler,
    booking_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)
from coolfix.lib.db import init_db
from coolfix.lib.logging import get_logger, set_correlation_id
from coolfix.lib.metrics import get_metrics_collector
from coolfix.lib.request_context import get_client_ip
from coolfix.lib.settings import settings
from coolfix.services.booking_lifecycle import BookingConflict, InvalidTransition

logger = get_logger(__name__)


# Correlation ID middleware
class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation_id to all requests for distributed tracing.
    Accepts X-Correlation-ID from incoming requests or generates a new one.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

        # Request state for handlers, context var for log records
        request.state.correlation_id = correlation_id
        set_correlation_id(correlation_id)

        logger.info(
            "Incoming request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client": get_client_ip(request),
            }
        )

        try:
            response = await call_next(request)
            response.headers["X-Correlation-ID"] = correlation_id

            logger.info(
                "Response sent",
                extra={"status_code": response.status_code},
            )
            return response
        finally:
            set_correlation_id(None)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup/shutdown events.
    """
    logger.info(f"{settings.app_name} starting up...")
    init_db()
    yield
    logger.info(f"{settings.app_name} shutting down...")


app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Booking and repair-visit APIs for the appliance repair workshop",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Correlation ID middleware
app.add_middleware(CorrelationIdMiddleware)


# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(InvalidTransition, booking_exception_handler)
app.add_exception_handler(BookingConflict, booking_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


# Include routers (public paths first so /bookings/public/... never hits /bookings/{booking_id})
app.include_router(public_bookings.router)
app.include_router(bookings.router)
app.include_router(services.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics_endpoint():
    """
    Prometheus-compatible metrics endpoint.

    Metrics exposed:
    - bookings_created_total: bookings created, by source (public, app)
    - booking_transitions_total: status changes, by from/to status and actor
    - notifications_sent_total / notifications_failed_total: dispatch results
    - admin_link_actions_total: admin email link clicks, by scope and outcome
    """
    metrics = get_metrics_collector()
    return PlainTextResponse(
        content=metrics.export_prometheus(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
