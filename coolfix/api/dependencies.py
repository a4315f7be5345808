"""
API dependencies for FastAPI dependency injection.

Provides common dependencies like database sessions, authentication and
the booking service.
"""
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from coolfix.lib.action_tokens import ActionTokenIssuer, get_action_token_issuer
from coolfix.lib.db import get_db as get_db_session
from coolfix.lib.jwt import verify_token
from coolfix.models.users import User, UserRole
from coolfix.services.booking_service import BookingService
from coolfix.services.notification_service import NotificationDispatcher, get_notification_dispatcher


# Re-export get_db for convenience
get_db = get_db_session


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency to get current authenticated user from the session token.

    Raises:
        HTTPException: 401 if the token is missing or invalid, or the
            account no longer exists
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = verify_token(credentials.credentials)
        user_id = UUID(payload["sub"])  # JWT standard: user_id in 'sub' claim
    except (jwt.InvalidTokenError, KeyError, ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return user


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """
    Current user if a valid token was sent, None otherwise.

    Useful for endpoints that work with or without authentication.
    """
    if not credentials:
        return None

    try:
        return get_current_user(credentials, db)
    except HTTPException:
        return None


def require_roles(*roles: UserRole):
    """
    Dependency factory restricting an endpoint to the given account roles.

    Usage:
        @router.put("/{booking_id}/status")
        def update_status(user: User = Depends(require_roles(UserRole.ADMIN, UserRole.TECHNICIAN))):
            ...
    """
    allowed = frozenset(roles)

    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. Staff only.",
            )
        return user

    return checker


require_staff = require_roles(UserRole.ADMIN, UserRole.TECHNICIAN)


def get_booking_service(
    db: Session = Depends(get_db),
    issuer: ActionTokenIssuer = Depends(get_action_token_issuer),
) -> BookingService:
    return BookingService(db, issuer)


def get_dispatcher() -> NotificationDispatcher:
    return get_notification_dispatcher()
