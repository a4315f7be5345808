"""
Signed action tokens for admin email links.

A token authorizes exactly one action on exactly one booking:

    https://api.example.com/bookings/admin/confirm/BK1718000000123?token=eyJ...

The token is a JWT signed with settings.secret_key and carries:
- booking_id: public booking identifier
- scope: "admin-confirm" or "admin-cancel"
- iat / exp: issue and expiry timestamps (default lifetime 7 days)

Nothing is persisted; validity is signature + expiry only.
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import jwt

from coolfix.lib.settings import settings
from coolfix.lib.logging import get_logger


logger = get_logger(__name__)

TOKEN_TYPE = "booking_action"


class ActionScope(str, enum.Enum):
    """Actions an admin link may perform."""
    ADMIN_CONFIRM = "admin-confirm"
    ADMIN_CANCEL = "admin-cancel"

    @property
    def path_segment(self) -> str:
        return self.value.split("-", 1)[1]


class ActionTokenError(Exception):
    """Base class for action token verification failures."""


class TokenExpired(ActionTokenError):
    """Token signature is valid but the expiry has passed."""


class TokenMalformed(ActionTokenError):
    """Signature mismatch, unparseable payload, or token bound to something else."""


@dataclass(frozen=True)
class ActionClaims:
    booking_public_id: str
    scope: ActionScope


class ActionTokenIssuer:
    """
    Issue and verify admin action tokens.

    Uses HS256 JWTs so tokens are URL-safe and can be embedded as a query
    parameter in an email hyperlink.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        ttl: Optional[timedelta] = None,
        base_url: Optional[str] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.secret_key
        if not self.secret_key:
            raise ValueError("Secret key is required for action token signing")

        self.algorithm = "HS256"
        self.ttl = ttl if ttl is not None else timedelta(hours=settings.action_token_ttl_hours)
        self.base_url = (base_url or settings.api_base_url).rstrip("/")

    def issue(
        self,
        booking_public_id: str,
        scope: ActionScope,
        issued_at: Optional[datetime] = None,
    ) -> str:
        """
        Create a signed token binding a booking and an action scope.

        Args:
            booking_public_id: Public booking identifier
            scope: Action the token authorizes
            issued_at: Issue time (defaults to now)

        Returns:
            JWT token string
        """
        now = issued_at or datetime.now(timezone.utc)
        expiration = now + self.ttl

        payload = {
            "type": TOKEN_TYPE,
            "booking_id": booking_public_id,
            "scope": ActionScope(scope).value,
            "iat": int(now.timestamp()),
            "exp": int(expiration.timestamp()),
        }
        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

        logger.info(
            "Issued action token",
            extra={
                "booking_id": booking_public_id,
                "scope": payload["scope"],
                "expires_at": expiration.isoformat(),
            }
        )
        return token

    def verify(self, token: str) -> ActionClaims:
        """
        Verify signature and expiry and return the bound claims.

        Raises:
            TokenExpired: token is past its expiry
            TokenMalformed: bad signature, unparseable or foreign payload
        """
        if not token:
            raise TokenMalformed("Token is missing")

        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpired("Action link has expired") from e
        except jwt.InvalidTokenError as e:
            raise TokenMalformed(f"Invalid action token: {e}") from e

        if payload.get("type") != TOKEN_TYPE:
            raise TokenMalformed("Token is not a booking action token")

        booking_id = payload.get("booking_id")
        if not isinstance(booking_id, str) or not booking_id:
            raise TokenMalformed("Token does not name a booking")

        try:
            scope = ActionScope(payload.get("scope"))
        except ValueError as e:
            raise TokenMalformed("Token scope is not recognised") from e

        return ActionClaims(booking_public_id=booking_id, scope=scope)

    def verify_for(self, token: str, booking_public_id: str, scope: ActionScope) -> ActionClaims:
        """
        Verify a token and require that it was issued for this booking and action.

        Raises:
            TokenExpired: token is past its expiry
            TokenMalformed: invalid token, or bound to another booking or scope
        """
        claims = self.verify(token)
        if claims.booking_public_id != booking_public_id or claims.scope != ActionScope(scope):
            logger.warning(
                "Action token presented for a different target",
                extra={
                    "token_booking_id": claims.booking_public_id,
                    "token_scope": claims.scope.value,
                    "requested_booking_id": booking_public_id,
                    "requested_scope": ActionScope(scope).value,
                }
            )
            raise TokenMalformed("Token was not issued for this booking action")
        return claims

    def build_link(self, booking_public_id: str, scope: ActionScope) -> str:
        """
        Build the absolute admin link with a freshly issued token.

        Example:
            >>> issuer.build_link("BK1718000000123", ActionScope.ADMIN_CONFIRM)
            'http://localhost:8000/bookings/admin/confirm/BK1718000000123?token=eyJ...'
        """
        scope = ActionScope(scope)
        token = self.issue(booking_public_id, scope)
        query = urlencode({"token": token})
        return f"{self.base_url}/bookings/admin/{scope.path_segment}/{booking_public_id}?{query}"


# Factory function
def get_action_token_issuer() -> ActionTokenIssuer:
    """Get ActionTokenIssuer configured with app settings."""
    return ActionTokenIssuer()
