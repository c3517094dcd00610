"""JWT authentication dependency for FastAPI.

Validates Bearer tokens from the Authorization header and maps the ``role``
claim onto the closed UserRole set used by the order state machine.
"""

import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from src.config import settings
from src.exceptions import ForbiddenException, UnauthorizedException
from src.models.enums import UserRole

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthenticatedUser:
    """The caller, as described by a verified JWT."""

    id: uuid.UUID
    email: str
    role: UserRole

    @property
    def is_customer(self) -> bool:
        return self.role == UserRole.CUSTOMER


def _decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises UnauthorizedException on failure."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise UnauthorizedException("Invalid or expired token") from exc


def create_access_token(user_id: uuid.UUID, email: str, role: UserRole) -> str:
    """Issue a signed token carrying the claims ``get_current_user`` reads."""
    claims = {"sub": str(user_id), "email": email, "role": role.value}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthenticatedUser:
    """FastAPI dependency resolving the current user from the bearer token.

    A token without a ``role`` claim is treated as a customer. The system role
    is reserved for the scheduler and never accepted from a token.
    """
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    payload = _decode_token(credentials.credentials)

    try:
        user = AuthenticatedUser(
            id=uuid.UUID(payload["sub"]),
            email=payload["email"],
            role=UserRole(str(payload.get("role", UserRole.CUSTOMER.value)).lower()),
        )
    except (KeyError, ValueError) as exc:
        raise UnauthorizedException("Token is missing required claims") from exc

    if user.role == UserRole.SYSTEM:
        raise UnauthorizedException("Token role is not allowed")

    request.state.user = user
    return user


def require_roles(*roles: UserRole):
    """Dependency factory restricting an endpoint to the given roles."""

    async def _check(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if user.role not in roles:
            raise ForbiddenException(
                f"Role '{user.role.value}' is not allowed to perform this action"
            )
        return user

    return _check
