# ==== AUTHENTICATION AND AUTHORIZATION ==== #

"""
Authentication and authorization for Kundedata.

Passwords are hashed with bcrypt; sessions are HS256 JWTs carried in an
HTTP-only cookie or an ``Authorization: Bearer`` header. The session
middleware decodes the token once per request and the dependencies below
enforce access on individual routes.
"""

import datetime as dt
import hmac
from dataclasses import dataclass
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import Header, HTTPException, Request

from kundedata.business.enums import UserRole
from kundedata.settings import settings


ALGORITHM = "HS256"

UNAUTHORIZED_MESSAGE = "Ikke autorisert"
FORBIDDEN_MESSAGE = "Ingen tilgang"


# ==== PASSWORD HASHING ==== #

def hash_password(password: str) -> str:
    """Hash a password with bcrypt at the configured cost."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# ==== SESSION TOKENS ==== #

@dataclass
class SessionUser:
    """Claims of an authenticated session."""

    id: int
    email: str
    name: Optional[str]
    role: str
    organization_id: Optional[int]
    organization_name: Optional[str]

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN.value

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "organization_id": self.organization_id,
            "organization_name": self.organization_name,
        }


def create_session_token(user, organization_name: Optional[str] = None) -> str:
    """Create a session JWT for a user.

    Args:
        user: ``User`` model instance
        organization_name: Display name of the user's organization

    Returns:
        JWT token string
    """
    now = dt.datetime.now(dt.timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "organization_id": user.organization_id,
        "organization_name": organization_name,
        "iat": now,
        "exp": now + dt.timedelta(days=settings.SESSION_MAX_AGE_DAYS),
    }
    return jwt.encode(payload, settings.SESSION_SECRET, algorithm=ALGORITHM)


def decode_session_token(token: str) -> SessionUser:
    """Decode and verify a session JWT.

    Raises:
        jwt.InvalidTokenError: If the token is expired, tampered or malformed
    """
    payload = jwt.decode(token, settings.SESSION_SECRET, algorithms=[ALGORITHM])
    try:
        return SessionUser(
            id=int(payload["sub"]),
            email=payload["email"],
            name=payload.get("name"),
            role=payload.get("role", UserRole.CUSTOMER.value),
            organization_id=payload.get("organization_id"),
            organization_name=payload.get("organization_name"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise jwt.InvalidTokenError(f"Malformed session claims: {e}") from e


# ==== ROUTE DEPENDENCIES ==== #

def get_current_user(request: Request) -> Optional[SessionUser]:
    """Session injected by ``SessionMiddleware``, or None for anonymous requests."""
    return request.scope.get("session_user")


def require_user(request: Request) -> SessionUser:
    """Require an authenticated session.

    Raises:
        HTTPException: 401 when no valid session is present
    """
    user = get_current_user(request)
    if user is None:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_MESSAGE)
    return user


def require_organization(request: Request) -> SessionUser:
    """Require a session bound to an organization (tenant routes).

    Raises:
        HTTPException: 401 when unauthenticated or without organization
    """
    user = require_user(request)
    if user.organization_id is None:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_MESSAGE)
    return user


def require_super_admin(request: Request) -> SessionUser:
    """Require the platform operator role.

    Raises:
        HTTPException: 401 when unauthenticated, 403 for other roles
    """
    user = require_user(request)
    if not user.is_super_admin:
        raise HTTPException(status_code=403, detail=FORBIDDEN_MESSAGE)
    return user


def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Guard cron endpoints with ``Authorization: Bearer <CRON_SECRET>``.

    When no secret is configured the endpoints are open (local development).

    Raises:
        HTTPException: 401 when the bearer secret does not match
    """
    if not settings.CRON_SECRET:
        return

    expected = f"Bearer {settings.CRON_SECRET}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_MESSAGE)


def organization_scope(user: SessionUser, organization_id: Optional[int] = None) -> Optional[int]:
    """Resolve which organization a listing is restricted to.

    Super admins may pass an explicit organization (or None for all);
    customers are always restricted to their own.
    """
    if user.is_super_admin:
        return organization_id
    return user.organization_id
