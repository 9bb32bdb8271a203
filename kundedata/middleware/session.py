# ==== SESSION MIDDLEWARE ==== #

"""
Session middleware for tenant isolation in Kundedata.

Decodes the session token from the session cookie or a Bearer header and
injects the authenticated user into the ASGI scope. Invalid or expired
tokens are treated as anonymous so public routes keep working; the route
dependencies in ``kundedata.security.auth`` decide what requires a session.
"""

from http.cookies import SimpleCookie
from typing import Optional

import jwt
from starlette.types import ASGIApp, Scope, Receive, Send

from kundedata.observability.logging import bind_request_context, get_logger, reset_request_context
from kundedata.security.auth import SessionUser, decode_session_token
from kundedata.settings import settings


logger = get_logger(__name__)


def get_organization_id(request) -> Optional[int]:
    """Organization of the current session, if any."""
    user = request.scope.get("session_user")
    return user.organization_id if user else None


class SessionMiddleware:
    """
    Middleware to resolve the session user for every HTTP request.

    Exempt paths (probes, metrics, docs) skip token decoding entirely.
    """

    def __init__(self, app: ASGIApp, cookie_name: str | None = None):
        self.app = app
        self.cookie_name = cookie_name or settings.SESSION_COOKIE_NAME

        # --► PATHS EXEMPT FROM SESSION RESOLUTION
        self.exempt_paths = {
            "/healthz",
            "/readyz",
            "/metrics",
            "/docs",
            "/redoc",
            "/openapi.json",
        }

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope["session_user"] = None

        if scope["method"] == "OPTIONS" or scope["path"] in self.exempt_paths:
            await self.app(scope, receive, send)
            return

        token = self._extract_token(scope)
        user = self._decode(token) if token else None
        scope["session_user"] = user
        if user is None:
            await self.app(scope, receive, send)
            return

        context_token = bind_request_context(user_id=user.id, organization_id=user.organization_id)
        try:
            await self.app(scope, receive, send)
        finally:
            reset_request_context(context_token)

    def _extract_token(self, scope: Scope) -> Optional[str]:
        """Read the token from the Bearer header first, then the cookie."""
        headers = dict(scope["headers"])

        authorization = headers.get(b"authorization")
        if authorization:
            value = authorization.decode("latin-1")
            if value.startswith("Bearer "):
                return value.split(" ", 1)[1].strip()

        raw_cookie = headers.get(b"cookie")
        if raw_cookie:
            cookie = SimpleCookie()
            cookie.load(raw_cookie.decode("latin-1"))
            morsel = cookie.get(self.cookie_name)
            if morsel is not None:
                return morsel.value
        return None

    def _decode(self, token: str) -> Optional[SessionUser]:
        try:
            return decode_session_token(token)
        except jwt.ExpiredSignatureError:
            logger.debug("Expired session token")
        except jwt.InvalidTokenError as e:
            logger.debug("Rejected session token", reason=str(e))
        return None
