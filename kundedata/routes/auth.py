# ==== AUTHENTICATION ROUTES ==== #

"""
Registration, login, logout, session and password reset endpoints.

Sessions are HS256 JWTs delivered both as an HTTP-only cookie and in the
login response body for API clients using ``Authorization: Bearer``.
"""

import datetime as dt

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import UserRole
from kundedata.observability.logging import get_logger, log_business_event
from kundedata.observability.tracing import get_tracer
from kundedata.schemas.auth import (
    ForgotPasswordRequest, LoginRequest, LoginResponse, RegisterRequest,
    ResetPasswordRequest, SessionResponse, UserResponse
)
from kundedata.schemas.common import MessageResponse
from kundedata.security.auth import (
    create_session_token, get_current_user, hash_password, verify_password
)
from kundedata.services.accounts import (
    consume_password_reset_token, create_organization, create_password_reset_token,
    send_password_reset_email
)
from kundedata.services.activity import log_activity
from kundedata.settings import settings
from kundedata.storage.db import get_db_session
from kundedata.storage.models import User
from kundedata.utils import client_ip, utcnow


router = APIRouter()
tracer = get_tracer(__name__)
logger = get_logger(__name__)

INVALID_CREDENTIALS = "Ugyldig e-post eller passord"
RESET_REQUESTED_MESSAGE = "Hvis e-postadressen finnes, har vi sendt en lenke for å tilbakestille passordet"


@router.post("/register", response_model=UserResponse, status_code=201)
async def register(
    payload: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session)
) -> UserResponse:
    """
    Register a new customer together with their own organization.

    Raises:
        HTTPException: 400 when the email is already registered
    """
    with tracer.start_as_current_span("register_user") as span:
        existing = await db.execute(select(User.id).where(User.email == payload.email))
        if existing.first() is not None:
            raise HTTPException(status_code=400, detail="En bruker med denne e-postadressen finnes allerede")

        organization = await create_organization(db, f"{payload.name}s bedrift")
        user = User(
            email=payload.email,
            name=payload.name,
            password_hash=hash_password(payload.password),
            role=UserRole.CUSTOMER.value,
            organization_id=organization.id,
        )
        db.add(user)
        await db.flush()

        await log_activity(
            db,
            action="user.registered",
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            organization_id=organization.id,
            details={"email": user.email},
            ip_address=client_ip(request.headers),
            user_agent=request.headers.get("user-agent"),
        )
        await db.commit()

        span.set_attribute("user_id", user.id)
        log_business_event("user_registered", str(organization.id), user_id=user.id)
        return UserResponse.model_validate(user)


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_MAX_AGE_DAYS * 24 * 3600,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db_session)
) -> LoginResponse:
    """
    Verify credentials, set the session cookie and return the token.

    Raises:
        HTTPException: 401 for unknown email or wrong password
    """
    with tracer.start_as_current_span("login"):
        result = await db.execute(
            select(User).options(selectinload(User.organization)).where(User.email == payload.email)
        )
        user = result.scalar_one_or_none()
        if user is None or not verify_password(payload.password, user.password_hash):
            logger.info("Failed login attempt", email=payload.email)
            raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

        organization_name = user.organization.name if user.organization else None
        token = create_session_token(user, organization_name)
        user.last_login_at = utcnow()

        await log_activity(
            db,
            action="user.login",
            resource="user",
            resource_id=user.id,
            user_id=user.id,
            organization_id=user.organization_id,
            ip_address=client_ip(request.headers),
            user_agent=request.headers.get("user-agent"),
        )
        await db.commit()

        _set_session_cookie(response, token)
        return LoginResponse(
            user=UserResponse.model_validate(user),
            token=token,
            expires_at=utcnow() + dt.timedelta(days=settings.SESSION_MAX_AGE_DAYS),
        )


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response) -> MessageResponse:
    """Clear the session cookie."""
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return MessageResponse(message="Logget ut")


@router.get("/session", response_model=SessionResponse)
async def session(request: Request) -> SessionResponse:
    """Claims of the current session, or ``authenticated: false``."""
    user = get_current_user(request)
    if user is None:
        return SessionResponse(authenticated=False)
    return SessionResponse(authenticated=True, user=user.as_dict())


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    payload: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db_session)
) -> MessageResponse:
    """
    Email a reset link when the account exists.

    The response is identical for unknown addresses so accounts cannot be
    enumerated.
    """
    result = await db.execute(select(User).where(User.email == payload.email))
    user = result.scalar_one_or_none()

    if user is not None:
        token = await create_password_reset_token(db, user.email)
        await db.commit()
        await send_password_reset_email(user, token)

    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db_session)
) -> MessageResponse:
    """
    Set a new password with a valid reset token.

    Raises:
        HTTPException: 400 for unknown or expired tokens
    """
    if not await consume_password_reset_token(db, payload.email, payload.token):
        await db.commit()
        raise HTTPException(status_code=400, detail="Ugyldig eller utløpt lenke")

    result = await db.execute(select(User).where(User.email == payload.email))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=400, detail="Ugyldig eller utløpt lenke")

    user.password_hash = hash_password(payload.password)
    await log_activity(
        db,
        action="user.password_reset",
        resource="user",
        resource_id=user.id,
        user_id=user.id,
        organization_id=user.organization_id,
    )
    await db.commit()
    return MessageResponse(message="Passordet er oppdatert")
