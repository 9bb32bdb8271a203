"""Account helpers: unique slugs, organization bootstrap and password reset tokens."""

import datetime as dt
import secrets
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from kundedata.observability.logging import get_logger
from kundedata.services.email import EmailResult, send_email
from kundedata.services.rendering import render
from kundedata.settings import settings
from kundedata.storage.models import Form, Organization, OrganizationSettings, User, VerificationToken
from kundedata.utils import slugify, utcnow


logger = get_logger(__name__)


# ==== SLUGS ==== #

async def unique_organization_slug(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> str:
    """``slugify(name)`` with ``-1``, ``-2``, ... appended until unused."""
    base = slugify(name) or "organisasjon"
    slug = base
    counter = 1
    while True:
        query = select(Organization.id).where(Organization.slug == slug)
        if exclude_id is not None:
            query = query.where(Organization.id != exclude_id)
        if (await db.execute(query)).first() is None:
            return slug
        slug = f"{base}-{counter}"
        counter += 1


async def unique_form_slug(
    db: AsyncSession, organization_id: int, name: str, exclude_id: Optional[int] = None
) -> str:
    """Form slug unique within the organization."""
    base = slugify(name) or "skjema"
    slug = base
    counter = 1
    while True:
        query = select(Form.id).where(and_(Form.organization_id == organization_id, Form.slug == slug))
        if exclude_id is not None:
            query = query.where(Form.id != exclude_id)
        if (await db.execute(query)).first() is None:
            return slug
        slug = f"{base}-{counter}"
        counter += 1


async def create_organization(db: AsyncSession, name: str, **fields) -> Organization:
    """Create an organization with a unique slug and default settings.

    Keyword arguments named like ``OrganizationSettings`` columns go to the
    settings row; the rest are organization columns.
    """
    settings_columns = {"primary_color", "secondary_color", "logo_url", "sender_name",
                        "sender_email", "reply_to_email", "bank_account"}
    settings_values = {k: v for k, v in fields.items() if k in settings_columns and v is not None}
    org_values = {k: v for k, v in fields.items() if k not in settings_columns and v is not None}

    organization = Organization(
        name=name,
        slug=await unique_organization_slug(db, name),
        **org_values,
    )
    organization.settings = OrganizationSettings(**settings_values)
    db.add(organization)
    await db.flush()
    return organization


# ==== PASSWORD RESET ==== #

async def create_password_reset_token(db: AsyncSession, email: str) -> str:
    """Store a fresh 32-byte hex token for ``email`` and drop older ones."""
    await db.execute(delete(VerificationToken).where(VerificationToken.identifier == email))
    token = secrets.token_hex(32)
    db.add(VerificationToken(
        identifier=email,
        token=token,
        expires_at=utcnow() + dt.timedelta(minutes=settings.PASSWORD_RESET_TTL_MINUTES),
    ))
    await db.flush()
    return token


def password_reset_url(token: str, email: str) -> str:
    return f"{settings.APP_URL}/reset-password?{urlencode({'token': token, 'email': email})}"


async def send_password_reset_email(user: User, token: str) -> EmailResult:
    html = render(
        "emails/password_reset.html",
        name=user.name,
        reset_url=password_reset_url(token, user.email),
        valid_minutes=settings.PASSWORD_RESET_TTL_MINUTES,
    )
    result = await send_email(user.email, "Tilbakestill passord", html, kind="auth")
    if not result.success:
        logger.warning("Password reset email not delivered", user_id=user.id, error=result.error)
    return result


async def consume_password_reset_token(db: AsyncSession, email: str, token: str) -> bool:
    """Validate and delete a reset token; False when unknown or expired."""
    result = await db.execute(
        select(VerificationToken).where(and_(
            VerificationToken.identifier == email,
            VerificationToken.token == token,
        ))
    )
    record = result.scalar_one_or_none()
    if record is None:
        return False

    await db.delete(record)
    await db.flush()
    return record.expires_at >= utcnow()
