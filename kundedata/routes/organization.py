# ==== ORGANIZATION ROUTES ==== #

"""
The caller's own organization: profile and branding/sender settings.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.observability.tracing import get_tracer
from kundedata.schemas.organization import (
    OrganizationResponse, OrganizationSettingsPayload, OrganizationUpdate
)
from kundedata.security.auth import SessionUser, require_organization
from kundedata.services.accounts import unique_organization_slug
from kundedata.services.activity import log_activity
from kundedata.storage.db import get_db_session
from kundedata.storage.models import Organization, OrganizationSettings
from kundedata.utils import client_ip


router = APIRouter()
tracer = get_tracer(__name__)


async def load_organization(db: AsyncSession, organization_id: int) -> Organization:
    """Organization with settings, or 404."""
    result = await db.execute(
        select(Organization)
        .options(selectinload(Organization.settings))
        .where(Organization.id == organization_id)
    )
    organization = result.scalar_one_or_none()
    if organization is None:
        raise HTTPException(status_code=404, detail="Organisasjon ikke funnet")
    return organization


def apply_settings(organization: Organization, payload: OrganizationSettingsPayload) -> None:
    """Upsert the settings row from the fields present in the payload."""
    if organization.settings is None:
        organization.settings = OrganizationSettings()
    for key, value in payload.model_dump(exclude_unset=True).items():
        if key in ("primary_color", "secondary_color") and value is None:
            continue
        setattr(organization.settings, key, value)


@router.get("", response_model=OrganizationResponse)
async def get_organization(
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> OrganizationResponse:
    """Get the caller's organization."""
    organization = await load_organization(db, user.organization_id)
    return OrganizationResponse.model_validate(organization)


@router.patch("", response_model=OrganizationResponse)
async def update_organization(
    payload: OrganizationUpdate,
    request: Request,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> OrganizationResponse:
    """
    Update the caller's organization and its settings.

    Raises:
        HTTPException: 400 when the requested slug is taken
    """
    with tracer.start_as_current_span("update_organization") as span:
        span.set_attribute("organization_id", user.organization_id)
        organization = await load_organization(db, user.organization_id)
        changes = payload.model_dump(exclude_unset=True, exclude={"settings"})

        if changes.get("slug") and changes["slug"] != organization.slug:
            available = await unique_organization_slug(db, changes["slug"], exclude_id=organization.id)
            if available != changes["slug"]:
                raise HTTPException(status_code=400, detail="Denne URL-en er allerede i bruk")

        for key, value in changes.items():
            if key in ("name", "slug") and not value:
                continue
            setattr(organization, key, value)

        if payload.settings is not None:
            apply_settings(organization, payload.settings)

        await log_activity(
            db,
            action="organization.updated",
            resource="organization",
            resource_id=organization.id,
            user_id=user.id,
            organization_id=organization.id,
            details={"fields": sorted(payload.model_dump(exclude_unset=True).keys())},
            ip_address=client_ip(request.headers),
        )
        await db.commit()
        return OrganizationResponse.model_validate(organization)
