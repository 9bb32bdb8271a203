# ==== PUBLIC FORM ROUTES ==== #

"""
Unauthenticated access to published forms: the hosted HTML page at
``/f/{slug}`` and the JSON definition used by embeds.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import FieldType, FormStatus
from kundedata.schemas.form import FormFieldResponse, PublicFormResponse
from kundedata.services.rendering import render
from kundedata.storage.db import get_db_session
from kundedata.storage.models import Form, Organization


router = APIRouter()

DEFAULT_PRIMARY_COLOR = "#4F46E5"

# HTML input types for the simple field types
INPUT_TYPES = {
    FieldType.TEXT.value: "text",
    FieldType.EMAIL.value: "email",
    FieldType.PHONE.value: "tel",
    FieldType.NUMBER.value: "number",
    FieldType.DATE.value: "date",
    FieldType.TIME.value: "time",
    FieldType.DATETIME.value: "datetime-local",
    FieldType.FILE.value: "file",
}


async def load_published_form(db: AsyncSession, slug: str) -> Form:
    """First published form with this slug, or 404."""
    result = await db.execute(
        select(Form)
        .options(
            selectinload(Form.fields),
            selectinload(Form.organization).selectinload(Organization.settings),
        )
        .where(and_(Form.slug == slug, Form.status == FormStatus.PUBLISHED.value))
        .order_by(Form.published_at.desc(), Form.id)
        .limit(1)
    )
    form = result.scalar_one_or_none()
    if form is None:
        raise HTTPException(status_code=404, detail="Skjema ikke funnet")
    return form


@router.get("/f/{slug}", response_class=HTMLResponse, include_in_schema=False)
async def public_form_page(slug: str, db: AsyncSession = Depends(get_db_session)) -> HTMLResponse:
    """Render the hosted form page."""
    form = await load_published_form(db, slug)
    org_settings = form.organization.settings

    html = render(
        "public_form.html",
        form=form,
        primary_color=(org_settings.primary_color if org_settings else None) or DEFAULT_PRIMARY_COLOR,
        logo_url=org_settings.logo_url if org_settings else None,
        organization_name=form.organization.name,
        submit_url=f"/api/forms/{form.id}/submit",
        input_types=INPUT_TYPES,
    )
    return HTMLResponse(html)


@router.get("/api/public/forms/{slug}", response_model=PublicFormResponse)
async def public_form_definition(slug: str, db: AsyncSession = Depends(get_db_session)) -> PublicFormResponse:
    """JSON definition of a published form."""
    form = await load_published_form(db, slug)
    org_settings = form.organization.settings

    return PublicFormResponse(
        id=form.id,
        name=form.name,
        slug=form.slug,
        description=form.description,
        submit_button_text=form.submit_button_text,
        success_message=form.success_message,
        fields=[FormFieldResponse.model_validate(field) for field in form.fields],
        primary_color=org_settings.primary_color if org_settings else DEFAULT_PRIMARY_COLOR,
        logo_url=org_settings.logo_url if org_settings else None,
    )
