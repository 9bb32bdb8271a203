# ==== EMAIL TEMPLATE ROUTES ==== #

"""
Reusable email templates with ``{{variable}}`` placeholders.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from kundedata.observability.tracing import get_tracer
from kundedata.schemas.automation import (
    EmailTemplateCreate, EmailTemplateResponse, EmailTemplateUpdate
)
from kundedata.schemas.common import MessageResponse
from kundedata.security.auth import SessionUser, require_organization
from kundedata.services.activity import log_activity
from kundedata.storage.db import get_db_session
from kundedata.storage.models import EmailTemplate
from kundedata.utils import extract_variables


router = APIRouter()
tracer = get_tracer(__name__)


async def _load_template(db: AsyncSession, template_id: int, organization_id: int) -> EmailTemplate:
    result = await db.execute(
        select(EmailTemplate).where(
            and_(EmailTemplate.id == template_id, EmailTemplate.organization_id == organization_id)
        )
    )
    template = result.scalar_one_or_none()
    if template is None:
        raise HTTPException(status_code=404, detail="E-postmal ikke funnet")
    return template


@router.get("", response_model=List[EmailTemplateResponse])
async def list_templates(
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> List[EmailTemplateResponse]:
    """List the organization's templates, newest first."""
    result = await db.execute(
        select(EmailTemplate)
        .where(EmailTemplate.organization_id == user.organization_id)
        .order_by(EmailTemplate.created_at.desc(), EmailTemplate.id.desc())
    )
    return [EmailTemplateResponse.model_validate(t) for t in result.scalars().all()]


@router.post("", response_model=EmailTemplateResponse, status_code=201)
async def create_template(
    payload: EmailTemplateCreate,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> EmailTemplateResponse:
    """Create a template; variables default to the placeholders found in it."""
    with tracer.start_as_current_span("create_email_template") as span:
        template = EmailTemplate(
            organization_id=user.organization_id,
            name=payload.name,
            subject=payload.subject,
            html_content=payload.html_content,
            text_content=payload.text_content,
            variables=payload.variables if payload.variables is not None else extract_variables(
                payload.subject, payload.html_content, payload.text_content
            ),
        )
        db.add(template)
        await db.flush()

        await log_activity(
            db,
            action="email_template.created",
            resource="email_template",
            resource_id=template.id,
            user_id=user.id,
            organization_id=user.organization_id,
            details={"name": template.name},
        )
        await db.commit()
        await db.refresh(template)

        span.set_attribute("email_template_id", template.id)
        return EmailTemplateResponse.model_validate(template)


@router.get("/{template_id}", response_model=EmailTemplateResponse)
async def get_template(
    template_id: int,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> EmailTemplateResponse:
    template = await _load_template(db, template_id, user.organization_id)
    return EmailTemplateResponse.model_validate(template)


@router.patch("/{template_id}", response_model=EmailTemplateResponse)
async def update_template(
    template_id: int,
    payload: EmailTemplateUpdate,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> EmailTemplateResponse:
    """
    Update a template.

    When the content changes without an explicit variable list, the
    variables are extracted again.
    """
    template = await _load_template(db, template_id, user.organization_id)
    changes = payload.model_dump(exclude_unset=True)

    for key in ("name", "subject", "html_content"):
        if changes.get(key) is not None:
            setattr(template, key, changes[key])
    if "text_content" in changes:
        template.text_content = changes["text_content"]

    if changes.get("variables") is not None:
        template.variables = changes["variables"]
    elif {"subject", "html_content", "text_content"} & changes.keys():
        template.variables = extract_variables(template.subject, template.html_content, template.text_content)

    await log_activity(
        db,
        action="email_template.updated",
        resource="email_template",
        resource_id=template.id,
        user_id=user.id,
        organization_id=user.organization_id,
        details={"name": template.name},
    )
    await db.commit()
    await db.refresh(template)
    return EmailTemplateResponse.model_validate(template)


@router.delete("/{template_id}", response_model=MessageResponse)
async def delete_template(
    template_id: int,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> MessageResponse:
    """Delete a template; actions referencing it lose the link."""
    template = await _load_template(db, template_id, user.organization_id)
    name = template.name

    await db.delete(template)
    await log_activity(
        db,
        action="email_template.deleted",
        resource="email_template",
        resource_id=template_id,
        user_id=user.id,
        organization_id=user.organization_id,
        details={"name": name},
    )
    await db.commit()
    return MessageResponse(message="E-postmal slettet")
