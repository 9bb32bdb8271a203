# ==== AUTOMATION ROUTES ==== #

"""
Automation CRUD. Execution lives in ``kundedata.services.automations``.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import ActionType, AutomationStatus
from kundedata.observability.tracing import get_tracer
from kundedata.schemas.automation import (
    AutomationActionInput, AutomationCreate, AutomationResponse, AutomationUpdate
)
from kundedata.schemas.common import MessageResponse
from kundedata.security.auth import SessionUser, require_organization
from kundedata.services.activity import log_activity
from kundedata.storage.db import get_db_session
from kundedata.storage.models import Automation, AutomationAction, EmailTemplate, Form


router = APIRouter()
tracer = get_tracer(__name__)


async def _load_automation(db: AsyncSession, automation_id: int, organization_id: int) -> Automation:
    result = await db.execute(
        select(Automation)
        .options(selectinload(Automation.actions))
        .where(and_(Automation.id == automation_id, Automation.organization_id == organization_id))
        .execution_options(populate_existing=True)
    )
    automation = result.scalar_one_or_none()
    if automation is None:
        raise HTTPException(status_code=404, detail="Automatisering ikke funnet")
    return automation


async def _check_form(db: AsyncSession, form_id: Optional[int], organization_id: int) -> None:
    if form_id is None:
        return
    result = await db.execute(
        select(Form.id).where(and_(Form.id == form_id, Form.organization_id == organization_id))
    )
    if result.first() is None:
        raise HTTPException(status_code=404, detail="Skjema ikke funnet")


async def build_actions(
    db: AsyncSession, actions: List[AutomationActionInput], organization_id: int
) -> List[AutomationAction]:
    """
    AutomationAction rows ordered by position.

    The email template link is only kept for SEND_EMAIL actions and must
    belong to the organization.

    Raises:
        HTTPException: 404 when a referenced template does not exist
    """
    rows = []
    for index, action in enumerate(actions):
        template_id = action.email_template_id if action.type == ActionType.SEND_EMAIL else None
        if template_id is not None:
            result = await db.execute(
                select(EmailTemplate.id).where(
                    and_(EmailTemplate.id == template_id, EmailTemplate.organization_id == organization_id)
                )
            )
            if result.first() is None:
                raise HTTPException(status_code=404, detail="E-postmal ikke funnet")
        rows.append(AutomationAction(
            type=action.type.value,
            config=action.config or {},
            order=index,
            email_template_id=template_id,
        ))
    return rows


@router.get("", response_model=List[AutomationResponse])
async def list_automations(
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> List[AutomationResponse]:
    """List the organization's automations with their actions."""
    result = await db.execute(
        select(Automation)
        .options(selectinload(Automation.actions))
        .where(Automation.organization_id == user.organization_id)
        .order_by(Automation.created_at.desc(), Automation.id.desc())
    )
    return [AutomationResponse.model_validate(a) for a in result.scalars().all()]


@router.post("", response_model=AutomationResponse, status_code=201)
async def create_automation(
    payload: AutomationCreate,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> AutomationResponse:
    """
    Create an ACTIVE automation.

    Raises:
        HTTPException: 404 when the form or an email template is unknown
    """
    with tracer.start_as_current_span("create_automation") as span:
        span.set_attribute("trigger_type", payload.trigger_type.value)
        await _check_form(db, payload.form_id, user.organization_id)

        automation = Automation(
            organization_id=user.organization_id,
            form_id=payload.form_id,
            name=payload.name,
            description=payload.description,
            status=AutomationStatus.ACTIVE.value,
            trigger_type=payload.trigger_type.value,
            trigger_config=payload.trigger_config or {},
        )
        automation.actions = await build_actions(db, payload.actions, user.organization_id)
        db.add(automation)
        await db.flush()

        await log_activity(
            db,
            action="automation.created",
            resource="automation",
            resource_id=automation.id,
            user_id=user.id,
            organization_id=user.organization_id,
            details={"name": automation.name, "trigger_type": automation.trigger_type},
        )
        await db.commit()

        span.set_attribute("automation_id", automation.id)
        return AutomationResponse.model_validate(
            await _load_automation(db, automation.id, user.organization_id)
        )


@router.get("/{automation_id}", response_model=AutomationResponse)
async def get_automation(
    automation_id: int,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> AutomationResponse:
    automation = await _load_automation(db, automation_id, user.organization_id)
    return AutomationResponse.model_validate(automation)


@router.patch("/{automation_id}", response_model=AutomationResponse)
async def update_automation(
    automation_id: int,
    payload: AutomationUpdate,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> AutomationResponse:
    """Update an automation; a given action list replaces all actions."""
    automation = await _load_automation(db, automation_id, user.organization_id)
    changes = payload.model_dump(exclude_unset=True, exclude={"actions"})

    if "form_id" in changes:
        await _check_form(db, changes["form_id"], user.organization_id)
        automation.form_id = changes["form_id"]
    if changes.get("name"):
        automation.name = changes["name"]
    if "description" in changes:
        automation.description = changes["description"]
    if changes.get("status") is not None:
        automation.status = payload.status.value
    if changes.get("trigger_type") is not None:
        automation.trigger_type = payload.trigger_type.value
    if changes.get("trigger_config") is not None:
        automation.trigger_config = changes["trigger_config"]

    if payload.actions is not None:
        automation.actions = await build_actions(db, payload.actions, user.organization_id)

    await log_activity(
        db,
        action="automation.updated",
        resource="automation",
        resource_id=automation.id,
        user_id=user.id,
        organization_id=user.organization_id,
        details={"name": automation.name, "status": automation.status},
    )
    await db.commit()
    return AutomationResponse.model_validate(
        await _load_automation(db, automation.id, user.organization_id)
    )


@router.delete("/{automation_id}", response_model=MessageResponse)
async def delete_automation(
    automation_id: int,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> MessageResponse:
    """Delete an automation with its actions and pending jobs."""
    automation = await _load_automation(db, automation_id, user.organization_id)
    name = automation.name

    await db.delete(automation)
    await log_activity(
        db,
        action="automation.deleted",
        resource="automation",
        resource_id=automation_id,
        user_id=user.id,
        organization_id=user.organization_id,
        details={"name": name},
    )
    await db.commit()
    return MessageResponse(message="Automatisering slettet")
