# ==== FORM ROUTES ==== #

"""
Form builder endpoints and the public submission endpoint.

Everything except ``POST /{form_id}/submit`` is scoped to the caller's
organization. Submissions are validated against the form's fields, stored
with request metadata, and hand off to the automation engine in the
background.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import FormStatus
from kundedata.observability.logging import get_logger, log_business_event
from kundedata.observability.metrics import submissions_total
from kundedata.observability.tracing import get_tracer
from kundedata.schemas.common import MessageResponse
from kundedata.schemas.form import (
    FormCreate, FormFieldInput, FormResponse, FormUpdate, PublishRequest, SubmitResponse
)
from kundedata.security.auth import SessionUser, require_organization
from kundedata.services.accounts import unique_form_slug
from kundedata.services.activity import log_activity
from kundedata.services.automations import run_automations_for_submission
from kundedata.services.submissions import validate_submission
from kundedata.storage.db import get_db_session
from kundedata.storage.models import Form, FormField, Organization, Submission
from kundedata.utils import client_ip, utcnow


router = APIRouter()
tracer = get_tracer(__name__)
logger = get_logger(__name__)

FORM_NOT_FOUND = "Skjema ikke funnet"


def build_fields(fields: List[FormFieldInput]) -> List[FormField]:
    """FormField rows with ``order`` equal to the position in the list."""
    return [
        FormField(
            type=field.type.value,
            name=field.name,
            label=field.label,
            placeholder=field.placeholder,
            help_text=field.help_text,
            required=field.required,
            min_length=field.min_length,
            max_length=field.max_length,
            min_value=field.min_value,
            max_value=field.max_value,
            pattern=field.pattern,
            options=[option.model_dump() for option in field.options] if field.options else None,
            width=field.width.value,
            order=index,
        )
        for index, field in enumerate(fields)
    ]


async def _load_form(db: AsyncSession, form_id: int, organization_id: int) -> Form:
    result = await db.execute(
        select(Form)
        .options(selectinload(Form.fields))
        .where(and_(Form.id == form_id, Form.organization_id == organization_id))
    )
    form = result.scalar_one_or_none()
    if form is None:
        raise HTTPException(status_code=404, detail=FORM_NOT_FOUND)
    return form


async def _submission_count(db: AsyncSession, form_id: int) -> int:
    result = await db.execute(select(func.count(Submission.id)).where(Submission.form_id == form_id))
    return result.scalar() or 0


def _form_response(form: Form, submission_count: int = 0) -> FormResponse:
    return FormResponse.model_validate(form).model_copy(update={"submission_count": submission_count})


# ==== FORM CRUD ==== #


@router.get("", response_model=List[FormResponse])
async def list_forms(
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> List[FormResponse]:
    """List the organization's forms, newest first, with submission counts."""
    counts = (
        select(Submission.form_id, func.count(Submission.id).label("count"))
        .group_by(Submission.form_id)
        .subquery()
    )
    result = await db.execute(
        select(Form, counts.c.count)
        .outerjoin(counts, counts.c.form_id == Form.id)
        .options(selectinload(Form.fields))
        .where(Form.organization_id == user.organization_id)
        .order_by(Form.created_at.desc(), Form.id.desc())
    )
    return [_form_response(form, count or 0) for form, count in result.all()]


@router.post("", response_model=FormResponse, status_code=201)
async def create_form(
    payload: FormCreate,
    request: Request,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> FormResponse:
    """
    Create a form with its fields.

    Raises:
        HTTPException: 403 when the organization's form limit is reached,
            400 when an explicit slug is taken
    """
    with tracer.start_as_current_span("create_form") as span:
        span.set_attribute("organization_id", user.organization_id)

        organization = await db.get(Organization, user.organization_id)
        form_count = (await db.execute(
            select(func.count(Form.id)).where(Form.organization_id == user.organization_id)
        )).scalar() or 0
        if organization is not None and form_count >= organization.max_forms:
            raise HTTPException(
                status_code=403,
                detail=f"Maks antall skjemaer ({organization.max_forms}) er nådd",
            )

        if payload.slug:
            slug = await unique_form_slug(db, user.organization_id, payload.slug)
            if slug != payload.slug:
                raise HTTPException(status_code=400, detail="Denne URL-en er allerede i bruk")
        else:
            slug = await unique_form_slug(db, user.organization_id, payload.name)

        form = Form(
            organization_id=user.organization_id,
            name=payload.name,
            slug=slug,
            description=payload.description,
            submit_button_text=payload.submit_button_text,
            success_message=payload.success_message,
            redirect_url=payload.redirect_url,
            status=FormStatus.DRAFT.value,
        )
        form.fields = build_fields(payload.fields)
        db.add(form)
        await db.flush()

        await log_activity(
            db,
            action="form.created",
            resource="form",
            resource_id=form.id,
            user_id=user.id,
            organization_id=user.organization_id,
            details={"name": form.name},
            ip_address=client_ip(request.headers),
        )
        await db.commit()

        span.set_attribute("form_id", form.id)
        return _form_response(await _load_form(db, form.id, user.organization_id))


@router.get("/{form_id}", response_model=FormResponse)
async def get_form(
    form_id: int,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> FormResponse:
    """Get one form with fields and submission count."""
    form = await _load_form(db, form_id, user.organization_id)
    return _form_response(form, await _submission_count(db, form.id))


@router.patch("/{form_id}", response_model=FormResponse)
async def update_form(
    form_id: int,
    payload: FormUpdate,
    request: Request,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> FormResponse:
    """
    Update a form; a given field list replaces all existing fields.

    Raises:
        HTTPException: 404 for unknown forms, 400 when the slug is taken
    """
    with tracer.start_as_current_span("update_form") as span:
        span.set_attribute("form_id", form_id)
        form = await _load_form(db, form_id, user.organization_id)
        changes = payload.model_dump(exclude_unset=True, exclude={"fields"})

        if changes.get("slug") and changes["slug"] != form.slug:
            slug = await unique_form_slug(db, user.organization_id, changes["slug"], exclude_id=form.id)
            if slug != changes["slug"]:
                raise HTTPException(status_code=400, detail="Denne URL-en er allerede i bruk")

        for key, value in changes.items():
            if key in ("name", "slug", "submit_button_text", "success_message") and not value:
                continue
            setattr(form, key, value)

        if payload.fields is not None:
            form.fields = build_fields(payload.fields)

        await log_activity(
            db,
            action="form.updated",
            resource="form",
            resource_id=form.id,
            user_id=user.id,
            organization_id=user.organization_id,
            details={"name": form.name},
            ip_address=client_ip(request.headers),
        )
        await db.commit()

        form = await _load_form(db, form.id, user.organization_id)
        return _form_response(form, await _submission_count(db, form.id))


@router.delete("/{form_id}", response_model=MessageResponse)
async def delete_form(
    form_id: int,
    request: Request,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> MessageResponse:
    """Delete a form together with its fields and submissions."""
    form = await _load_form(db, form_id, user.organization_id)
    name = form.name

    await db.delete(form)
    await log_activity(
        db,
        action="form.deleted",
        resource="form",
        resource_id=form_id,
        user_id=user.id,
        organization_id=user.organization_id,
        details={"name": name},
        ip_address=client_ip(request.headers),
    )
    await db.commit()
    return MessageResponse(message="Skjema slettet")


@router.post("/{form_id}/publish", response_model=FormResponse)
async def publish_form(
    form_id: int,
    payload: PublishRequest,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> FormResponse:
    """
    Publish or unpublish a form.

    Raises:
        HTTPException: 400 when publishing a form without fields
    """
    form = await _load_form(db, form_id, user.organization_id)

    if payload.published and not form.fields:
        raise HTTPException(status_code=400, detail="Skjemaet må ha minst ett felt før det kan publiseres")

    form.status = FormStatus.PUBLISHED.value if payload.published else FormStatus.DRAFT.value
    form.published_at = utcnow() if payload.published else None

    await log_activity(
        db,
        action="form.published" if payload.published else "form.unpublished",
        resource="form",
        resource_id=form.id,
        user_id=user.id,
        organization_id=user.organization_id,
        details={"name": form.name},
    )
    await db.commit()
    return _form_response(form, await _submission_count(db, form.id))


# ==== PUBLIC SUBMISSION ==== #


@router.post("/{form_id}/submit", response_model=SubmitResponse)
async def submit_form(
    form_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    data: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Accept a public submission for a published form.

    The body is the raw ``{field_name: value}`` mapping; it is stored as-is,
    including keys that are not form fields. Validation errors are returned
    as ``{"errors": {field: message}}`` with status 400.

    Raises:
        HTTPException: 404 for unknown forms, 400 for unpublished forms
    """
    with tracer.start_as_current_span("submit_form") as span:
        span.set_attribute("form_id", form_id)

        result = await db.execute(
            select(Form).options(selectinload(Form.fields)).where(Form.id == form_id)
        )
        form = result.scalar_one_or_none()
        if form is None:
            submissions_total.labels(outcome="rejected").inc()
            raise HTTPException(status_code=404, detail=FORM_NOT_FOUND)
        if not form.is_published:
            submissions_total.labels(outcome="rejected").inc()
            raise HTTPException(status_code=400, detail="Skjema er ikke publisert")

        errors = validate_submission(form.fields, data)
        if errors:
            submissions_total.labels(outcome="invalid").inc()
            span.set_attribute("invalid_fields", len(errors))
            return JSONResponse(status_code=400, content={"errors": errors})

        ip_address = client_ip(request.headers) or "unknown"
        user_agent = request.headers.get("user-agent") or "unknown"

        submission = Submission(
            organization_id=form.organization_id,
            form_id=form.id,
            data=data,
            ip_address=ip_address,
            user_agent=user_agent,
            referrer=request.headers.get("referer"),
        )
        db.add(submission)
        await db.flush()

        await log_activity(
            db,
            action="submission.created",
            resource="submission",
            resource_id=submission.id,
            organization_id=form.organization_id,
            details={"form_id": form.id, "form_name": form.name},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await db.commit()

        span.set_attribute("submission_id", submission.id)
        submissions_total.labels(outcome="accepted").inc()
        log_business_event(
            "submission_received",
            str(form.organization_id),
            form_id=form.id,
            submission_id=submission.id,
        )

        background_tasks.add_task(run_automations_for_submission, submission.id)

        return SubmitResponse(
            success=True,
            message=form.success_message,
            redirect_url=form.redirect_url,
            submission_id=submission.id,
        )
