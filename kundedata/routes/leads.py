# ==== LEAD ROUTES ==== #

"""
Lead (submission) management for the dashboard: listing with filters and
pagination, status and follow-up updates, notes and export.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy import String, and_, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import SubmissionStatus
from kundedata.observability.tracing import get_tracer
from kundedata.schemas.lead import (
    EmailLogResponse, FollowUpUpdate, LeadListResponse, LeadResponse,
    NoteCreate, NoteResponse, StatusUpdate
)
from kundedata.security.auth import SessionUser, require_organization
from kundedata.services.activity import log_activity
from kundedata.services.leads import add_note, export_csv, export_json
from kundedata.storage.db import get_db_session
from kundedata.storage.models import Submission
from kundedata.utils import client_ip, utcnow


router = APIRouter()
tracer = get_tracer(__name__)

LEAD_NOT_FOUND = "Lead ikke funnet"


def _lead_response(submission: Submission, include_logs: bool = False) -> LeadResponse:
    return LeadResponse(
        id=submission.id,
        form_id=submission.form_id,
        form_name=submission.form.name if submission.form else None,
        data=submission.data or {},
        status=submission.status,
        ip_address=submission.ip_address,
        user_agent=submission.user_agent,
        referrer=submission.referrer,
        tags=submission.tags,
        last_contacted_at=submission.last_contacted_at,
        next_follow_up_at=submission.next_follow_up_at,
        created_at=submission.created_at,
        updated_at=submission.updated_at,
        email_logs=[EmailLogResponse.model_validate(log) for log in submission.email_logs] if include_logs else [],
    )


async def _load_lead(db: AsyncSession, submission_id: int, organization_id: int) -> Submission:
    result = await db.execute(
        select(Submission)
        .options(selectinload(Submission.form), selectinload(Submission.email_logs))
        .where(and_(Submission.id == submission_id, Submission.organization_id == organization_id))
    )
    submission = result.scalar_one_or_none()
    if submission is None:
        raise HTTPException(status_code=404, detail=LEAD_NOT_FOUND)
    return submission


def _filters(organization_id: int, form_id: Optional[int], status: Optional[str], search: Optional[str] = None):
    conditions = [Submission.organization_id == organization_id]
    if form_id is not None:
        conditions.append(Submission.form_id == form_id)
    if status:
        conditions.append(Submission.status == status)
    if search:
        conditions.append(cast(Submission.data, String).ilike(f"%{search}%"))
    return and_(*conditions)


@router.get("", response_model=LeadListResponse)
async def list_leads(
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
    form_id: Optional[int] = Query(None, description="Filter by form"),
    status: Optional[SubmissionStatus] = Query(None, description="Filter by status"),
    search: Optional[str] = Query(None, description="Free text search in submitted data"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Page size")
) -> LeadListResponse:
    """List leads, newest first."""
    with tracer.start_as_current_span("list_leads") as span:
        span.set_attribute("organization_id", user.organization_id)
        where = _filters(user.organization_id, form_id, status.value if status else None, search)

        count_query = select(func.count()).select_from(select(Submission.id).where(where).subquery())
        total = (await db.execute(count_query)).scalar() or 0

        query = (
            select(Submission)
            .options(selectinload(Submission.form))
            .where(where)
            .order_by(Submission.created_at.desc(), Submission.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        leads = (await db.execute(query)).scalars().all()

        span.set_attribute("total", total)
        return LeadListResponse(
            items=[_lead_response(lead) for lead in leads],
            total=total,
            page=page,
            page_size=page_size,
            has_next=page * page_size < total,
        )


@router.get("/export")
async def export_leads(
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
    format: str = Query("csv", pattern="^(csv|json)$"),
    form_id: Optional[int] = Query(None),
    status: Optional[SubmissionStatus] = Query(None)
) -> Response:
    """Export leads as a CSV attachment or a JSON list."""
    result = await db.execute(
        select(Submission)
        .options(selectinload(Submission.form))
        .where(_filters(user.organization_id, form_id, status.value if status else None))
        .order_by(Submission.created_at.desc(), Submission.id.desc())
    )
    leads = result.scalars().all()

    if format == "json":
        return JSONResponse(content=export_json(leads))

    filename = f"leads-{utcnow().date().isoformat()}.csv"
    return Response(
        content=export_csv(leads),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{submission_id}", response_model=LeadResponse)
async def get_lead(
    submission_id: int,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> LeadResponse:
    """Get one lead with its form name and email log."""
    lead = await _load_lead(db, submission_id, user.organization_id)
    return _lead_response(lead, include_logs=True)


@router.patch("/{submission_id}/status", response_model=LeadResponse)
async def update_lead_status(
    submission_id: int,
    payload: StatusUpdate,
    request: Request,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> LeadResponse:
    """
    Change a lead's status; CONTACTED stamps ``last_contacted_at``.

    Raises:
        HTTPException: 400 for unknown statuses, 404 for unknown leads
    """
    if payload.status not in SubmissionStatus.__members__:
        raise HTTPException(status_code=400, detail="Ugyldig status")

    lead = await _load_lead(db, submission_id, user.organization_id)
    old_status = lead.status
    lead.status = payload.status
    if payload.status == SubmissionStatus.CONTACTED.value:
        lead.last_contacted_at = utcnow()

    await log_activity(
        db,
        action="lead.status_updated",
        resource="submission",
        resource_id=lead.id,
        user_id=user.id,
        organization_id=user.organization_id,
        details={"old_status": old_status, "new_status": payload.status},
        ip_address=client_ip(request.headers),
    )
    await db.commit()
    return _lead_response(lead, include_logs=True)


@router.patch("/{submission_id}/follow-up", response_model=LeadResponse)
async def update_follow_up(
    submission_id: int,
    payload: FollowUpUpdate,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> LeadResponse:
    """Set or clear the next follow-up time."""
    lead = await _load_lead(db, submission_id, user.organization_id)
    lead.next_follow_up_at = payload.next_follow_up_at

    await log_activity(
        db,
        action="lead.follow_up_updated",
        resource="submission",
        resource_id=lead.id,
        user_id=user.id,
        organization_id=user.organization_id,
        details={
            "next_follow_up_at": payload.next_follow_up_at.isoformat() if payload.next_follow_up_at else None
        },
    )
    await db.commit()
    return _lead_response(lead, include_logs=True)


@router.get("/{submission_id}/notes", response_model=List[NoteResponse])
async def list_notes(
    submission_id: int,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> List[NoteResponse]:
    """Notes of a lead, newest first."""
    lead = await _load_lead(db, submission_id, user.organization_id)
    return [NoteResponse(**note) for note in lead.notes]


@router.post("/{submission_id}/notes", response_model=NoteResponse, status_code=201)
async def create_note(
    submission_id: int,
    payload: NoteCreate,
    user: SessionUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session)
) -> NoteResponse:
    """Add a note to a lead."""
    lead = await _load_lead(db, submission_id, user.organization_id)
    note = add_note(lead, payload.content, user.id, user.name)

    await log_activity(
        db,
        action="lead.note_added",
        resource="submission",
        resource_id=lead.id,
        user_id=user.id,
        organization_id=user.organization_id,
        details={"note_id": note["id"]},
    )
    await db.commit()
    return NoteResponse(**note)
