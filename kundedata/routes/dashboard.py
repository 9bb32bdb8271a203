# ==== DASHBOARD AND CALENDAR ROUTES ==== #

"""
Read-only overview endpoints: dashboard counters and the calendar feed.

Customers see their own organization; super admins see the whole platform
unless they pass ``organization_id``.
"""

import datetime as dt
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from kundedata.observability.tracing import get_tracer
from kundedata.schemas.common import naive_utc
from kundedata.security.auth import FORBIDDEN_MESSAGE, SessionUser, organization_scope, require_user
from kundedata.services.calendar import calendar_events
from kundedata.services.dashboard import dashboard_stats
from kundedata.storage.db import get_db_session


dashboard_router = APIRouter()
calendar_router = APIRouter()
tracer = get_tracer(__name__)


def _scope(user: SessionUser, organization_id: Optional[int]) -> Optional[int]:
    scope = organization_scope(user, organization_id)
    if scope is None and not user.is_super_admin:
        raise HTTPException(status_code=403, detail=FORBIDDEN_MESSAGE)
    return scope


@dashboard_router.get("/stats")
async def get_stats(
    user: SessionUser = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    organization_id: Optional[int] = Query(None)
) -> Dict[str, Any]:
    """Form and lead counters for the dashboard landing page."""
    with tracer.start_as_current_span("dashboard_stats"):
        return await dashboard_stats(db, _scope(user, organization_id))


@calendar_router.get("/events")
async def get_events(
    user: SessionUser = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    start: Optional[dt.datetime] = Query(None, description="Defaults to now"),
    end: Optional[dt.datetime] = Query(None, description="Defaults to three months ahead"),
    organization_id: Optional[int] = Query(None)
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Invoice due dates, recurring runs, pending jobs and follow-ups.

    Raises:
        HTTPException: 400 when ``end`` is before ``start``
    """
    start, end = naive_utc(start), naive_utc(end)
    if start is not None and end is not None and end < start:
        raise HTTPException(status_code=400, detail="Sluttdato kan ikke være før startdato")

    with tracer.start_as_current_span("calendar_events") as span:
        events = await calendar_events(
            db,
            _scope(user, organization_id),
            start=start,
            end=end,
        )
        span.set_attribute("events", len(events))
        return {"events": events}
