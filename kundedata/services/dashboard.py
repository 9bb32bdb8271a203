"""Dashboard statistics for one organization (or the whole platform)."""

import datetime as dt
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import FormStatus, SubmissionStatus
from kundedata.storage.models import Form, Submission
from kundedata.utils import utcnow


async def dashboard_stats(
    db: AsyncSession,
    organization_id: Optional[int],
    now: Optional[dt.datetime] = None,
) -> Dict[str, Any]:
    """Form and lead counters plus the five newest leads.

    Conversion rate is CONVERTED / all submissions in percent, one decimal.
    """
    now = now or utcnow()

    form_query = select(Form.status, func.count(Form.id)).group_by(Form.status)
    status_query = select(Submission.status, func.count(Submission.id)).group_by(Submission.status)
    recent_count_query = select(func.count(Submission.id)).where(
        Submission.created_at >= now - dt.timedelta(days=30)
    )
    latest_query = (
        select(Submission)
        .options(selectinload(Submission.form))
        .order_by(Submission.created_at.desc(), Submission.id.desc())
        .limit(5)
    )
    if organization_id is not None:
        form_query = form_query.where(Form.organization_id == organization_id)
        status_query = status_query.where(Submission.organization_id == organization_id)
        recent_count_query = recent_count_query.where(Submission.organization_id == organization_id)
        latest_query = latest_query.where(Submission.organization_id == organization_id)

    forms_by_status = dict((await db.execute(form_query)).all())
    by_status = {status.value: 0 for status in SubmissionStatus}
    by_status.update(dict((await db.execute(status_query)).all()))

    total = sum(by_status.values())
    converted = by_status[SubmissionStatus.CONVERTED.value]
    latest = (await db.execute(latest_query)).scalars().all()

    return {
        "forms": {
            "total": sum(forms_by_status.values()),
            "published": forms_by_status.get(FormStatus.PUBLISHED.value, 0),
        },
        "submissions": {
            "total": total,
            "last_30_days": (await db.execute(recent_count_query)).scalar() or 0,
            "by_status": by_status,
            "new": by_status[SubmissionStatus.NEW.value],
        },
        "conversion_rate": round(converted / total * 100, 1) if total else 0.0,
        "recent_leads": [
            {
                "id": lead.id,
                "form_name": lead.form.name if lead.form else None,
                "status": lead.status,
                "data": lead.data,
                "created_at": lead.created_at,
            }
            for lead in latest
        ],
    }
