# ==== SCHEDULED JOB PROCESSING ==== #

"""
Cron-driven processing of deferred automation actions.

One run executes due PENDING jobs, re-enqueues recurring ones, then turns
INACTIVITY and DATE_FIELD triggers into new jobs for the next run.
"""

import datetime as dt
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import (
    ActionType, AutomationStatus, JobStatus, OPEN_SUBMISSION_STATUSES, TriggerType
)
from kundedata.observability.logging import get_logger
from kundedata.observability.metrics import scheduled_jobs_processed_total
from kundedata.observability.tracing import get_tracer
from kundedata.services.automations import (
    ActionContext, AutomationActionError, execute_action, plan_actions, schedule_plan
)
from kundedata.settings import settings
from kundedata.storage.models import Automation, AutomationAction, ScheduledJob, Submission
from kundedata.utils import utcnow


tracer = get_tracer(__name__)
logger = get_logger(__name__)


RECURRING_STEPS = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(weeks=1),
    "monthly": relativedelta(months=1),
    "yearly": relativedelta(years=1),
}

PROCESSED_AUTOMATIONS_KEY = "processed_automations"


def calculate_next_run(pattern: Optional[str], from_date: dt.datetime) -> Optional[dt.datetime]:
    """Next run of a recurring job; None for unknown patterns.

    Month steps clamp to the last day of shorter months (Jan 31 -> Feb 28).
    """
    step = RECURRING_STEPS.get((pattern or "").lower())
    if step is None:
        return None
    return from_date + step


# ==== JOB EXECUTION ==== #

async def _due_jobs(db: AsyncSession, now: dt.datetime, limit: int) -> List[ScheduledJob]:
    query = (
        select(ScheduledJob)
        .options(
            selectinload(ScheduledJob.automation)
            .selectinload(Automation.actions)
            .selectinload(AutomationAction.email_template),
            selectinload(ScheduledJob.submission).selectinload(Submission.form),
        )
        .where(and_(
            ScheduledJob.status == JobStatus.PENDING.value,
            ScheduledJob.scheduled_for <= now,
        ))
        .order_by(ScheduledJob.scheduled_for, ScheduledJob.id)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def run_job(db: AsyncSession, job: ScheduledJob) -> None:
    """Execute the action a job points at.

    Raises:
        AutomationActionError: When the action is missing or fails
    """
    actions = list(job.automation.actions)
    if job.action_index >= len(actions):
        raise AutomationActionError(f"Aksjon {job.action_index} finnes ikke")

    payload: Dict[str, Any] = dict(job.payload or {})
    submission = job.submission
    data: Dict[str, Any] = dict(submission.data or {}) if submission is not None else {}
    data.update(payload.get("submission_data") or {})

    context = ActionContext(
        organization_id=job.automation.organization_id,
        automation_id=job.automation_id,
        submission=submission,
        data=data,
        form_name=submission.form.name if submission is not None and submission.form else None,
        payload=payload,
        deferred=True,
    )
    await execute_action(db, actions[job.action_index], context)


async def execute_due_jobs(db: AsyncSession, now: dt.datetime, limit: int) -> Dict[str, int]:
    """Execute up to ``limit`` due jobs; each job ends COMPLETED or FAILED."""
    counts = {"processed": 0, "succeeded": 0, "failed": 0}

    for job in await _due_jobs(db, now, limit):
        counts["processed"] += 1
        job.status = JobStatus.PROCESSING.value
        await db.flush()

        try:
            await run_job(db, job)
            job.status = JobStatus.COMPLETED.value
            job.executed_at = utcnow()
            counts["succeeded"] += 1
        except Exception as e:
            job.status = JobStatus.FAILED.value
            job.error_message = str(e) or type(e).__name__
            counts["failed"] += 1
            logger.warning(
                "Scheduled job failed",
                job_id=job.id,
                automation_id=job.automation_id,
                error=job.error_message,
            )

        scheduled_jobs_processed_total.labels(status=job.status).inc()

        if job.is_recurring and job.status == JobStatus.COMPLETED.value:
            # Next run counts from this run, not from scheduled_for
            next_run = calculate_next_run(job.recurring_pattern, now)
            if next_run is not None:
                db.add(ScheduledJob(
                    automation_id=job.automation_id,
                    submission_id=job.submission_id,
                    action_index=job.action_index,
                    scheduled_for=next_run,
                    payload=job.payload,
                    is_recurring=True,
                    recurring_pattern=job.recurring_pattern,
                ))

        await db.commit()

    return counts


# ==== TIME-BASED TRIGGERS ==== #

async def _active_automations(db: AsyncSession, trigger_type: TriggerType) -> List[Automation]:
    result = await db.execute(
        select(Automation)
        .options(selectinload(Automation.actions))
        .where(and_(
            Automation.status == AutomationStatus.ACTIVE.value,
            Automation.trigger_type == trigger_type.value,
        ))
        .order_by(Automation.id)
    )
    return list(result.scalars().all())


def _executable_plan(automation: Automation):
    return [
        step for step in plan_actions(list(automation.actions))
        if step.action.type != ActionType.WAIT_DELAY.value
    ]


async def _has_pending_job(db: AsyncSession, automation_id: int, submission_id: int) -> bool:
    result = await db.execute(
        select(func.count(ScheduledJob.id)).where(and_(
            ScheduledJob.automation_id == automation_id,
            ScheduledJob.submission_id == submission_id,
            ScheduledJob.status == JobStatus.PENDING.value,
        ))
    )
    return (result.scalar() or 0) > 0


async def process_inactivity_triggers(db: AsyncSession, now: dt.datetime) -> int:
    """Plan jobs for open leads without contact for ``inactive_days``.

    A lead that was never contacted counts from its creation. Each lead is
    handled at most once per automation.

    Returns:
        Number of leads an automation was scheduled for
    """
    triggered = 0
    for automation in await _active_automations(db, TriggerType.INACTIVITY):
        plan = _executable_plan(automation)
        if not plan:
            continue

        inactive_days = int((automation.trigger_config or {}).get("inactive_days") or 7)
        cutoff = now - dt.timedelta(days=inactive_days)
        last_activity = func.coalesce(Submission.last_contacted_at, Submission.created_at)

        conditions = [
            Submission.organization_id == automation.organization_id,
            Submission.status.in_([s.value for s in OPEN_SUBMISSION_STATUSES]),
            last_activity < cutoff,
        ]
        if automation.form_id is not None:
            conditions.append(Submission.form_id == automation.form_id)

        result = await db.execute(select(Submission).where(and_(*conditions)))
        for lead in result.scalars().all():
            meta = dict(lead.meta or {})
            processed = list(meta.get(PROCESSED_AUTOMATIONS_KEY, []))
            if automation.id in processed:
                continue
            if await _has_pending_job(db, automation.id, lead.id):
                continue

            schedule_plan(db, automation, lead, plan, now)
            processed.append(automation.id)
            meta[PROCESSED_AUTOMATIONS_KEY] = processed
            lead.meta = meta
            triggered += 1

        await db.commit()

    if triggered:
        logger.info("Inactivity automations scheduled", leads=triggered)
    return triggered


def _field_date(value: Any) -> Optional[dt.date]:
    if not value:
        return None
    try:
        return date_parser.isoparse(str(value)).date()
    except (ValueError, OverflowError):
        return None


async def process_date_field_triggers(db: AsyncSession, now: dt.datetime) -> int:
    """Plan jobs for leads whose date field falls on today minus ``days_offset``.

    Only month and day are compared, so the trigger fires yearly; the years
    already handled are kept in the lead metadata under ``{automation_id}_years``.

    Returns:
        Number of leads an automation was scheduled for
    """
    triggered = 0
    for automation in await _active_automations(db, TriggerType.DATE_FIELD):
        config = automation.trigger_config or {}
        date_field = config.get("date_field")
        plan = _executable_plan(automation)
        if not date_field or not plan:
            continue

        target = now.date() - dt.timedelta(days=int(config.get("days_offset") or 0))
        years_key = f"{automation.id}_years"

        conditions = [Submission.organization_id == automation.organization_id]
        if automation.form_id is not None:
            conditions.append(Submission.form_id == automation.form_id)

        result = await db.execute(select(Submission).where(and_(*conditions)))
        for lead in result.scalars().all():
            field_date = _field_date((lead.data or {}).get(date_field))
            if field_date is None or (field_date.month, field_date.day) != (target.month, target.day):
                continue

            meta = dict(lead.meta or {})
            years = list(meta.get(years_key, []))
            if now.year in years:
                continue

            schedule_plan(db, automation, lead, plan, now)
            years.append(now.year)
            meta[years_key] = years
            lead.meta = meta
            triggered += 1

        await db.commit()

    if triggered:
        logger.info("Date field automations scheduled", leads=triggered)
    return triggered


async def process_scheduled_jobs(
    db: AsyncSession,
    now: Optional[dt.datetime] = None,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """One cron tick: due jobs first, then time-based triggers.

    Returns:
        ``{success, processed, succeeded, failed, inactivity_triggered,
        date_field_triggered}``
    """
    now = now or utcnow()
    limit = limit or settings.SCHEDULED_JOBS_BATCH_SIZE

    with tracer.start_as_current_span("process_scheduled_jobs") as span:
        counts = await execute_due_jobs(db, now, limit)
        inactivity = await process_inactivity_triggers(db, now)
        date_field = await process_date_field_triggers(db, now)

        span.set_attribute("processed", counts["processed"])
        span.set_attribute("failed", counts["failed"])

    logger.info(
        "Scheduled jobs processed",
        inactivity_triggered=inactivity,
        date_field_triggered=date_field,
        **counts,
    )
    return {
        "success": True,
        **counts,
        "inactivity_triggered": inactivity,
        "date_field_triggered": date_field,
    }
