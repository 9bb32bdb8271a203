# ==== AUTOMATION ENGINE ==== #

"""
Automation engine for Kundedata.

Runs the automations triggered by a new submission and executes single
actions for the scheduled job processor. ``WAIT_DELAY`` steps are not
executed; they push every following action into a ``ScheduledJob`` due
after the accumulated delay.

Action configuration keys (all snake_case):

* SEND_EMAIL: ``send_to_submitter`` + ``email_field``, ``recipient_email``,
  ``subject`` / ``html_content`` / ``text_content`` when no template is linked,
  ``reply_to``
* WAIT_DELAY: ``delay_amount`` (default 1), ``delay_unit`` (minutes, hours,
  days, weeks; default days)
* UPDATE_SUBMISSION_STATUS: ``status`` (or ``new_status``)
* SEND_NOTIFICATION: ``notify_email``
* WEBHOOK: ``url``
* ADD_TAG / REMOVE_TAG: ``tag``
"""

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import (
    ActionType, AutomationStatus, EmailStatus, SubmissionStatus, TriggerType
)
from kundedata.observability.logging import get_logger
from kundedata.observability.metrics import automation_failures_total, automation_runs_total
from kundedata.observability.tracing import get_tracer
from kundedata.services.activity import log_activity
from kundedata.services.email import send_email
from kundedata.services.rendering import render, render_submission_rows
from kundedata.settings import settings
from kundedata.storage.db import get_session
from kundedata.storage.models import (
    Automation, AutomationAction, EmailLog, Form, Organization, ScheduledJob, Submission
)
from kundedata.utils import replace_variables, utcnow


tracer = get_tracer(__name__)
logger = get_logger(__name__)


DELAY_UNIT_MINUTES = {
    "minutes": 1,
    "hours": 60,
    "days": 60 * 24,
    "weeks": 60 * 24 * 7,
}

# Triggers evaluated when a submission arrives
SUBMISSION_TRIGGERS = (TriggerType.FORM_SUBMISSION.value, TriggerType.FIELD_VALUE.value)


class AutomationActionError(Exception):
    """An action could not be executed (missing configuration, delivery failure)."""


@dataclass
class PlannedAction:
    """Action position in the automation and its accumulated delay."""

    index: int
    action: AutomationAction
    delay_minutes: int


@dataclass
class ActionContext:
    """Everything an action needs to run, for immediate and deferred execution."""

    organization_id: int
    automation_id: int
    submission: Optional[Submission]
    data: Dict[str, Any]
    form_name: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    deferred: bool = False

    @property
    def submission_id(self) -> Optional[int]:
        return self.submission.id if self.submission is not None else None


# ==== PLANNING ==== #

def delay_to_minutes(config: Dict[str, Any]) -> int:
    """Convert a WAIT_DELAY config to minutes (default one day)."""
    amount = config.get("delay_amount") or 1
    unit = config.get("delay_unit") or "days"
    return int(amount) * DELAY_UNIT_MINUTES.get(unit, DELAY_UNIT_MINUTES["days"])


def plan_actions(actions: List[AutomationAction]) -> List[PlannedAction]:
    """Attach the accumulated WAIT_DELAY to each executable action.

    WAIT_DELAY steps themselves are dropped from the plan.
    """
    plan: List[PlannedAction] = []
    accumulated = 0
    for index, action in enumerate(actions):
        if action.type == ActionType.WAIT_DELAY.value:
            accumulated += delay_to_minutes(action.config or {})
            continue
        plan.append(PlannedAction(index=index, action=action, delay_minutes=accumulated))
    return plan


def matches_trigger(automation: Automation, data: Dict[str, Any]) -> bool:
    """Check trigger conditions beyond form scoping.

    FIELD_VALUE automations compare ``trigger_config.field`` in the submitted
    data using ``operator`` (equals, not_equals, contains, not_empty).
    """
    if automation.trigger_type != TriggerType.FIELD_VALUE.value:
        return True

    config = automation.trigger_config or {}
    field_name = config.get("field")
    if not field_name:
        return False

    actual = data.get(field_name)
    expected = config.get("value")
    operator = config.get("operator", "equals")

    if operator == "not_empty":
        return actual not in (None, "", [])
    if operator == "contains":
        if isinstance(actual, (list, tuple)):
            return expected in actual
        return expected is not None and str(expected).lower() in str(actual or "").lower()
    if operator == "not_equals":
        return str(actual) != str(expected)
    return str(actual) == str(expected)


def schedule_plan(
    db: AsyncSession,
    automation: Automation,
    submission: Optional[Submission],
    plan: List[PlannedAction],
    now: dt.datetime,
    payload: Optional[Dict[str, Any]] = None,
) -> List[ScheduledJob]:
    """Create one ScheduledJob per planned action at ``now + delay``."""
    jobs = []
    for step in plan:
        job = ScheduledJob(
            automation_id=automation.id,
            submission_id=submission.id if submission is not None else None,
            action_index=step.index,
            scheduled_for=now + dt.timedelta(minutes=step.delay_minutes),
            payload=payload,
        )
        db.add(job)
        jobs.append(job)
    return jobs


# ==== SUBMISSION TRIGGER ==== #

async def find_automations_for_submission(db: AsyncSession, submission: Submission) -> List[Automation]:
    """Active automations of the organization for this form or global ones."""
    query = (
        select(Automation)
        .options(selectinload(Automation.actions).selectinload(AutomationAction.email_template))
        .where(and_(
            Automation.organization_id == submission.organization_id,
            Automation.status == AutomationStatus.ACTIVE.value,
            Automation.trigger_type.in_(SUBMISSION_TRIGGERS),
            or_(Automation.form_id == submission.form_id, Automation.form_id.is_(None)),
        ))
        .order_by(Automation.created_at, Automation.id)
    )
    result = await db.execute(query)
    return [a for a in result.scalars().all() if matches_trigger(a, submission.data or {})]


async def execute_automation(
    db: AsyncSession,
    automation: Automation,
    submission: Submission,
    now: Optional[dt.datetime] = None,
) -> Dict[str, int]:
    """Run one automation for a submission.

    Actions without accumulated delay run now; a failing action is logged and
    the next one continues. Delayed actions become scheduled jobs.

    Returns:
        Counts of executed, failed and scheduled actions
    """
    now = now or utcnow()
    counts = {"executed": 0, "failed": 0, "scheduled": 0}
    context = ActionContext(
        organization_id=automation.organization_id,
        automation_id=automation.id,
        submission=submission,
        data=dict(submission.data or {}),
        form_name=submission.form.name if submission.form is not None else None,
    )

    with tracer.start_as_current_span("execute_automation") as span:
        span.set_attribute("automation_id", automation.id)
        span.set_attribute("submission_id", submission.id)

        immediate = []
        delayed = []
        for step in plan_actions(list(automation.actions)):
            (delayed if step.delay_minutes > 0 else immediate).append(step)

        for step in immediate:
            try:
                await execute_action(db, step.action, context)
                counts["executed"] += 1
            except AutomationActionError as e:
                counts["failed"] += 1
                automation_failures_total.labels(stage="action").inc()
                logger.warning(
                    "Automation action failed",
                    automation_id=automation.id,
                    action_index=step.index,
                    action_type=step.action.type,
                    error=str(e),
                )

        jobs = schedule_plan(
            db, automation, submission, delayed, now,
            payload={"submission_data": context.data},
        )
        counts["scheduled"] = len(jobs)

        automation.run_count = (automation.run_count or 0) + 1
        automation.last_run_at = now
        await log_activity(
            db,
            action="automation.executed",
            resource="automation",
            resource_id=automation.id,
            organization_id=automation.organization_id,
            details={
                "submission_id": submission.id,
                "automation_name": automation.name,
                **counts,
            },
        )
        automation_runs_total.labels(trigger_type=automation.trigger_type).inc()

    logger.info("Automation executed", automation_id=automation.id, submission_id=submission.id, **counts)
    return counts


async def load_submission(db: AsyncSession, submission_id: int) -> Optional[Submission]:
    result = await db.execute(
        select(Submission)
        .options(selectinload(Submission.form))
        .where(Submission.id == submission_id)
    )
    return result.scalar_one_or_none()


async def run_automations_for_submission(submission_id: int) -> int:
    """Run every matching automation for a stored submission.

    Scheduled as a background task after the submit response. Each automation
    runs in its own transaction; a failing automation is recorded as an
    ``automation.error`` activity and the others still run. This function
    never raises.

    Returns:
        Number of automations executed successfully
    """
    executed = 0
    try:
        async with get_session() as db:
            submission = await load_submission(db, submission_id)
            if submission is None:
                logger.warning("Submission vanished before automations ran", submission_id=submission_id)
                return 0
            automation_ids = [a.id for a in await find_automations_for_submission(db, submission)]

        logger.info("Running automations", submission_id=submission_id, count=len(automation_ids))

        for automation_id in automation_ids:
            try:
                async with get_session() as db:
                    submission = await load_submission(db, submission_id)
                    automation = await _load_automation(db, automation_id)
                    await execute_automation(db, automation, submission)
                executed += 1
            except Exception as e:
                automation_failures_total.labels(stage="automation").inc()
                logger.exception("Error running automation", automation_id=automation_id, submission_id=submission_id)
                await _record_automation_error(automation_id, submission_id, e)
    except Exception:
        logger.exception("Error running automations", submission_id=submission_id)
    return executed


async def _record_automation_error(automation_id: int, submission_id: int, error: Exception) -> None:
    """Write the ``automation.error`` activity; a failed write is only logged."""
    try:
        async with get_session() as db:
            automation = await db.get(Automation, automation_id)
            await log_activity(
                db,
                action="automation.error",
                resource="automation",
                resource_id=automation_id,
                organization_id=automation.organization_id if automation else None,
                details={"submission_id": submission_id, "error": str(error) or type(error).__name__},
            )
    except Exception:
        logger.exception("Could not record automation error", automation_id=automation_id)


async def _load_automation(db: AsyncSession, automation_id: int) -> Automation:
    result = await db.execute(
        select(Automation)
        .options(selectinload(Automation.actions).selectinload(AutomationAction.email_template))
        .where(Automation.id == automation_id)
    )
    return result.scalar_one()


# ==== ACTIONS ==== #

async def execute_action(db: AsyncSession, action: AutomationAction, context: ActionContext) -> str:
    """Execute one action.

    Returns:
        "executed" or "skipped"

    Raises:
        AutomationActionError: When the action cannot be carried out
    """
    config = action.config or {}
    action_type = action.type

    if action_type == ActionType.SEND_EMAIL.value:
        await _send_email_action(db, action, config, context)
    elif action_type == ActionType.UPDATE_SUBMISSION_STATUS.value:
        _update_status_action(config, context)
    elif action_type == ActionType.SEND_NOTIFICATION.value:
        await _send_notification_action(db, config, context)
    elif action_type == ActionType.WEBHOOK.value:
        await _webhook_action(config, context)
    elif action_type in (ActionType.ADD_TAG.value, ActionType.REMOVE_TAG.value):
        _tag_action(action_type, config, context)
    else:
        # WAIT_DELAY is handled by planning; CONDITION and SPLIT_TEST have no runtime yet
        logger.info("Action skipped", action_type=action_type, automation_id=context.automation_id)
        return "skipped"
    return "executed"


def resolve_recipient(config: Dict[str, Any], context: ActionContext) -> Optional[str]:
    """Pick the recipient of a SEND_EMAIL action.

    Order: submitter field, fixed recipient, job payload, then the
    conventional ``email`` / ``epost`` fields of the submission.
    """
    if config.get("send_to_submitter") and config.get("email_field"):
        value = context.data.get(config["email_field"])
        if value:
            return str(value)
    if config.get("recipient_email"):
        return config["recipient_email"]
    if context.payload.get("recipient_email"):
        return context.payload["recipient_email"]
    for key in ("email", "epost"):
        if context.data.get(key):
            return str(context.data[key])
    return None


async def _sender_identity(db: AsyncSession, organization_id: int) -> tuple:
    """(from, reply_to) for an organization, falling back to EMAIL_FROM."""
    result = await db.execute(
        select(Organization)
        .options(selectinload(Organization.settings))
        .where(Organization.id == organization_id)
    )
    organization = result.scalar_one_or_none()
    org_settings = organization.settings if organization is not None else None
    if org_settings is not None and org_settings.sender_email:
        name = org_settings.sender_name or organization.name
        return f"{name} <{org_settings.sender_email}>", org_settings.reply_to_email
    return settings.EMAIL_FROM, org_settings.reply_to_email if org_settings is not None else None


async def _send_email_action(
    db: AsyncSession,
    action: AutomationAction,
    config: Dict[str, Any],
    context: ActionContext,
) -> None:
    recipient = resolve_recipient(config, context)
    if not recipient:
        raise AutomationActionError("Ingen mottaker-e-post funnet")

    template = action.email_template
    if template is not None:
        subject = replace_variables(template.subject, context.data)
        html = replace_variables(template.html_content, context.data)
        text = replace_variables(template.text_content, context.data) if template.text_content else None
    elif config.get("subject") and config.get("html_content"):
        subject = replace_variables(config["subject"], context.data)
        html = replace_variables(config["html_content"], context.data)
        text = replace_variables(config["text_content"], context.data) if config.get("text_content") else None
    else:
        raise AutomationActionError("Ingen e-postmal funnet")

    from_, reply_to = await _sender_identity(db, context.organization_id)
    result = await send_email(
        recipient, subject, html, text=text, from_=from_,
        reply_to=config.get("reply_to") or reply_to, kind="lead",
    )

    db.add(EmailLog(
        organization_id=context.organization_id,
        submission_id=context.submission_id,
        automation_id=context.automation_id,
        email_template_id=template.id if template is not None else None,
        to_email=recipient,
        subject=subject,
        status=EmailStatus.SENT.value if result.success else EmailStatus.FAILED.value,
        provider_message_id=result.message_id,
        error_message=result.error,
        sent_at=utcnow() if result.success else None,
    ))
    await db.flush()

    if not result.success:
        raise AutomationActionError(f"E-post kunne ikke sendes: {result.error}")


def _update_status_action(config: Dict[str, Any], context: ActionContext) -> None:
    new_status = config.get("status") or config.get("new_status")
    if not new_status:
        raise AutomationActionError("Ingen status angitt")
    if new_status not in SubmissionStatus.__members__:
        raise AutomationActionError(f"Ugyldig status: {new_status}")
    if context.submission is None:
        raise AutomationActionError("Ingen innsending knyttet til jobben")

    context.submission.status = new_status
    if new_status == SubmissionStatus.CONTACTED.value:
        context.submission.last_contacted_at = utcnow()


async def _send_notification_action(db: AsyncSession, config: Dict[str, Any], context: ActionContext) -> None:
    notify_email = config.get("notify_email")
    if not notify_email:
        raise AutomationActionError("Ingen varslingsadresse angitt")

    form_name = context.form_name or "skjema"
    if context.deferred:
        subject = f"Påminnelse: Lead fra {form_name}"
        heading = "Lead-påminnelse"
        intro = "Dette er en automatisk påminnelse om en lead."
    else:
        subject = f"Ny innsending: {form_name}"
        heading = f"Ny innsending på {form_name}"
        intro = "Du har mottatt en ny innsending:"

    html = render(
        "emails/lead_notification.html",
        heading=heading,
        intro=intro,
        rows=render_submission_rows(context.data),
        leads_url=f"{settings.APP_URL}/dashboard/leads",
    )
    result = await send_email(notify_email, subject, html, kind="notification")
    if not result.success:
        raise AutomationActionError(f"Varsel kunne ikke sendes: {result.error}")


async def _webhook_action(config: Dict[str, Any], context: ActionContext) -> None:
    url = config.get("url")
    if not url:
        raise AutomationActionError("Ingen webhook-URL angitt")

    body = {
        "automation_id": context.automation_id,
        "submission_id": context.submission_id,
        "form_name": context.form_name,
        "status": context.submission.status if context.submission is not None else None,
        "data": context.data,
    }
    try:
        async with httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS) as client:
            response = await client.post(url, json=body)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise AutomationActionError(f"Webhook feilet: {e}") from e


def _tag_action(action_type: str, config: Dict[str, Any], context: ActionContext) -> None:
    tag = (config.get("tag") or "").strip()
    if not tag:
        raise AutomationActionError("Ingen tagg angitt")
    if context.submission is None:
        raise AutomationActionError("Ingen innsending knyttet til jobben")

    meta = dict(context.submission.meta or {})
    tags = list(meta.get("tags", []))
    if action_type == ActionType.ADD_TAG.value and tag not in tags:
        tags.append(tag)
    elif action_type == ActionType.REMOVE_TAG.value and tag in tags:
        tags.remove(tag)
    meta["tags"] = tags
    # Reassign so the JSON column is flagged dirty
    context.submission.meta = meta
