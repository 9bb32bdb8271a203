"""Calendar events: invoice due dates, recurring runs, scheduled jobs and follow-ups."""

import datetime as dt
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import InvoiceStatus, JobStatus, RecurringStatus
from kundedata.services.invoicing import compute_totals, line_amount_cents
from kundedata.storage.models import (
    Automation, Invoice, RecurringInvoice, ScheduledJob, Submission
)
from kundedata.utils import cents_to_kroner, utcnow


# Invoices still expecting money (drafts are shown so their due date is visible)
CALENDAR_INVOICE_STATUSES = (
    InvoiceStatus.DRAFT.value,
    InvoiceStatus.SENT.value,
    InvoiceStatus.PARTIALLY_PAID.value,
    InvoiceStatus.OVERDUE.value,
)


def recurring_total_cents(recurring: RecurringInvoice) -> int:
    """Total (incl. VAT) of one invoice generated from the template."""
    amounts = [
        line_amount_cents(item.get("quantity", 1), item.get("unit_price", 0))
        for item in recurring.items or []
    ]
    return compute_totals(amounts, recurring.vat_rate)[2]


def _lead_name(data: Dict[str, Any]) -> str:
    return str(data.get("name") or data.get("navn") or "Ukjent")


async def calendar_events(
    db: AsyncSession,
    organization_id: Optional[int],
    start: Optional[dt.datetime] = None,
    end: Optional[dt.datetime] = None,
    now: Optional[dt.datetime] = None,
) -> List[Dict[str, Any]]:
    """Collect calendar events between ``start`` and ``end`` sorted by date.

    Args:
        organization_id: Restrict to one organization; None for all (super admin)
        start: Defaults to now
        end: Defaults to three months after now
    """
    now = now or utcnow()
    start = start or now
    end = end or now + dt.timedelta(days=92)
    events: List[Dict[str, Any]] = []

    def scoped(model, *conditions):
        if organization_id is not None:
            conditions = (*conditions, model.organization_id == organization_id)
        return and_(*conditions)

    # Invoice due dates
    result = await db.execute(
        select(Invoice)
        .options(selectinload(Invoice.organization))
        .where(scoped(
            Invoice,
            Invoice.due_date >= start,
            Invoice.due_date <= end,
            Invoice.status.in_(CALENDAR_INVOICE_STATUSES),
        ))
    )
    for invoice in result.scalars().all():
        overdue = invoice.due_date < now
        events.append({
            "id": f"invoice-{invoice.id}",
            "title": f"Faktura #{invoice.invoice_number} - {invoice.customer_name}",
            "date": invoice.due_date,
            "type": "invoice_overdue" if overdue else "invoice_due",
            "status": "overdue" if overdue else "pending",
            "description": invoice.organization.name,
            "amount": cents_to_kroner(invoice.total_cents),
            "link": f"/dashboard/invoices/{invoice.id}",
            "metadata": {
                "invoice_number": invoice.invoice_number,
                "customer_email": invoice.customer_email,
                "remaining": cents_to_kroner(invoice.outstanding_cents),
            },
        })

    # Next recurring invoice runs
    result = await db.execute(
        select(RecurringInvoice).where(scoped(
            RecurringInvoice,
            RecurringInvoice.status == RecurringStatus.ACTIVE.value,
            RecurringInvoice.next_invoice_date >= start,
            RecurringInvoice.next_invoice_date <= end,
        ))
    )
    for recurring in result.scalars().all():
        events.append({
            "id": f"recurring-{recurring.id}",
            "title": f"{recurring.name} - {recurring.customer_name}",
            "date": recurring.next_invoice_date,
            "type": "recurring_invoice",
            "status": "pending",
            "description": "Automatisk faktura genereres",
            "amount": cents_to_kroner(recurring_total_cents(recurring)),
            "link": "/dashboard/invoices/recurring",
            "metadata": {"interval": recurring.interval, "customer_email": recurring.customer_email},
        })

    # Pending automation jobs
    job_conditions = [
        ScheduledJob.status == JobStatus.PENDING.value,
        ScheduledJob.scheduled_for >= start,
        ScheduledJob.scheduled_for <= end,
    ]
    if organization_id is not None:
        job_conditions.append(Automation.organization_id == organization_id)
    result = await db.execute(
        select(ScheduledJob, Automation)
        .join(Automation, ScheduledJob.automation_id == Automation.id)
        .where(and_(*job_conditions))
    )
    for job, automation in result.all():
        events.append({
            "id": f"job-{job.id}",
            "title": automation.name,
            "date": job.scheduled_for,
            "type": "scheduled_job",
            "status": "pending",
            "description": "Automasjon kjøres automatisk",
            "amount": None,
            "link": "/dashboard/automations",
            "metadata": {"automation_id": job.automation_id, "action_index": job.action_index},
        })

    # Lead follow-ups
    result = await db.execute(
        select(Submission)
        .options(selectinload(Submission.form))
        .where(scoped(
            Submission,
            Submission.next_follow_up_at >= start,
            Submission.next_follow_up_at <= end,
        ))
    )
    for lead in result.scalars().all():
        overdue = lead.next_follow_up_at < now
        events.append({
            "id": f"followup-{lead.id}",
            "title": f"Oppfølging: {_lead_name(lead.data or {})}",
            "date": lead.next_follow_up_at,
            "type": "follow_up",
            "status": "overdue" if overdue else "pending",
            "description": lead.form.name if lead.form else None,
            "amount": None,
            "link": f"/dashboard/leads/{lead.id}",
            "metadata": {"form_name": lead.form.name if lead.form else None, "status": lead.status},
        })

    events.sort(key=lambda event: event["date"])
    return events
