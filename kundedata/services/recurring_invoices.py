# ==== RECURRING INVOICE GENERATION ==== #

"""
Materialization of recurring invoice templates into concrete invoices.

Each due ACTIVE template yields exactly one DRAFT invoice per run, even when
several periods were missed; the next date advances by one interval from the
previous next date, so later runs catch up one period at a time.
"""

import datetime as dt
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import InvoiceEmailType, RecurringInterval, RecurringStatus
from kundedata.observability.logging import get_logger, log_business_event
from kundedata.observability.metrics import recurring_invoices_generated_total
from kundedata.observability.tracing import get_tracer
from kundedata.services.email import EmailDeliveryError
from kundedata.services.invoicing import (
    DEFAULT_PAYMENT_TERMS, apply_items, next_invoice_number, send_invoice_email
)
from kundedata.storage.models import Invoice, Organization, RecurringInvoice, RecurringInvoiceLog
from kundedata.utils import utcnow


tracer = get_tracer(__name__)
logger = get_logger(__name__)


INTERVAL_STEPS = {
    RecurringInterval.WEEKLY: relativedelta(weeks=1),
    RecurringInterval.BIWEEKLY: relativedelta(weeks=2),
    RecurringInterval.MONTHLY: relativedelta(months=1),
    RecurringInterval.QUARTERLY: relativedelta(months=3),
    RecurringInterval.BIANNUALLY: relativedelta(months=6),
    RecurringInterval.YEARLY: relativedelta(years=1),
}


def calculate_next_date(current: dt.datetime, interval: str, interval_count: int = 1) -> dt.datetime:
    """Advance ``current`` by ``interval`` × ``interval_count``.

    Month-based intervals clamp to the last day of shorter months, so a
    template started on Jan 31 bills on Feb 28 (or 29) and then Mar 28.
    """
    step = INTERVAL_STEPS[RecurringInterval(interval)]
    return current + step * max(int(interval_count or 1), 1)


async def _due_template_ids(db: AsyncSession, now: dt.datetime) -> List[int]:
    result = await db.execute(
        select(RecurringInvoice.id)
        .where(and_(
            RecurringInvoice.status == RecurringStatus.ACTIVE.value,
            RecurringInvoice.next_invoice_date <= now,
            or_(RecurringInvoice.end_date.is_(None), RecurringInvoice.end_date >= now),
        ))
        .order_by(RecurringInvoice.next_invoice_date, RecurringInvoice.id)
    )
    return list(result.scalars().all())


async def _load_template(db: AsyncSession, recurring_id: int) -> RecurringInvoice:
    result = await db.execute(
        select(RecurringInvoice)
        .options(selectinload(RecurringInvoice.organization).selectinload(Organization.settings))
        .where(RecurringInvoice.id == recurring_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def generate_invoice(db: AsyncSession, recurring: RecurringInvoice, now: dt.datetime) -> Invoice:
    """Create the next invoice of a template and advance the template."""
    organization = recurring.organization
    org_settings = organization.settings if organization is not None else None

    invoice = Invoice(
        organization_id=recurring.organization_id,
        recurring_invoice_id=recurring.id,
        invoice_number=await next_invoice_number(db, recurring.organization_id, now.year),
        customer_name=recurring.customer_name,
        customer_email=recurring.customer_email,
        customer_address=recurring.customer_address,
        customer_city=recurring.customer_city,
        customer_postal_code=recurring.customer_postal_code,
        customer_country=recurring.customer_country or "Norge",
        customer_org_number=recurring.customer_org_number,
        issue_date=now,
        due_date=now + dt.timedelta(days=recurring.payment_due_days),
        vat_rate=recurring.vat_rate,
        bank_account=recurring.bank_account or (org_settings.bank_account if org_settings else None),
        payment_terms=recurring.payment_terms or DEFAULT_PAYMENT_TERMS,
        reference=recurring.reference,
        notes=recurring.notes,
    )
    apply_items(invoice, recurring.items or [])
    db.add(invoice)
    await db.flush()

    db.add(RecurringInvoiceLog(
        recurring_invoice_id=recurring.id,
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        amount_cents=invoice.total_cents,
        status="SUCCESS",
        generated_at=now,
    ))

    next_date = calculate_next_date(recurring.next_invoice_date, recurring.interval, recurring.interval_count)
    recurring.last_invoice_date = now
    recurring.next_invoice_date = next_date
    recurring.invoices_generated = (recurring.invoices_generated or 0) + 1
    recurring.total_revenue_cents = (recurring.total_revenue_cents or 0) + invoice.total_cents
    if recurring.end_date is not None and next_date > recurring.end_date:
        recurring.status = RecurringStatus.CANCELLED.value

    await db.flush()
    return invoice


async def process_recurring_invoices(db: AsyncSession, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
    """Generate invoices for every due recurring template.

    A failing template is logged and reported in ``results``; the others
    are still processed.

    Returns:
        ``{success, processed, results: [{recurring_id, invoice_id,
        invoice_number, success, error}]}``
    """
    now = now or utcnow()
    results: List[Dict[str, Any]] = []

    with tracer.start_as_current_span("process_recurring_invoices") as span:
        recurring_ids = await _due_template_ids(db, now)
        span.set_attribute("due_templates", len(recurring_ids))

        for recurring_id in recurring_ids:
            try:
                recurring = await _load_template(db, recurring_id)
                invoice = await generate_invoice(db, recurring, now)
                if recurring.auto_send:
                    try:
                        await send_invoice_email(db, invoice, recurring.organization, InvoiceEmailType.INVOICE)
                    except EmailDeliveryError as e:
                        logger.warning("Auto-send of recurring invoice failed", invoice_id=invoice.id, error=str(e))
                await db.commit()
            except Exception as e:
                await db.rollback()
                recurring_invoices_generated_total.labels(outcome="failed").inc()
                logger.exception("Error generating recurring invoice", recurring_id=recurring_id)
                db.add(RecurringInvoiceLog(
                    recurring_invoice_id=recurring_id,
                    status="FAILED",
                    error_message=str(e) or type(e).__name__,
                    generated_at=now,
                ))
                await db.commit()
                results.append({
                    "recurring_id": recurring_id,
                    "invoice_id": None,
                    "invoice_number": None,
                    "success": False,
                    "error": str(e) or type(e).__name__,
                })
                continue

            recurring_invoices_generated_total.labels(outcome="generated").inc()
            log_business_event(
                "recurring_invoice_generated",
                str(recurring.organization_id),
                recurring_id=recurring_id,
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                total_cents=invoice.total_cents,
            )
            results.append({
                "recurring_id": recurring_id,
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "success": True,
                "error": None,
            })

    logger.info(
        "Recurring invoices processed",
        processed=len(results),
        failed=sum(1 for r in results if not r["success"]),
    )
    return {"success": True, "processed": len(results), "results": results}
