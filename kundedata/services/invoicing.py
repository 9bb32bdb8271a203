# ==== INVOICING SERVICE ==== #

"""
Invoice arithmetic, numbering, payments and invoice emails.

Amounts are integer øre internally. Line amounts and VAT are computed in
``Decimal`` kroner and rounded half-up to whole øre.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from kundedata.business.enums import InvoiceEmailType, InvoiceStatus, EmailStatus
from kundedata.observability.logging import get_logger, log_business_event
from kundedata.observability.metrics import invoice_payment_amount_cents, invoice_payments_total
from kundedata.observability.tracing import get_tracer
from kundedata.schemas.invoice import (
    InvoiceItemResponse, InvoiceResponse, PaymentResponse
)
from kundedata.services.email import EmailDeliveryError, EmailResult, send_email
from kundedata.services.rendering import render
from kundedata.settings import settings
from kundedata.storage.models import (
    Invoice, InvoiceEmailLog, InvoiceItem, InvoicePayment, Organization
)
from kundedata.utils import cents_to_kroner, kroner_to_cents, round_ore, to_decimal, utcnow


tracer = get_tracer(__name__)
logger = get_logger(__name__)


DEFAULT_PAYMENT_TERMS = "Betalingsfrist: 14 dager"
DEFAULT_COUNTRY = "Norge"
DEFAULT_UNIT = "stk"

EMAIL_TEMPLATES = {
    InvoiceEmailType.INVOICE: "emails/invoice.html",
    InvoiceEmailType.REMINDER: "emails/invoice_reminder.html",
    InvoiceEmailType.RECEIPT: "emails/invoice_receipt.html",
}


# ==== TOTALS ==== #

def line_amount_cents(quantity: Any, unit_price: Any) -> int:
    """quantity × unit price (kroner) in øre."""
    return kroner_to_cents(to_decimal(quantity) * to_decimal(unit_price))


def vat_cents(subtotal_cents: int, vat_rate: Any) -> int:
    """VAT on a subtotal: subtotal × rate / 100, rounded to øre."""
    subtotal = Decimal(subtotal_cents) / Decimal(100)
    return kroner_to_cents(round_ore(subtotal * to_decimal(vat_rate) / Decimal(100)))


def compute_totals(amounts_cents: Iterable[int], vat_rate: Any) -> Tuple[int, int, int]:
    """(subtotal, vat, total) in øre for a set of line amounts."""
    subtotal = sum(amounts_cents)
    vat = vat_cents(subtotal, vat_rate)
    return subtotal, vat, subtotal + vat


def build_items(items: Iterable[Any]) -> List[InvoiceItem]:
    """Create InvoiceItem rows (order = position) from item inputs or dicts."""
    rows = []
    for index, item in enumerate(items):
        if isinstance(item, dict):
            description = item["description"]
            quantity = item.get("quantity", 1)
            unit_price = item["unit_price"]
            unit = item.get("unit") or DEFAULT_UNIT
        else:
            description, quantity, unit_price = item.description, item.quantity, item.unit_price
            unit = item.unit or DEFAULT_UNIT

        rows.append(InvoiceItem(
            description=description,
            quantity=float(quantity),
            unit=unit,
            unit_price_cents=kroner_to_cents(unit_price),
            amount_cents=line_amount_cents(quantity, unit_price),
            order=index,
        ))
    return rows


def apply_items(invoice: Invoice, items: Iterable[Any]) -> None:
    """Replace the invoice lines and recompute its totals."""
    rows = build_items(items)
    invoice.items = rows
    invoice.subtotal_cents, invoice.vat_amount_cents, invoice.total_cents = compute_totals(
        (row.amount_cents for row in rows), invoice.vat_rate
    )


def recompute_totals(invoice: Invoice) -> None:
    """Recompute totals from the current lines (after a VAT rate change)."""
    invoice.subtotal_cents, invoice.vat_amount_cents, invoice.total_cents = compute_totals(
        (row.amount_cents for row in invoice.items), invoice.vat_rate
    )


# ==== NUMBERING ==== #

async def next_invoice_number(db: AsyncSession, organization_id: int, year: Optional[int] = None) -> str:
    """Next ``YYYY-NNNN`` number for the organization and year.

    Follows the highest existing sequence of that year, so gaps left by
    deleted invoices are not reused.
    """
    year = year or utcnow().year
    prefix = f"{year}-"
    result = await db.execute(
        select(Invoice.invoice_number).where(and_(
            Invoice.organization_id == organization_id,
            Invoice.invoice_number.like(f"{prefix}%"),
        ))
    )

    highest = 0
    for number in result.scalars().all():
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:04d}"


# ==== PAYMENTS ==== #

def register_payment(
    invoice: Invoice,
    amount: Any,
    method: Optional[str] = None,
    reference: Optional[str] = None,
    note: Optional[str] = None,
    paid_at: Optional[dt.datetime] = None,
) -> InvoicePayment:
    """Record a payment and move the invoice to PARTIALLY_PAID or PAID.

    Raises:
        ValueError: When the amount is not positive
    """
    amount_cents = kroner_to_cents(amount)
    if amount_cents <= 0:
        raise ValueError("Beløpet må være større enn 0")

    payment = InvoicePayment(
        amount_cents=amount_cents,
        method=method,
        reference=reference,
        note=note,
        paid_at=paid_at or utcnow(),
    )
    invoice.payments.append(payment)
    invoice.paid_amount_cents = (invoice.paid_amount_cents or 0) + amount_cents

    if invoice.paid_amount_cents >= invoice.total_cents:
        invoice.status = InvoiceStatus.PAID.value
        invoice.paid_at = payment.paid_at
    elif invoice.paid_amount_cents > 0:
        invoice.status = InvoiceStatus.PARTIALLY_PAID.value
        invoice.paid_at = None

    invoice_payments_total.inc()
    invoice_payment_amount_cents.observe(amount_cents)
    log_business_event(
        "invoice_payment_registered",
        str(invoice.organization_id),
        invoice_id=invoice.id,
        amount_cents=amount_cents,
        new_status=invoice.status,
    )
    return payment


# ==== RESPONSES ==== #

def payment_to_response(payment: InvoicePayment) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        amount=cents_to_kroner(payment.amount_cents),
        method=payment.method,
        reference=payment.reference,
        note=payment.note,
        paid_at=payment.paid_at,
    )


def invoice_to_response(invoice: Invoice, organization_name: Optional[str] = None) -> InvoiceResponse:
    """Convert an invoice with loaded items and payments to its API shape."""
    return InvoiceResponse(
        id=invoice.id,
        organization_id=invoice.organization_id,
        organization_name=organization_name,
        recurring_invoice_id=invoice.recurring_invoice_id,
        invoice_number=invoice.invoice_number,
        status=invoice.status,
        customer_name=invoice.customer_name,
        customer_email=invoice.customer_email,
        customer_address=invoice.customer_address,
        customer_city=invoice.customer_city,
        customer_postal_code=invoice.customer_postal_code,
        customer_country=invoice.customer_country,
        customer_org_number=invoice.customer_org_number,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        subtotal=cents_to_kroner(invoice.subtotal_cents),
        vat_rate=invoice.vat_rate,
        vat_amount=cents_to_kroner(invoice.vat_amount_cents),
        total=cents_to_kroner(invoice.total_cents),
        paid_amount=cents_to_kroner(invoice.paid_amount_cents),
        outstanding=cents_to_kroner(invoice.outstanding_cents),
        currency=invoice.currency,
        bank_account=invoice.bank_account,
        payment_terms=invoice.payment_terms,
        reference=invoice.reference,
        notes=invoice.notes,
        internal_notes=invoice.internal_notes,
        sent_at=invoice.sent_at,
        paid_at=invoice.paid_at,
        created_at=invoice.created_at,
        items=[
            InvoiceItemResponse(
                id=item.id,
                description=item.description,
                quantity=item.quantity,
                unit=item.unit,
                unit_price=cents_to_kroner(item.unit_price_cents),
                amount=cents_to_kroner(item.amount_cents),
                order=item.order,
            )
            for item in invoice.items
        ],
        payments=[payment_to_response(p) for p in invoice.payments],
    )


# ==== EMAIL ==== #

def invoice_email_subject(email_type: InvoiceEmailType, invoice: Invoice, organization: Organization) -> str:
    if email_type == InvoiceEmailType.REMINDER:
        return f"Påminnelse: Faktura {invoice.invoice_number} forfaller snart"
    if email_type == InvoiceEmailType.RECEIPT:
        return f"Kvittering for betaling - Faktura {invoice.invoice_number}"
    return f"Faktura {invoice.invoice_number} fra {organization.name}"


async def send_invoice_email(
    db: AsyncSession,
    invoice: Invoice,
    organization: Organization,
    email_type: InvoiceEmailType = InvoiceEmailType.INVOICE,
    custom_message: Optional[str] = None,
) -> EmailResult:
    """Render and send an invoice email to the customer.

    Every attempt is written to the invoice email log. A successful
    ``invoice`` send moves a DRAFT invoice to SENT.

    Args:
        invoice: Invoice with items loaded
        organization: Issuing organization with settings loaded

    Raises:
        EmailDeliveryError: When the invoice has no customer email or the
            provider rejects the message
    """
    email_type = InvoiceEmailType(email_type)
    if not invoice.customer_email:
        raise EmailDeliveryError("Fakturaen mangler kundens e-postadresse")

    org_settings = organization.settings
    subject = invoice_email_subject(email_type, invoice, organization)
    html = render(
        EMAIL_TEMPLATES[email_type],
        invoice=invoice,
        organization=organization,
        primary_color=org_settings.primary_color if org_settings else None,
        custom_message=custom_message,
        today=utcnow(),
    )

    from_ = settings.EMAIL_FROM
    reply_to = None
    if org_settings is not None:
        if org_settings.sender_email:
            from_ = f"{org_settings.sender_name or organization.name} <{org_settings.sender_email}>"
        reply_to = org_settings.reply_to_email

    with tracer.start_as_current_span("send_invoice_email") as span:
        span.set_attribute("invoice_id", invoice.id)
        span.set_attribute("email_type", email_type.value)
        result = await send_email(
            invoice.customer_email, subject, html, from_=from_, reply_to=reply_to, kind="invoice"
        )

    db.add(InvoiceEmailLog(
        invoice_id=invoice.id,
        email_type=email_type.value,
        to_email=invoice.customer_email,
        subject=subject,
        status=EmailStatus.SENT.value if result.success else EmailStatus.FAILED.value,
        provider_message_id=result.message_id,
        error_message=result.error,
    ))

    if not result.success:
        await db.flush()
        raise EmailDeliveryError(result.error or "Kunne ikke sende e-post")

    if email_type == InvoiceEmailType.INVOICE and invoice.status == InvoiceStatus.DRAFT.value:
        invoice.status = InvoiceStatus.SENT.value
        invoice.sent_at = utcnow()

    await db.flush()
    logger.info(
        "Invoice email sent",
        invoice_id=invoice.id,
        email_type=email_type.value,
        message_id=result.message_id,
    )
    return result
