# ==== INVOICE ROUTES ==== #

"""
Invoices issued by the platform operator to customer organizations.

Super admins manage every invoice; customers can list and read the
invoices of their own organization.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import InvoiceStatus
from kundedata.observability.logging import get_logger, log_business_event
from kundedata.observability.tracing import get_tracer
from kundedata.routes.organization import load_organization
from kundedata.schemas.common import MessageResponse
from kundedata.schemas.invoice import (
    InvoiceCreate, InvoiceResponse, InvoiceUpdate, PaymentCreate, PaymentResult,
    SendInvoiceRequest, SendInvoiceResult
)
from kundedata.security.auth import (
    FORBIDDEN_MESSAGE, SessionUser, organization_scope, require_super_admin, require_user
)
from kundedata.services.activity import log_activity
from kundedata.services.email import EmailDeliveryError
from kundedata.services.invoicing import (
    DEFAULT_COUNTRY, DEFAULT_PAYMENT_TERMS, apply_items, invoice_to_response,
    next_invoice_number, payment_to_response, recompute_totals, register_payment,
    send_invoice_email
)
from kundedata.settings import settings
from kundedata.storage.db import get_db_session
from kundedata.storage.models import Invoice, Organization
from kundedata.utils import cents_to_kroner, utcnow


router = APIRouter()
tracer = get_tracer(__name__)
logger = get_logger(__name__)

INVOICE_NOT_FOUND = "Faktura ikke funnet"


async def load_invoice(db: AsyncSession, invoice_id: int) -> Invoice:
    """Invoice with lines, payments and issuing organization, or 404."""
    result = await db.execute(
        select(Invoice)
        .options(
            selectinload(Invoice.items),
            selectinload(Invoice.payments),
            selectinload(Invoice.organization).selectinload(Organization.settings),
        )
        .where(Invoice.id == invoice_id)
        .execution_options(populate_existing=True)
    )
    invoice = result.scalar_one_or_none()
    if invoice is None:
        raise HTTPException(status_code=404, detail=INVOICE_NOT_FOUND)
    return invoice


def _response(invoice: Invoice) -> InvoiceResponse:
    return invoice_to_response(invoice, invoice.organization.name if invoice.organization else None)


@router.get("", response_model=List[InvoiceResponse])
async def list_invoices(
    user: SessionUser = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    organization_id: Optional[int] = Query(None, description="Super admin: filter by organization"),
    status: Optional[InvoiceStatus] = Query(None, description="Filter by status")
) -> List[InvoiceResponse]:
    """List invoices, newest first."""
    with tracer.start_as_current_span("list_invoices") as span:
        scope = organization_scope(user, organization_id)
        if not user.is_super_admin and scope is None:
            return []

        query = select(Invoice).options(
            selectinload(Invoice.items),
            selectinload(Invoice.payments),
            selectinload(Invoice.organization),
        )
        if scope is not None:
            query = query.where(Invoice.organization_id == scope)
        if status is not None:
            query = query.where(Invoice.status == status.value)

        result = await db.execute(query.order_by(Invoice.created_at.desc(), Invoice.id.desc()))
        invoices = result.scalars().all()
        span.set_attribute("count", len(invoices))
        return [_response(invoice) for invoice in invoices]


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    payload: InvoiceCreate,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> InvoiceResponse:
    """
    Create a DRAFT invoice with the next number for the organization.

    Raises:
        HTTPException: 404 when the organization does not exist
    """
    with tracer.start_as_current_span("create_invoice") as span:
        organization = await load_organization(db, payload.organization_id)
        issue_date = payload.issue_date or utcnow()

        invoice = Invoice(
            organization_id=organization.id,
            invoice_number=await next_invoice_number(db, organization.id, issue_date.year),
            status=InvoiceStatus.DRAFT.value,
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
            customer_address=payload.customer_address,
            customer_city=payload.customer_city,
            customer_postal_code=payload.customer_postal_code,
            customer_country=payload.customer_country or DEFAULT_COUNTRY,
            customer_org_number=payload.customer_org_number,
            issue_date=issue_date,
            due_date=payload.due_date,
            vat_rate=payload.vat_rate if payload.vat_rate is not None else settings.DEFAULT_VAT_RATE,
            bank_account=payload.bank_account or (
                organization.settings.bank_account if organization.settings else None
            ),
            payment_terms=payload.payment_terms or DEFAULT_PAYMENT_TERMS,
            reference=payload.reference,
            notes=payload.notes,
            internal_notes=payload.internal_notes,
            paid_amount_cents=0,
        )
        invoice.payments = []
        apply_items(invoice, payload.items)
        db.add(invoice)
        await db.flush()

        await log_activity(
            db,
            action="invoice.created",
            resource="invoice",
            resource_id=invoice.id,
            user_id=admin.id,
            organization_id=organization.id,
            details={"invoice_number": invoice.invoice_number, "total": str(cents_to_kroner(invoice.total_cents))},
        )
        await db.commit()

        span.set_attribute("invoice_id", invoice.id)
        log_business_event(
            "invoice_created",
            str(organization.id),
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            total_cents=invoice.total_cents,
        )
        return _response(await load_invoice(db, invoice.id))


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    user: SessionUser = Depends(require_user),
    db: AsyncSession = Depends(get_db_session)
) -> InvoiceResponse:
    """
    Get one invoice with lines and payments.

    Raises:
        HTTPException: 403 when a customer asks for another organization's invoice
    """
    invoice = await load_invoice(db, invoice_id)
    if not user.is_super_admin and user.organization_id != invoice.organization_id:
        raise HTTPException(status_code=403, detail=FORBIDDEN_MESSAGE)
    return _response(invoice)


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> InvoiceResponse:
    """Update an invoice; new lines or a new VAT rate recompute the totals."""
    invoice = await load_invoice(db, invoice_id)
    changes = payload.model_dump(exclude_unset=True, exclude={"items"})

    if changes.get("status") is not None:
        invoice.status = payload.status.value
        if payload.status == InvoiceStatus.SENT and invoice.sent_at is None:
            invoice.sent_at = utcnow()
        elif payload.status == InvoiceStatus.PAID and invoice.paid_at is None:
            invoice.paid_at = utcnow()
    changes.pop("status", None)

    vat_rate = changes.pop("vat_rate", None)
    for key, value in changes.items():
        if key in ("customer_name", "customer_country", "due_date", "payment_terms") and not value:
            continue
        setattr(invoice, key, value)

    if vat_rate is not None:
        invoice.vat_rate = vat_rate
    if payload.items is not None:
        apply_items(invoice, payload.items)
    elif vat_rate is not None:
        recompute_totals(invoice)

    await log_activity(
        db,
        action="invoice.updated",
        resource="invoice",
        resource_id=invoice.id,
        user_id=admin.id,
        organization_id=invoice.organization_id,
        details={"fields": sorted(payload.model_dump(exclude_unset=True).keys())},
    )
    await db.commit()
    return _response(await load_invoice(db, invoice.id))


@router.delete("/{invoice_id}", response_model=MessageResponse)
async def delete_invoice(
    invoice_id: int,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> MessageResponse:
    """Delete an invoice with its lines, payments and email log."""
    invoice = await load_invoice(db, invoice_id)
    number, organization_id = invoice.invoice_number, invoice.organization_id

    await db.delete(invoice)
    await log_activity(
        db,
        action="invoice.deleted",
        resource="invoice",
        resource_id=invoice_id,
        user_id=admin.id,
        organization_id=organization_id,
        details={"invoice_number": number},
    )
    await db.commit()
    return MessageResponse(message=f"Faktura {number} slettet")


@router.post("/{invoice_id}/payment", response_model=PaymentResult)
async def create_payment(
    invoice_id: int,
    payload: PaymentCreate,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> PaymentResult:
    """
    Register a payment against an invoice.

    Raises:
        HTTPException: 400 for non-positive amounts, 404 for unknown invoices
    """
    with tracer.start_as_current_span("register_payment") as span:
        span.set_attribute("invoice_id", invoice_id)
        invoice = await load_invoice(db, invoice_id)

        try:
            payment = register_payment(
                invoice,
                payload.amount,
                method=payload.method,
                reference=payload.reference,
                note=payload.note,
                paid_at=payload.paid_at,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        await db.flush()
        await log_activity(
            db,
            action="invoice.payment_registered",
            resource="invoice",
            resource_id=invoice.id,
            user_id=admin.id,
            organization_id=invoice.organization_id,
            details={"amount": str(payload.amount), "new_status": invoice.status},
        )
        await db.commit()

        span.set_attribute("new_status", invoice.status)
        return PaymentResult(
            payment=payment_to_response(payment),
            new_status=invoice.status,
            paid_amount=cents_to_kroner(invoice.paid_amount_cents),
        )


@router.post("/{invoice_id}/send", response_model=SendInvoiceResult)
async def send_invoice(
    invoice_id: int,
    payload: SendInvoiceRequest,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> SendInvoiceResult:
    """
    Email an invoice, reminder or receipt to the customer.

    Raises:
        HTTPException: 500 when the email cannot be sent; the failed
            attempt is still recorded in the invoice email log
    """
    with tracer.start_as_current_span("send_invoice") as span:
        span.set_attribute("invoice_id", invoice_id)
        span.set_attribute("email_type", payload.type.value)
        invoice = await load_invoice(db, invoice_id)

        try:
            result = await send_invoice_email(
                db, invoice, invoice.organization, payload.type, payload.custom_message
            )
        except EmailDeliveryError as e:
            await db.commit()
            logger.warning("Invoice email failed", invoice_id=invoice_id, error=str(e))
            raise HTTPException(status_code=500, detail=str(e))

        await log_activity(
            db,
            action="invoice.sent",
            resource="invoice",
            resource_id=invoice.id,
            user_id=admin.id,
            organization_id=invoice.organization_id,
            details={"type": payload.type.value, "to": invoice.customer_email},
        )
        await db.commit()

        return SendInvoiceResult(
            success=True,
            message=f"E-post sendt til {invoice.customer_email}",
            email_id=result.message_id,
        )
