# ==== RECURRING INVOICE ROUTES ==== #

"""
Recurring invoice templates (super admin only). Invoices are generated from
them by ``POST /api/cron/process-recurring-invoices``.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kundedata.business.enums import RecurringStatus
from kundedata.observability.tracing import get_tracer
from kundedata.routes.organization import load_organization
from kundedata.schemas.common import MessageResponse
from kundedata.schemas.invoice import (
    RecurringInvoiceCreate, RecurringInvoiceResponse, RecurringInvoiceUpdate, RecurringItemInput
)
from kundedata.security.auth import SessionUser, require_super_admin
from kundedata.services.activity import log_activity
from kundedata.services.invoicing import DEFAULT_COUNTRY, DEFAULT_UNIT
from kundedata.settings import settings
from kundedata.storage.db import get_db_session
from kundedata.storage.models import RecurringInvoice
from kundedata.utils import cents_to_kroner


router = APIRouter()
tracer = get_tracer(__name__)


def item_templates(items: List[RecurringItemInput]) -> List[Dict[str, Any]]:
    """JSON line templates with the unit price in kroner."""
    return [
        {
            "description": item.description,
            "quantity": item.quantity,
            "unit": item.unit or DEFAULT_UNIT,
            "unit_price": float(item.unit_price),
        }
        for item in items
    ]


def _response(recurring: RecurringInvoice) -> RecurringInvoiceResponse:
    return RecurringInvoiceResponse(
        id=recurring.id,
        organization_id=recurring.organization_id,
        organization_name=recurring.organization.name if recurring.organization else None,
        name=recurring.name,
        description=recurring.description,
        customer_name=recurring.customer_name,
        customer_email=recurring.customer_email,
        customer_address=recurring.customer_address,
        customer_city=recurring.customer_city,
        customer_postal_code=recurring.customer_postal_code,
        customer_country=recurring.customer_country,
        customer_org_number=recurring.customer_org_number,
        interval=recurring.interval,
        interval_count=recurring.interval_count,
        start_date=recurring.start_date,
        end_date=recurring.end_date,
        next_invoice_date=recurring.next_invoice_date,
        last_invoice_date=recurring.last_invoice_date,
        items=recurring.items or [],
        vat_rate=recurring.vat_rate,
        payment_due_days=recurring.payment_due_days,
        status=recurring.status,
        invoices_generated=recurring.invoices_generated,
        total_revenue=cents_to_kroner(recurring.total_revenue_cents),
        auto_send=recurring.auto_send,
        created_at=recurring.created_at,
    )


async def _load_recurring(db: AsyncSession, recurring_id: int) -> RecurringInvoice:
    result = await db.execute(
        select(RecurringInvoice)
        .options(selectinload(RecurringInvoice.organization))
        .where(RecurringInvoice.id == recurring_id)
        .execution_options(populate_existing=True)
    )
    recurring = result.scalar_one_or_none()
    if recurring is None:
        raise HTTPException(status_code=404, detail="Gjentakende faktura ikke funnet")
    return recurring


@router.get("", response_model=List[RecurringInvoiceResponse])
async def list_recurring_invoices(
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session),
    organization_id: Optional[int] = Query(None),
    status: Optional[RecurringStatus] = Query(None)
) -> List[RecurringInvoiceResponse]:
    """List recurring templates ordered by their next invoice date."""
    query = select(RecurringInvoice).options(selectinload(RecurringInvoice.organization))
    if organization_id is not None:
        query = query.where(RecurringInvoice.organization_id == organization_id)
    if status is not None:
        query = query.where(RecurringInvoice.status == status.value)

    result = await db.execute(query.order_by(RecurringInvoice.next_invoice_date, RecurringInvoice.id))
    return [_response(r) for r in result.scalars().all()]


@router.post("", response_model=RecurringInvoiceResponse, status_code=201)
async def create_recurring_invoice(
    payload: RecurringInvoiceCreate,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> RecurringInvoiceResponse:
    """
    Create an ACTIVE template whose first invoice is due on ``start_date``.

    Raises:
        HTTPException: 404 when the organization does not exist
    """
    with tracer.start_as_current_span("create_recurring_invoice") as span:
        organization = await load_organization(db, payload.organization_id)

        recurring = RecurringInvoice(
            organization_id=organization.id,
            name=payload.name,
            description=payload.description,
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
            customer_address=payload.customer_address,
            customer_city=payload.customer_city,
            customer_postal_code=payload.customer_postal_code,
            customer_country=payload.customer_country or DEFAULT_COUNTRY,
            customer_org_number=payload.customer_org_number,
            interval=payload.interval.value,
            interval_count=payload.interval_count,
            start_date=payload.start_date,
            end_date=payload.end_date,
            next_invoice_date=payload.start_date,
            items=item_templates(payload.items),
            vat_rate=payload.vat_rate if payload.vat_rate is not None else settings.DEFAULT_VAT_RATE,
            payment_due_days=(
                payload.payment_due_days if payload.payment_due_days is not None
                else settings.DEFAULT_PAYMENT_DUE_DAYS
            ),
            bank_account=payload.bank_account,
            payment_terms=payload.payment_terms,
            reference=payload.reference,
            notes=payload.notes,
            auto_send=payload.auto_send,
            status=RecurringStatus.ACTIVE.value,
            invoices_generated=0,
            total_revenue_cents=0,
        )
        db.add(recurring)
        await db.flush()

        await log_activity(
            db,
            action="recurring_invoice.created",
            resource="recurring_invoice",
            resource_id=recurring.id,
            user_id=admin.id,
            organization_id=organization.id,
            details={"name": recurring.name, "interval": recurring.interval},
        )
        await db.commit()

        span.set_attribute("recurring_invoice_id", recurring.id)
        return _response(await _load_recurring(db, recurring.id))


@router.get("/{recurring_id}", response_model=RecurringInvoiceResponse)
async def get_recurring_invoice(
    recurring_id: int,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> RecurringInvoiceResponse:
    return _response(await _load_recurring(db, recurring_id))


@router.patch("/{recurring_id}", response_model=RecurringInvoiceResponse)
async def update_recurring_invoice(
    recurring_id: int,
    payload: RecurringInvoiceUpdate,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> RecurringInvoiceResponse:
    """Update a template; pausing, resuming and cancelling go through ``status``."""
    recurring = await _load_recurring(db, recurring_id)
    changes = payload.model_dump(exclude_unset=True, exclude={"items", "status", "interval"})

    if payload.status is not None:
        recurring.status = payload.status.value
    if payload.interval is not None:
        recurring.interval = payload.interval.value
    if payload.items is not None:
        if not payload.items:
            raise HTTPException(status_code=400, detail="Minst én fakturalinje er påkrevd")
        recurring.items = item_templates(payload.items)

    for key, value in changes.items():
        if value is None and key not in ("end_date", "description", "customer_address", "customer_city",
                                         "customer_postal_code", "customer_org_number", "bank_account",
                                         "payment_terms", "reference", "notes"):
            continue
        setattr(recurring, key, value)

    if recurring.end_date is not None and recurring.end_date < recurring.start_date:
        raise HTTPException(status_code=400, detail="Sluttdato kan ikke være før startdato")

    await log_activity(
        db,
        action="recurring_invoice.updated",
        resource="recurring_invoice",
        resource_id=recurring.id,
        user_id=admin.id,
        organization_id=recurring.organization_id,
        details={"fields": sorted(payload.model_dump(exclude_unset=True).keys())},
    )
    await db.commit()
    return _response(await _load_recurring(db, recurring.id))


@router.delete("/{recurring_id}", response_model=MessageResponse)
async def delete_recurring_invoice(
    recurring_id: int,
    admin: SessionUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db_session)
) -> MessageResponse:
    """Delete a template; invoices already generated are kept."""
    recurring = await _load_recurring(db, recurring_id)
    name, organization_id = recurring.name, recurring.organization_id

    await db.delete(recurring)
    await log_activity(
        db,
        action="recurring_invoice.deleted",
        resource="recurring_invoice",
        resource_id=recurring_id,
        user_id=admin.id,
        organization_id=organization_id,
        details={"name": name},
    )
    await db.commit()
    return MessageResponse(message="Gjentakende faktura slettet")
