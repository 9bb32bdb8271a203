"""Pydantic schemas for invoices, payments and recurring invoices.

Amounts are kroner as ``Decimal`` at the API boundary and integer øre in the
database; conversion happens in ``kundedata.services.invoicing``.
"""

import datetime as dt
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from kundedata.business.enums import (
    InvoiceEmailType, InvoiceStatus, RecurringInterval, RecurringStatus
)
from kundedata.schemas.common import Email, OptionalEmail, OptionalUtcDateTime, UtcDateTime


class InvoiceItemInput(BaseModel):
    description: str
    quantity: float = Field(1.0, gt=0)
    unit_price: Decimal
    unit: str = "stk"

    @field_validator("description")
    @classmethod
    def _description(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("Beskrivelse er påkrevd")
        return value


class InvoiceCreate(BaseModel):
    organization_id: int
    customer_name: str
    customer_email: OptionalEmail = None
    customer_address: Optional[str] = None
    customer_city: Optional[str] = None
    customer_postal_code: Optional[str] = None
    customer_country: Optional[str] = None
    customer_org_number: Optional[str] = None
    issue_date: OptionalUtcDateTime = None
    due_date: UtcDateTime
    items: List[InvoiceItemInput]
    vat_rate: Optional[float] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    reference: Optional[str] = None
    bank_account: Optional[str] = None
    payment_terms: Optional[str] = None

    @field_validator("customer_name")
    @classmethod
    def _customer_name(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("Kundenavn er påkrevd")
        return value

    @field_validator("items")
    @classmethod
    def _items(cls, value: List[InvoiceItemInput]) -> List[InvoiceItemInput]:
        if not value:
            raise ValueError("Minst én fakturalinje er påkrevd")
        return value


class InvoiceUpdate(BaseModel):
    """Partial update; a given item list replaces the lines and recomputes totals."""

    status: Optional[InvoiceStatus] = None
    customer_name: Optional[str] = None
    customer_email: OptionalEmail = None
    customer_address: Optional[str] = None
    customer_city: Optional[str] = None
    customer_postal_code: Optional[str] = None
    customer_country: Optional[str] = None
    customer_org_number: Optional[str] = None
    due_date: OptionalUtcDateTime = None
    items: Optional[List[InvoiceItemInput]] = None
    vat_rate: Optional[float] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    reference: Optional[str] = None
    bank_account: Optional[str] = None
    payment_terms: Optional[str] = None

    @field_validator("items")
    @classmethod
    def _items(cls, value: Optional[List[InvoiceItemInput]]) -> Optional[List[InvoiceItemInput]]:
        if value is not None and not value:
            raise ValueError("Minst én fakturalinje er påkrevd")
        return value


class PaymentCreate(BaseModel):
    amount: Decimal
    method: Optional[str] = None
    reference: Optional[str] = None
    note: Optional[str] = None
    paid_at: OptionalUtcDateTime = None

    @field_validator("amount")
    @classmethod
    def _amount(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("Beløpet må være større enn 0")
        return value


class SendInvoiceRequest(BaseModel):
    type: InvoiceEmailType = InvoiceEmailType.INVOICE
    custom_message: Optional[str] = None


class InvoiceItemResponse(BaseModel):
    id: int
    description: str
    quantity: float
    unit: str
    unit_price: Decimal
    amount: Decimal
    order: int


class PaymentResponse(BaseModel):
    id: int
    amount: Decimal
    method: Optional[str] = None
    reference: Optional[str] = None
    note: Optional[str] = None
    paid_at: dt.datetime


class InvoiceResponse(BaseModel):
    id: int
    organization_id: int
    organization_name: Optional[str] = None
    recurring_invoice_id: Optional[int] = None
    invoice_number: str
    status: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    customer_city: Optional[str] = None
    customer_postal_code: Optional[str] = None
    customer_country: str
    customer_org_number: Optional[str] = None
    issue_date: dt.datetime
    due_date: dt.datetime
    subtotal: Decimal
    vat_rate: float
    vat_amount: Decimal
    total: Decimal
    paid_amount: Decimal
    outstanding: Decimal
    currency: str
    bank_account: Optional[str] = None
    payment_terms: str
    reference: Optional[str] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    sent_at: Optional[dt.datetime] = None
    paid_at: Optional[dt.datetime] = None
    created_at: dt.datetime
    items: List[InvoiceItemResponse] = []
    payments: List[PaymentResponse] = []


class PaymentResult(BaseModel):
    payment: PaymentResponse
    new_status: str
    paid_amount: Decimal


class SendInvoiceResult(BaseModel):
    success: bool
    message: str
    email_id: Optional[str] = None


# ==== RECURRING INVOICES ==== #


class RecurringItemInput(BaseModel):
    description: str
    quantity: float = Field(1.0, gt=0)
    unit_price: Decimal
    unit: str = "stk"


class RecurringInvoiceCreate(BaseModel):
    organization_id: int
    name: str
    description: Optional[str] = None
    customer_name: str
    customer_email: Email
    customer_address: Optional[str] = None
    customer_city: Optional[str] = None
    customer_postal_code: Optional[str] = None
    customer_country: Optional[str] = None
    customer_org_number: Optional[str] = None
    interval: RecurringInterval
    interval_count: int = Field(1, ge=1)
    start_date: UtcDateTime
    end_date: OptionalUtcDateTime = None
    items: List[RecurringItemInput]
    vat_rate: Optional[float] = Field(None, ge=0, le=100)
    payment_due_days: Optional[int] = Field(None, ge=0)
    bank_account: Optional[str] = None
    payment_terms: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    auto_send: bool = False

    @field_validator("name", "customer_name")
    @classmethod
    def _required_text(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("Mangler påkrevde felt")
        return value

    @field_validator("items")
    @classmethod
    def _items(cls, value: List[RecurringItemInput]) -> List[RecurringItemInput]:
        if not value:
            raise ValueError("Minst én fakturalinje er påkrevd")
        return value

    @model_validator(mode="after")
    def _date_range(self) -> "RecurringInvoiceCreate":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("Sluttdato kan ikke være før startdato")
        return self


class RecurringInvoiceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[RecurringStatus] = None
    customer_name: Optional[str] = None
    customer_email: OptionalEmail = None
    customer_address: Optional[str] = None
    customer_city: Optional[str] = None
    customer_postal_code: Optional[str] = None
    customer_country: Optional[str] = None
    customer_org_number: Optional[str] = None
    interval: Optional[RecurringInterval] = None
    interval_count: Optional[int] = Field(None, ge=1)
    end_date: OptionalUtcDateTime = None
    next_invoice_date: OptionalUtcDateTime = None
    items: Optional[List[RecurringItemInput]] = None
    vat_rate: Optional[float] = Field(None, ge=0, le=100)
    payment_due_days: Optional[int] = Field(None, ge=0)
    bank_account: Optional[str] = None
    payment_terms: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    auto_send: Optional[bool] = None


class RecurringInvoiceResponse(BaseModel):
    id: int
    organization_id: int
    organization_name: Optional[str] = None
    name: str
    description: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_address: Optional[str] = None
    customer_city: Optional[str] = None
    customer_postal_code: Optional[str] = None
    customer_country: str
    customer_org_number: Optional[str] = None
    interval: str
    interval_count: int
    start_date: dt.datetime
    end_date: Optional[dt.datetime] = None
    next_invoice_date: dt.datetime
    last_invoice_date: Optional[dt.datetime] = None
    items: List[dict]
    vat_rate: float
    payment_due_days: int
    status: str
    invoices_generated: int
    total_revenue: Decimal
    auto_send: bool
    created_at: dt.datetime


class RecurringRunResult(BaseModel):
    recurring_id: int
    invoice_id: Optional[int] = None
    invoice_number: Optional[str] = None
    success: bool
    error: Optional[str] = None


class ProcessRecurringResponse(BaseModel):
    success: bool = True
    processed: int
    results: List[RecurringRunResult]
