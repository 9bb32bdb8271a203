"""Unit tests for invoice arithmetic, numbering, payments and emails."""

import datetime as dt
import json
from decimal import Decimal

import httpx
import pytest
import respx
from sqlalchemy import select

from kundedata.services.accounts import create_organization
from kundedata.services.email import EmailClient, EmailDeliveryError, set_email_client
from kundedata.services.invoicing import (
    apply_items,
    build_items,
    compute_totals,
    line_amount_cents,
    next_invoice_number,
    register_payment,
    send_invoice_email,
    vat_cents,
)
from kundedata.settings import settings
from kundedata.storage.db import get_session
from kundedata.storage.models import Invoice, InvoiceEmailLog


def invoice_with_total(total_cents, paid_cents=0, status="SENT"):
    return Invoice(
        organization_id=1,
        invoice_number="2025-0001",
        customer_name="Kunde AS",
        due_date=dt.datetime(2025, 4, 1),
        status=status,
        total_cents=total_cents,
        paid_amount_cents=paid_cents,
    )


@pytest.mark.unit
class TestTotals:
    """Line, VAT and total calculation in øre."""

    def test_line_amount(self):
        assert line_amount_cents(2.5, 1000) == 250000
        assert line_amount_cents("3", Decimal("0.335")) == 101

    def test_vat_rounds_half_up(self):
        assert vat_cents(250000, 25) == 62500
        assert vat_cents(133333, 25) == 33333
        assert vat_cents(10002, 25) == 2501

    def test_compute_totals(self):
        assert compute_totals([100000, 33333], 25.0) == (133333, 33333, 166666)
        assert compute_totals([], 25.0) == (0, 0, 0)

    def test_zero_vat(self):
        assert compute_totals([5000], 0) == (5000, 0, 5000)

    def test_build_items_keeps_order_and_defaults(self):
        rows = build_items([
            {"description": "Nettside", "quantity": 1, "unit_price": 15000},
            {"description": "Timer", "quantity": 2.5, "unit_price": 950, "unit": "timer"},
        ])
        assert [(r.order, r.unit, r.amount_cents) for r in rows] == [
            (0, "stk", 1500000),
            (1, "timer", 237500),
        ]

    def test_apply_items_sets_invoice_totals(self):
        invoice = invoice_with_total(0)
        invoice.vat_rate = 25.0
        apply_items(invoice, [{"description": "Drift", "quantity": 1, "unit_price": "499"}])

        assert invoice.subtotal_cents == 49900
        assert invoice.vat_amount_cents == 12475
        assert invoice.total_cents == 62375


@pytest.mark.unit
class TestPayments:

    def test_partial_then_full_payment(self):
        invoice = invoice_with_total(100000)

        register_payment(invoice, 400)
        assert invoice.status == "PARTIALLY_PAID"
        assert invoice.paid_amount_cents == 40000
        assert invoice.paid_at is None

        payment = register_payment(invoice, "600.00", method="bank")
        assert invoice.status == "PAID"
        assert invoice.paid_at == payment.paid_at
        assert len(invoice.payments) == 2
        assert invoice.outstanding_cents == 0

    def test_overpayment_marks_paid(self):
        invoice = invoice_with_total(1000)
        register_payment(invoice, 20)
        assert invoice.status == "PAID"

    @pytest.mark.parametrize("amount", [0, -5, "0.001"])
    def test_non_positive_amount_is_rejected(self, amount):
        invoice = invoice_with_total(1000)
        with pytest.raises(ValueError, match="Beløpet må være større enn 0"):
            register_payment(invoice, amount)
        assert invoice.payments == []


@pytest.mark.unit
class TestNumbering:

    async def test_numbers_follow_highest_of_the_year(self, database):
        async with get_session() as db:
            organization = await create_organization(db, "Nummer AS")
            other = await create_organization(db, "Annen AS")
            assert await next_invoice_number(db, organization.id, 2025) == "2025-0001"

            for number, org_id in [("2025-0001", organization.id), ("2025-0007", organization.id),
                                   ("2024-0042", organization.id), ("2025-0099", other.id)]:
                db.add(Invoice(
                    organization_id=org_id,
                    invoice_number=number,
                    customer_name="Kunde",
                    due_date=dt.datetime(2025, 1, 1),
                ))
            await db.flush()

            assert await next_invoice_number(db, organization.id, 2025) == "2025-0008"
            assert await next_invoice_number(db, organization.id, 2024) == "2024-0043"
            assert await next_invoice_number(db, other.id, 2025) == "2025-0100"


async def _draft_invoice(db, customer_email="kunde@example.no"):
    organization = await create_organization(
        db, "Faktura AS", sender_name="Faktura AS", sender_email="post@faktura.no",
        reply_to_email="svar@faktura.no",
    )
    invoice = Invoice(
        organization_id=organization.id,
        invoice_number="2025-0001",
        customer_name="Kunde AS",
        customer_email=customer_email,
        due_date=dt.datetime(2025, 4, 1),
        vat_rate=25.0,
        status="DRAFT",
        bank_account="1234.56.78903",
    )
    apply_items(invoice, [{"description": "Nettside", "quantity": 1, "unit_price": 10000}])
    db.add(invoice)
    await db.flush()
    return organization, invoice


@pytest.mark.unit
class TestInvoiceEmail:

    @respx.mock
    async def test_send_marks_draft_as_sent(self, database):
        route = respx.post(settings.RESEND_API_URL).mock(
            return_value=httpx.Response(200, json={"id": "inv_msg"})
        )
        set_email_client(EmailClient(api_key="re_test"))

        async with get_session() as db:
            organization, invoice = await _draft_invoice(db)
            result = await send_invoice_email(db, invoice, organization)

            assert result.success
            assert invoice.status == "SENT"
            assert invoice.sent_at is not None

            body = json.loads(route.calls.last.request.read())
            assert body["subject"] == "Faktura 2025-0001 fra Faktura AS"
            assert body["from"] == "Faktura AS <post@faktura.no>"
            assert body["reply_to"] == "svar@faktura.no"
            assert "12 500,00 kr" in body["html"]

            log = (await db.execute(select(InvoiceEmailLog))).scalar_one()
            assert (log.email_type, log.status, log.provider_message_id) == ("invoice", "SENT", "inv_msg")

    @respx.mock
    async def test_provider_failure_is_logged_and_raised(self, database):
        respx.post(settings.RESEND_API_URL).mock(
            return_value=httpx.Response(422, json={"message": "Invalid to address"})
        )
        set_email_client(EmailClient(api_key="re_test"))

        async with get_session() as db:
            organization, invoice = await _draft_invoice(db)
            with pytest.raises(EmailDeliveryError, match="Invalid to address"):
                await send_invoice_email(db, invoice, organization, email_type="reminder")

            assert invoice.status == "DRAFT"
            log = (await db.execute(select(InvoiceEmailLog))).scalar_one()
            assert (log.email_type, log.status) == ("reminder", "FAILED")

    async def test_missing_customer_email(self, database):
        async with get_session() as db:
            organization, invoice = await _draft_invoice(db, customer_email=None)
            with pytest.raises(EmailDeliveryError, match="mangler kundens e-postadresse"):
                await send_invoice_email(db, invoice, organization)
