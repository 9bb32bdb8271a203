"""Unit tests for recurring invoice generation."""

import datetime as dt

import pytest
from sqlalchemy import select

from conftest import make_organization
from kundedata.services.recurring_invoices import calculate_next_date, process_recurring_invoices
from kundedata.storage.db import get_session
from kundedata.storage.models import Invoice, RecurringInvoice, RecurringInvoiceLog


@pytest.mark.unit
class TestCalculateNextDate:

    @pytest.mark.parametrize("interval,count,expected", [
        ("WEEKLY", 1, dt.datetime(2025, 2, 7)),
        ("BIWEEKLY", 1, dt.datetime(2025, 2, 14)),
        ("MONTHLY", 1, dt.datetime(2025, 2, 28)),
        ("MONTHLY", 2, dt.datetime(2025, 3, 31)),
        ("QUARTERLY", 1, dt.datetime(2025, 4, 30)),
        ("BIANNUALLY", 1, dt.datetime(2025, 7, 31)),
        ("YEARLY", 1, dt.datetime(2026, 1, 31)),
    ])
    def test_intervals_from_month_end(self, interval, count, expected):
        assert calculate_next_date(dt.datetime(2025, 1, 31), interval, count) == expected

    def test_leap_year_clamp(self):
        assert calculate_next_date(dt.datetime(2024, 1, 31), "MONTHLY") == dt.datetime(2024, 2, 29)

    def test_invalid_count_falls_back_to_one(self):
        assert calculate_next_date(dt.datetime(2025, 1, 1), "WEEKLY", 0) == dt.datetime(2025, 1, 8)

    def test_unknown_interval(self):
        with pytest.raises(ValueError):
            calculate_next_date(dt.datetime(2025, 1, 1), "DAILY")


NOW = dt.datetime(2025, 3, 1, 6, 0)


async def _template(organization_id, **fields):
    values = {
        "organization_id": organization_id,
        "name": "Månedlig drift",
        "customer_name": "Kunde AS",
        "customer_email": "kunde@example.no",
        "interval": "MONTHLY",
        "start_date": dt.datetime(2025, 1, 1),
        "next_invoice_date": dt.datetime(2025, 3, 1),
        "items": [{"description": "Drift og vedlikehold", "quantity": 1, "unit_price": 499.0}],
        "vat_rate": 25.0,
        "payment_due_days": 14,
    }
    values.update(fields)
    async with get_session() as db:
        recurring = RecurringInvoice(**values)
        db.add(recurring)
        await db.flush()
        return recurring.id


@pytest.mark.unit
class TestProcessRecurringInvoices:

    async def test_due_template_generates_one_invoice(self, database):
        organization = await make_organization(bank_account="1234.56.78903")
        recurring_id = await _template(organization.id)
        await _template(organization.id, name="Fremtidig", next_invoice_date=dt.datetime(2025, 4, 1))
        await _template(organization.id, name="Pauset", status="PAUSED")

        async with get_session() as db:
            result = await process_recurring_invoices(db, NOW)

        assert result["success"] is True
        assert result["processed"] == 1
        (entry,) = result["results"]
        assert entry["recurring_id"] == recurring_id
        assert entry["success"] is True
        assert entry["invoice_number"] == "2025-0001"

        async with get_session() as db:
            invoice = await db.get(Invoice, entry["invoice_id"])
            assert invoice.status == "DRAFT"
            assert invoice.recurring_invoice_id == recurring_id
            assert invoice.total_cents == 62375
            assert invoice.due_date == NOW + dt.timedelta(days=14)
            assert invoice.bank_account == "1234.56.78903"

            recurring = await db.get(RecurringInvoice, recurring_id)
            assert recurring.next_invoice_date == dt.datetime(2025, 4, 1)
            assert recurring.last_invoice_date == NOW
            assert recurring.invoices_generated == 1
            assert recurring.total_revenue_cents == 62375

            log = (await db.execute(select(RecurringInvoiceLog))).scalar_one()
            assert (log.status, log.invoice_id) == ("SUCCESS", invoice.id)

    async def test_missed_periods_catch_up_one_per_run(self, database):
        organization = await make_organization()
        recurring_id = await _template(organization.id, next_invoice_date=dt.datetime(2025, 1, 1))

        for _ in range(3):
            async with get_session() as db:
                await process_recurring_invoices(db, NOW)
        async with get_session() as db:
            result = await process_recurring_invoices(db, NOW)
        assert result["processed"] == 0

        async with get_session() as db:
            numbers = (await db.execute(
                select(Invoice.invoice_number).order_by(Invoice.id)
            )).scalars().all()
            assert numbers == ["2025-0001", "2025-0002", "2025-0003"]
            recurring = await db.get(RecurringInvoice, recurring_id)
            assert recurring.next_invoice_date == dt.datetime(2025, 4, 1)

    async def test_template_past_end_date_is_cancelled(self, database):
        organization = await make_organization()
        recurring_id = await _template(organization.id, end_date=dt.datetime(2025, 3, 15))

        async with get_session() as db:
            result = await process_recurring_invoices(db, NOW)
        assert result["processed"] == 1

        async with get_session() as db:
            recurring = await db.get(RecurringInvoice, recurring_id)
            assert recurring.status == "CANCELLED"

    async def test_failing_template_is_reported(self, database):
        organization = await make_organization()
        broken_id = await _template(organization.id, name="Ødelagt", items=[{"quantity": 1}])
        good_id = await _template(organization.id, next_invoice_date=dt.datetime(2025, 2, 1))

        async with get_session() as db:
            result = await process_recurring_invoices(db, NOW)

        by_id = {entry["recurring_id"]: entry for entry in result["results"]}
        assert by_id[good_id]["success"] is True
        assert by_id[broken_id]["success"] is False
        assert by_id[broken_id]["error"]

        async with get_session() as db:
            failed = (await db.execute(
                select(RecurringInvoiceLog).where(RecurringInvoiceLog.status == "FAILED")
            )).scalar_one()
            assert failed.recurring_invoice_id == broken_id
