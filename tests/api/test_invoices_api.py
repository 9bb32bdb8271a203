"""API tests for invoices and recurring invoice templates."""

import datetime as dt
from decimal import Decimal

import httpx
import pytest
import respx
from sqlalchemy import select

from conftest import auth_headers, make_organization, make_user
from kundedata.services.email import EmailClient, set_email_client
from kundedata.settings import settings
from kundedata.storage.db import get_session
from kundedata.storage.models import InvoiceEmailLog


def invoice_body(organization_id, **overrides):
    body = {
        "organization_id": organization_id,
        "customer_name": "Kunde AS",
        "customer_email": "faktura@kunde.no",
        "due_date": "2025-04-01T00:00:00",
        "issue_date": "2025-03-18T00:00:00",
        "items": [
            {"description": "Nettside", "quantity": 1, "unit_price": "15000"},
            {"description": "Timer", "quantity": 2.5, "unit_price": "950", "unit": "timer"},
        ],
    }
    body.update(overrides)
    return body


async def create_invoice(client, admin_headers, organization_id, **overrides):
    response = await client.post("/api/invoices", json=invoice_body(organization_id, **overrides), headers=admin_headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.api
class TestInvoices:

    async def test_create_computes_totals_and_number(self, client, admin_headers, organization):
        data = await create_invoice(client, admin_headers, organization.id)

        assert data["invoice_number"] == "2025-0001"
        assert data["status"] == "DRAFT"
        assert data["organization_name"] == organization.name
        assert Decimal(data["subtotal"]) == Decimal("17375.00")
        assert Decimal(data["vat_amount"]) == Decimal("4343.75")
        assert Decimal(data["total"]) == Decimal("21718.75")
        assert Decimal(data["outstanding"]) == Decimal("21718.75")
        assert [item["order"] for item in data["items"]] == [0, 1]

        second = await create_invoice(client, admin_headers, organization.id)
        assert second["invoice_number"] == "2025-0002"

    async def test_bank_account_defaults_from_organization(self, client, admin_headers, database):
        organization = await make_organization("Bank AS", bank_account="1111.22.33333")
        data = await create_invoice(client, admin_headers, organization.id)
        assert data["bank_account"] == "1111.22.33333"

    async def test_customers_cannot_create(self, client, customer_headers, organization):
        response = await client.post("/api/invoices", json=invoice_body(organization.id), headers=customer_headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "Ingen tilgang"

    async def test_customer_sees_only_own_invoices(self, client, admin_headers, customer_headers, organization):
        own = await create_invoice(client, admin_headers, organization.id)
        other = await make_organization("Annen AS")
        foreign = await create_invoice(client, admin_headers, other.id)

        listed = (await client.get("/api/invoices", headers=customer_headers)).json()
        assert [invoice["id"] for invoice in listed] == [own["id"]]

        assert (await client.get(f"/api/invoices/{own['id']}", headers=customer_headers)).status_code == 200
        response = await client.get(f"/api/invoices/{foreign['id']}", headers=customer_headers)
        assert response.status_code == 403

    async def test_customer_without_organization_gets_empty_list(self, client, database):
        user = await make_user(email="alene@example.no")
        assert (await client.get("/api/invoices", headers=auth_headers(user))).json() == []

    async def test_update_vat_rate_recomputes(self, client, admin_headers, organization):
        invoice = await create_invoice(client, admin_headers, organization.id)
        response = await client.patch(
            f"/api/invoices/{invoice['id']}", json={"vat_rate": 0, "status": "SENT"}, headers=admin_headers
        )

        data = response.json()
        assert Decimal(data["vat_amount"]) == Decimal("0")
        assert Decimal(data["total"]) == Decimal("17375.00")
        assert data["status"] == "SENT"
        assert data["sent_at"] is not None

    async def test_payments(self, client, admin_headers, organization):
        invoice = await create_invoice(client, admin_headers, organization.id)
        url = f"/api/invoices/{invoice['id']}/payment"

        partial = (await client.post(url, json={"amount": "10000"}, headers=admin_headers)).json()
        assert partial["new_status"] == "PARTIALLY_PAID"
        assert Decimal(partial["paid_amount"]) == Decimal("10000.00")

        full = (await client.post(url, json={"amount": "11718.75", "method": "bank"}, headers=admin_headers)).json()
        assert full["new_status"] == "PAID"
        assert full["payment"]["method"] == "bank"

        data = (await client.get(f"/api/invoices/{invoice['id']}", headers=admin_headers)).json()
        assert data["paid_at"] is not None
        assert Decimal(data["outstanding"]) == Decimal("0")
        assert len(data["payments"]) == 2

    async def test_zero_payment_is_rejected(self, client, admin_headers, organization):
        invoice = await create_invoice(client, admin_headers, organization.id)
        response = await client.post(
            f"/api/invoices/{invoice['id']}/payment", json={"amount": "0"}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Beløpet må være større enn 0"

    @respx.mock
    async def test_send_invoice(self, client, admin_headers, organization):
        respx.post(settings.RESEND_API_URL).mock(return_value=httpx.Response(200, json={"id": "em_1"}))
        set_email_client(EmailClient(api_key="re_test"))
        invoice = await create_invoice(client, admin_headers, organization.id)

        response = await client.post(f"/api/invoices/{invoice['id']}/send", json={}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {
            "success": True, "message": "E-post sendt til faktura@kunde.no", "email_id": "em_1",
        }
        data = (await client.get(f"/api/invoices/{invoice['id']}", headers=admin_headers)).json()
        assert data["status"] == "SENT"

    async def test_failed_send_is_logged(self, client, admin_headers, organization):
        set_email_client(EmailClient(api_key=""))
        invoice = await create_invoice(client, admin_headers, organization.id)

        response = await client.post(
            f"/api/invoices/{invoice['id']}/send", json={"type": "reminder"}, headers=admin_headers
        )

        assert response.status_code == 500
        async with get_session() as db:
            log = (await db.execute(select(InvoiceEmailLog))).scalar_one()
            assert (log.email_type, log.status) == ("reminder", "FAILED")

    async def test_delete(self, client, admin_headers, organization):
        invoice = await create_invoice(client, admin_headers, organization.id)
        await client.post(f"/api/invoices/{invoice['id']}/payment", json={"amount": "100"}, headers=admin_headers)

        response = await client.delete(f"/api/invoices/{invoice['id']}", headers=admin_headers)
        assert response.json()["message"] == "Faktura 2025-0001 slettet"
        assert (await client.get(f"/api/invoices/{invoice['id']}", headers=admin_headers)).status_code == 404


def recurring_body(organization_id, **overrides):
    body = {
        "organization_id": organization_id,
        "name": "Hosting",
        "customer_name": "Kunde AS",
        "customer_email": "faktura@kunde.no",
        "interval": "MONTHLY",
        "start_date": "2025-01-31T00:00:00",
        "items": [{"description": "Hosting", "quantity": 1, "unit_price": "299"}],
    }
    body.update(overrides)
    return body


@pytest.mark.api
class TestRecurringInvoices:

    async def test_create_and_generate_through_cron(self, client, admin_headers, organization):
        response = await client.post("/api/recurring-invoices", json=recurring_body(organization.id), headers=admin_headers)

        assert response.status_code == 201
        recurring = response.json()
        assert recurring["status"] == "ACTIVE"
        assert recurring["next_invoice_date"].startswith("2025-01-31")
        assert recurring["vat_rate"] == 25.0
        assert recurring["payment_due_days"] == 14
        assert recurring["items"][0]["unit_price"] == 299.0

        run = (await client.post("/api/cron/process-recurring-invoices")).json()
        assert run["processed"] == 1
        assert run["results"][0]["success"] is True

        refreshed = (await client.get(f"/api/recurring-invoices/{recurring['id']}", headers=admin_headers)).json()
        assert refreshed["next_invoice_date"].startswith("2025-02-28")
        assert refreshed["invoices_generated"] == 1
        assert Decimal(refreshed["total_revenue"]) == Decimal("373.75")

    async def test_end_before_start_is_rejected(self, client, admin_headers, organization):
        response = await client.post(
            "/api/recurring-invoices",
            json=recurring_body(organization.id, end_date="2024-12-31T00:00:00"),
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Sluttdato kan ikke være før startdato"

    async def test_pause_and_list_by_status(self, client, admin_headers, organization):
        recurring = (await client.post(
            "/api/recurring-invoices", json=recurring_body(organization.id), headers=admin_headers
        )).json()

        paused = await client.patch(
            f"/api/recurring-invoices/{recurring['id']}", json={"status": "PAUSED"}, headers=admin_headers
        )
        assert paused.json()["status"] == "PAUSED"

        listed = (await client.get("/api/recurring-invoices", params={"status": "ACTIVE"}, headers=admin_headers)).json()
        assert listed == []

    async def test_update_accepts_offset_datetimes(self, client, admin_headers, organization):
        recurring = (await client.post(
            "/api/recurring-invoices", json=recurring_body(organization.id), headers=admin_headers
        )).json()

        response = await client.patch(
            f"/api/recurring-invoices/{recurring['id']}",
            json={"end_date": "2026-12-31T00:00:00Z", "next_invoice_date": "2025-03-01T10:00:00+02:00"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["end_date"] == "2026-12-31T00:00:00"
        assert data["next_invoice_date"] == "2025-03-01T08:00:00"

    async def test_admin_only(self, client, customer_headers):
        assert (await client.get("/api/recurring-invoices", headers=customer_headers)).status_code == 403
