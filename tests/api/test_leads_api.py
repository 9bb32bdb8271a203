"""API tests for lead management."""

import csv
import io

import pytest
import pytest_asyncio

from conftest import make_form, make_organization
from kundedata.storage.db import get_session
from kundedata.storage.models import Submission


async def add_leads(organization_id, form_id, *entries):
    async with get_session() as db:
        leads = [
            Submission(organization_id=organization_id, form_id=form_id, data=data, status=status)
            for data, status in entries
        ]
        db.add_all(leads)
        await db.flush()
        return [lead.id for lead in leads]


@pytest_asyncio.fixture
async def leads(organization):
    form = await make_form(organization.id)
    ids = await add_leads(
        organization.id, form.id,
        ({"navn": "Ola", "epost": "ola@example.no"}, "NEW"),
        ({"navn": "Kari", "epost": "kari@example.no", "tjenester": ["web", "seo"]}, "CONTACTED"),
        ({"navn": "Per", "melding": "Hei, pris?"}, "NEW"),
    )
    return form, ids


@pytest.mark.api
class TestListLeads:

    async def test_paginated_newest_first(self, client, customer_headers, leads):
        _, ids = leads
        response = await client.get("/api/leads", params={"page_size": 2}, headers=customer_headers)

        data = response.json()
        assert data["total"] == 3
        assert data["has_next"] is True
        assert [item["id"] for item in data["items"]] == [ids[2], ids[1]]
        assert data["items"][0]["form_name"] == "Kontakt"

        second = (await client.get("/api/leads", params={"page": 2, "page_size": 2}, headers=customer_headers)).json()
        assert [item["id"] for item in second["items"]] == [ids[0]]
        assert second["has_next"] is False

    async def test_filters(self, client, customer_headers, leads):
        by_status = (await client.get("/api/leads", params={"status": "CONTACTED"}, headers=customer_headers)).json()
        assert [item["data"]["navn"] for item in by_status["items"]] == ["Kari"]

        by_search = (await client.get("/api/leads", params={"search": "ola@"}, headers=customer_headers)).json()
        assert by_search["total"] == 1

    async def test_other_organizations_leads_are_excluded(self, client, customer_headers, leads):
        other = await make_organization("Annen AS")
        other_form = await make_form(other.id)
        (foreign_id,) = await add_leads(other.id, other_form.id, ({"navn": "Fremmed"}, "NEW"))

        data = (await client.get("/api/leads", headers=customer_headers)).json()
        assert foreign_id not in [item["id"] for item in data["items"]]
        assert (await client.get(f"/api/leads/{foreign_id}", headers=customer_headers)).status_code == 404


@pytest.mark.api
class TestLeadUpdates:

    async def test_status_change_to_contacted(self, client, customer_headers, leads):
        _, ids = leads
        response = await client.patch(
            f"/api/leads/{ids[0]}/status", json={"status": "CONTACTED"}, headers=customer_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "CONTACTED"
        assert response.json()["last_contacted_at"] is not None

    async def test_invalid_status(self, client, customer_headers, leads):
        _, ids = leads
        response = await client.patch(
            f"/api/leads/{ids[0]}/status", json={"status": "FERDIG"}, headers=customer_headers
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Ugyldig status"

    async def test_follow_up(self, client, customer_headers, leads):
        _, ids = leads
        response = await client.patch(
            f"/api/leads/{ids[0]}/follow-up",
            json={"next_follow_up_at": "2025-06-01T10:00:00"},
            headers=customer_headers,
        )
        assert response.json()["next_follow_up_at"].startswith("2025-06-01T10:00:00")

    async def test_follow_up_with_utc_suffix(self, client, customer_headers, leads):
        _, ids = leads
        response = await client.patch(
            f"/api/leads/{ids[0]}/follow-up",
            json={"next_follow_up_at": "2025-06-01T10:00:00Z"},
            headers=customer_headers,
        )
        assert response.status_code == 200
        assert response.json()["next_follow_up_at"] == "2025-06-01T10:00:00"

    async def test_notes_newest_first(self, client, customer_headers, customer, leads):
        _, ids = leads
        first = await client.post(f"/api/leads/{ids[0]}/notes", json={"content": " Ringte, ingen svar "}, headers=customer_headers)
        await client.post(f"/api/leads/{ids[0]}/notes", json={"content": "Sendte tilbud"}, headers=customer_headers)

        assert first.status_code == 201
        assert first.json()["content"] == "Ringte, ingen svar"
        assert first.json()["user_name"] == customer.name

        notes = (await client.get(f"/api/leads/{ids[0]}/notes", headers=customer_headers)).json()
        assert [note["content"] for note in notes] == ["Sendte tilbud", "Ringte, ingen svar"]

    async def test_empty_note_is_rejected(self, client, customer_headers, leads):
        _, ids = leads
        response = await client.post(f"/api/leads/{ids[0]}/notes", json={"content": "   "}, headers=customer_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Notat kan ikke være tomt"


@pytest.mark.api
class TestExport:

    async def test_csv_export(self, client, customer_headers, leads):
        response = await client.get("/api/leads/export", headers=customer_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]

        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0][:4] == ["id", "status", "form", "created_at"]
        header = rows[0]
        by_name = {row[header.index("navn")]: row for row in rows[1:]}
        assert by_name["Kari"][header.index("tjenester")] == "web, seo"
        assert by_name["Per"][header.index("melding")] == "Hei, pris?"

    async def test_json_export(self, client, customer_headers, leads):
        response = await client.get("/api/leads/export", params={"format": "json", "status": "NEW"}, headers=customer_headers)

        data = response.json()
        assert {item["data"]["navn"] for item in data} == {"Ola", "Per"}
        assert all(item["form"] == "Kontakt" for item in data)

    async def test_unknown_format(self, client, customer_headers, leads):
        response = await client.get("/api/leads/export", params={"format": "xml"}, headers=customer_headers)
        assert response.status_code == 400
