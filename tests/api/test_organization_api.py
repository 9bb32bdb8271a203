"""API tests for organization settings, admin customer management and uploads."""

import pytest
import respx
from httpx import Response
from sqlalchemy import select

from conftest import make_form, make_organization
from kundedata.services.uploads import StorageClient, get_storage_client
from kundedata.storage.db import get_session
from kundedata.storage.models import Form, Organization, User


pytestmark = pytest.mark.api

SUPABASE = "https://prosjekt.supabase.co"


# ==== OWN ORGANIZATION ==== #


async def test_get_organization_with_default_settings(client, customer_headers, organization):
    response = await client.get("/api/organization", headers=customer_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == organization.id
    assert data["slug"] == "testbedrift-as"
    assert data["settings"]["primary_color"] == "#4F46E5"
    assert data["settings"]["secondary_color"] == "#F97316"


async def test_update_organization_and_settings(client, customer_headers):
    response = await client.patch(
        "/api/organization",
        json={
            "name": "Nytt Navn AS",
            "slug": "nytt-navn",
            "settings": {"primary_color": "#000000", "bank_account": "1234.56.78903"},
        },
        headers=customer_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Nytt Navn AS"
    assert data["slug"] == "nytt-navn"
    assert data["settings"]["primary_color"] == "#000000"
    assert data["settings"]["secondary_color"] == "#F97316"
    assert data["settings"]["bank_account"] == "1234.56.78903"


async def test_update_organization_slug_conflict(client, customer_headers):
    await make_organization("Opptatt")

    response = await client.patch("/api/organization", json={"slug": "opptatt"}, headers=customer_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Denne URL-en er allerede i bruk"


async def test_update_organization_invalid_color(client, customer_headers):
    response = await client.patch(
        "/api/organization", json={"settings": {"primary_color": "blå"}}, headers=customer_headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Ugyldig farge"


# ==== ADMIN CUSTOMERS ==== #


CUSTOMER = {
    "company_name": "Rørlegger Hansen AS",
    "contact_name": "Hans Hansen",
    "contact_email": "Hans@Rorlegger.no",
    "password": "Hemmelig123",
    "max_forms": 3,
}


async def test_admin_creates_customer_with_login(client, admin_headers):
    response = await client.post("/api/admin/customers", json=CUSTOMER, headers=admin_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Rørlegger Hansen AS"
    assert data["max_forms"] == 3
    assert data["settings"]["primary_color"] == "#6366f1"

    async with get_session() as db:
        user = (await db.execute(select(User).where(User.email == "hans@rorlegger.no"))).scalar_one()
    assert user.organization_id == data["id"]
    assert user.role == "CUSTOMER"

    login = await client.post(
        "/api/auth/login", json={"email": "hans@rorlegger.no", "password": "Hemmelig123"}
    )
    assert login.status_code == 200


async def test_admin_create_customer_duplicate_email(client, admin_headers, customer):
    response = await client.post(
        "/api/admin/customers",
        json={**CUSTOMER, "contact_email": customer.email},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "En bruker med denne e-postadressen finnes allerede"


async def test_admin_create_customer_short_password(client, admin_headers):
    response = await client.post(
        "/api/admin/customers", json={**CUSTOMER, "password": "kort"}, headers=admin_headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Passord må være minst 8 tegn"


async def test_admin_lists_customers_with_counts(client, admin_headers, organization, customer):
    await make_form(organization.id)

    response = await client.get("/api/admin/customers", headers=admin_headers)

    assert response.status_code == 200
    [row] = response.json()
    assert row["id"] == organization.id
    assert row["user_count"] == 1
    assert row["form_count"] == 1
    assert row["submission_count"] == 0


async def test_admin_updates_customer(client, admin_headers, organization):
    response = await client.patch(
        f"/api/admin/customers/{organization.id}",
        json={"company_name": " Omdøpt AS ", "plan": "pro", "max_users": None, "settings": {"sender_name": "Omdøpt"}},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Omdøpt AS"
    assert data["plan"] == "pro"
    assert data["max_users"] == 5
    assert data["settings"]["sender_name"] == "Omdøpt"


async def test_admin_deletes_customer_with_everything(client, admin_headers, organization, customer):
    await make_form(organization.id)

    response = await client.delete(f"/api/admin/customers/{organization.id}", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Kunden Testbedrift AS er slettet"
    async with get_session() as db:
        assert (await db.execute(select(Organization.id))).first() is None
        assert (await db.execute(select(Form.id))).first() is None
        assert (await db.execute(select(User.id).where(User.id == customer.id))).first() is None

    response = await client.get(f"/api/admin/customers/{organization.id}", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Organisasjon ikke funnet"


async def test_customer_cannot_use_admin_routes(client, customer_headers):
    response = await client.get("/api/admin/customers", headers=customer_headers)

    assert response.status_code == 403


# ==== UPLOADS ==== #


@pytest.fixture
def storage(app):
    app.dependency_overrides[get_storage_client] = lambda: StorageClient(base_url=SUPABASE, api_key="anon")
    yield
    app.dependency_overrides.clear()


@respx.mock
async def test_upload_image(client, customer_headers, storage):
    route = respx.post(url__regex=rf"{SUPABASE}/storage/v1/object/uploads/logos/.*").mock(
        return_value=Response(200, json={"Key": "uploads/logos/x.png"})
    )

    response = await client.post(
        "/api/upload",
        files={"file": ("logo.png", b"\x89PNG data", "image/png")},
        data={"folder": "logos"},
        headers=customer_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["path"].startswith("logos/")
    assert data["path"].endswith(".png")
    assert data["url"] == f"{SUPABASE}/storage/v1/object/public/uploads/{data['path']}"
    assert route.calls[0].request.content == b"\x89PNG data"


async def test_upload_rejects_non_image(client, customer_headers, storage):
    response = await client.post(
        "/api/upload",
        files={"file": ("notat.txt", b"hei", "text/plain")},
        headers=customer_headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"].startswith("Ugyldig filtype")


async def test_upload_rejects_large_file(client, customer_headers, storage):
    response = await client.post(
        "/api/upload",
        files={"file": ("stor.png", b"0" * (5 * 1024 * 1024 + 1), "image/png")},
        headers=customer_headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Filen er for stor. Maks 5MB."


async def test_upload_without_file(client, customer_headers, storage):
    response = await client.post("/api/upload", data={"folder": "logos"}, headers=customer_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Ingen fil lastet opp"


@respx.mock
async def test_upload_storage_failure(client, customer_headers, storage):
    respx.post(url__regex=rf"{SUPABASE}/storage/.*").mock(
        return_value=Response(400, json={"message": "Bucket not found"})
    )

    response = await client.post(
        "/api/upload",
        files={"file": ("logo.png", b"data", "image/png")},
        headers=customer_headers,
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Kunne ikke laste opp fil: Bucket not found"


async def test_upload_not_configured(client, customer_headers):
    response = await client.post(
        "/api/upload",
        files={"file": ("logo.png", b"data", "image/png")},
        headers=customer_headers,
    )

    assert response.status_code == 503


async def test_upload_requires_session(client, storage):
    response = await client.post("/api/upload", files={"file": ("logo.png", b"data", "image/png")})

    assert response.status_code == 401
