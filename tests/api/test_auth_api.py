"""API tests for registration, login, sessions and password reset."""

import pytest
from sqlalchemy import select

from conftest import DEFAULT_PASSWORD, make_user
from kundedata.services.accounts import create_password_reset_token
from kundedata.settings import settings
from kundedata.storage.db import get_session
from kundedata.storage.models import ActivityLog, Organization, User


def registration(**overrides):
    body = {
        "name": "Per Hansen",
        "email": "Per@Example.no",
        "password": "Hemmelig1",
        "confirm_password": "Hemmelig1",
    }
    body.update(overrides)
    return body


@pytest.mark.api
class TestRegister:

    async def test_register_creates_user_and_organization(self, client):
        response = await client.post("/api/auth/register", json=registration())

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "per@example.no"
        assert data["role"] == "CUSTOMER"
        assert "password_hash" not in data

        async with get_session() as db:
            organization = await db.get(Organization, data["organization_id"])
            assert organization.name == "Per Hansens bedrift"
            assert organization.slug == "per-hansens-bedrift"

    async def test_duplicate_email(self, client):
        await client.post("/api/auth/register", json=registration())
        response = await client.post("/api/auth/register", json=registration(email="per@example.no"))

        assert response.status_code == 400
        assert response.json()["detail"] == "En bruker med denne e-postadressen finnes allerede"

    @pytest.mark.parametrize("overrides,message", [
        ({"password": "kort", "confirm_password": "kort"}, "Passord må være minst 8 tegn"),
        ({"confirm_password": "Annet123"}, "Passordene må være like"),
        ({"email": "ikke-epost"}, "Ugyldig e-postadresse"),
    ])
    async def test_validation_errors(self, client, overrides, message):
        response = await client.post("/api/auth/register", json=registration(**overrides))

        assert response.status_code == 400
        assert response.json()["detail"] == message


@pytest.mark.api
class TestLogin:

    async def test_login_sets_cookie_and_session(self, client, customer, organization):
        response = await client.post(
            "/api/auth/login", json={"email": customer.email, "password": DEFAULT_PASSWORD}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["id"] == customer.id
        assert data["token"]
        assert settings.SESSION_COOKIE_NAME in response.cookies

        session = (await client.get("/api/auth/session")).json()
        assert session["authenticated"] is True
        assert session["user"]["organization_name"] == organization.name

        async with get_session() as db:
            user = await db.get(User, customer.id)
            assert user.last_login_at is not None
            actions = (await db.execute(select(ActivityLog.action))).scalars().all()
            assert "user.login" in actions

    async def test_wrong_password(self, client, customer):
        response = await client.post(
            "/api/auth/login", json={"email": customer.email, "password": "Feil12345"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Ugyldig e-post eller passord"

    async def test_unknown_email(self, client, database):
        response = await client.post(
            "/api/auth/login", json={"email": "ingen@example.no", "password": DEFAULT_PASSWORD}
        )
        assert response.status_code == 401

    async def test_bearer_header_session(self, client, customer_headers):
        session = (await client.get("/api/auth/session", headers=customer_headers)).json()
        assert session["authenticated"] is True

    async def test_invalid_token_is_anonymous(self, client, database):
        response = await client.get("/api/auth/session", headers={"Authorization": "Bearer tull"})
        assert response.json() == {"authenticated": False, "user": None}

    async def test_logout_clears_cookie(self, client, customer):
        await client.post("/api/auth/login", json={"email": customer.email, "password": DEFAULT_PASSWORD})
        response = await client.post("/api/auth/logout")

        assert response.status_code == 200
        assert response.json()["message"] == "Logget ut"
        assert (await client.get("/api/auth/session")).json()["authenticated"] is False


@pytest.mark.api
class TestPasswordReset:

    async def test_forgot_password_does_not_reveal_accounts(self, client, customer):
        known = await client.post("/api/auth/forgot-password", json={"email": customer.email})
        unknown = await client.post("/api/auth/forgot-password", json={"email": "ingen@example.no"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

    async def test_reset_with_valid_token(self, client, database):
        user = await make_user(email="glemsk@example.no")
        async with get_session() as db:
            token = await create_password_reset_token(db, user.email)

        response = await client.post("/api/auth/reset-password", json={
            "email": user.email, "token": token, "password": "NyttPass9", "confirm_password": "NyttPass9",
        })
        assert response.status_code == 200

        login = await client.post("/api/auth/login", json={"email": user.email, "password": "NyttPass9"})
        assert login.status_code == 200

        reused = await client.post("/api/auth/reset-password", json={
            "email": user.email, "token": token, "password": "NyttPass9",
        })
        assert reused.status_code == 400
        assert reused.json()["detail"] == "Ugyldig eller utløpt lenke"
