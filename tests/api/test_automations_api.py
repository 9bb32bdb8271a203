"""API tests for email templates and automations."""

import pytest

from conftest import auth_headers, make_form, make_organization, make_user


pytestmark = pytest.mark.api


TEMPLATE = {
    "name": "Velkomst",
    "subject": "Hei {{navn}}",
    "html_content": "<p>Takk for henvendelsen, {{ navn }}. Vi svarer {{frist}}.</p>",
}


# ==== EMAIL TEMPLATES ==== #


async def test_create_template_extracts_variables(client, customer_headers, organization):
    response = await client.post("/api/email-templates", json=TEMPLATE, headers=customer_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["organization_id"] == organization.id
    assert data["variables"] == ["navn", "frist"]


async def test_create_template_keeps_explicit_variables(client, customer_headers):
    payload = {**TEMPLATE, "variables": ["navn"]}
    response = await client.post("/api/email-templates", json=payload, headers=customer_headers)

    assert response.json()["variables"] == ["navn"]


async def test_create_template_validation(client, customer_headers):
    response = await client.post(
        "/api/email-templates", json={**TEMPLATE, "html_content": "kort"}, headers=customer_headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Innhold er påkrevd"


async def test_update_template_reextracts_variables(client, customer_headers):
    created = (await client.post("/api/email-templates", json=TEMPLATE, headers=customer_headers)).json()

    response = await client.patch(
        f"/api/email-templates/{created['id']}",
        json={"subject": "Ny henvendelse fra {{firma}}"},
        headers=customer_headers,
    )

    assert response.status_code == 200
    assert response.json()["variables"] == ["firma", "navn", "frist"]


async def test_template_of_other_organization_is_not_found(client, customer_headers):
    other = await make_organization("Annen bedrift")
    other_user = await make_user(email="annen@example.no", organization_id=other.id)
    created = (await client.post(
        "/api/email-templates", json=TEMPLATE, headers=auth_headers(other_user, other.name)
    )).json()

    response = await client.get(f"/api/email-templates/{created['id']}", headers=customer_headers)

    assert response.status_code == 404
    assert response.json()["detail"] == "E-postmal ikke funnet"


async def test_list_and_delete_templates(client, customer_headers):
    created = (await client.post("/api/email-templates", json=TEMPLATE, headers=customer_headers)).json()

    listed = await client.get("/api/email-templates", headers=customer_headers)
    assert [t["id"] for t in listed.json()] == [created["id"]]

    response = await client.delete(f"/api/email-templates/{created['id']}", headers=customer_headers)
    assert response.status_code == 200
    assert response.json()["success"] is True

    listed = await client.get("/api/email-templates", headers=customer_headers)
    assert listed.json() == []


# ==== AUTOMATIONS ==== #


async def test_create_automation_with_ordered_actions(client, customer_headers, organization):
    form = await make_form(organization.id)
    template = (await client.post("/api/email-templates", json=TEMPLATE, headers=customer_headers)).json()

    response = await client.post(
        "/api/automations",
        json={
            "name": "Oppfølging",
            "form_id": form.id,
            "trigger_type": "FORM_SUBMISSION",
            "actions": [
                {"type": "SEND_EMAIL", "email_template_id": template["id"]},
                {"type": "WAIT_DELAY", "config": {"amount": 2, "unit": "days"}},
                {"type": "ADD_TAG", "config": {"tag": "fulgt-opp"}, "email_template_id": template["id"]},
            ],
        },
        headers=customer_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "ACTIVE"
    assert data["run_count"] == 0
    assert [(a["type"], a["order"]) for a in data["actions"]] == [
        ("SEND_EMAIL", 0), ("WAIT_DELAY", 1), ("ADD_TAG", 2)
    ]
    assert data["actions"][0]["email_template_id"] == template["id"]
    # Template links only stick to email actions
    assert data["actions"][2]["email_template_id"] is None


async def test_create_automation_unknown_form(client, customer_headers):
    response = await client.post(
        "/api/automations",
        json={"name": "Oppfølging", "form_id": 9999, "trigger_type": "FORM_SUBMISSION"},
        headers=customer_headers,
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "Skjema ikke funnet"


async def test_create_automation_unknown_template(client, customer_headers):
    response = await client.post(
        "/api/automations",
        json={
            "name": "Oppfølging",
            "trigger_type": "FORM_SUBMISSION",
            "actions": [{"type": "SEND_EMAIL", "email_template_id": 9999}],
        },
        headers=customer_headers,
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "E-postmal ikke funnet"


async def test_create_automation_rejects_unknown_trigger(client, customer_headers):
    response = await client.post(
        "/api/automations",
        json={"name": "Oppfølging", "trigger_type": "MOON_PHASE"},
        headers=customer_headers,
    )

    assert response.status_code == 400


async def test_update_automation_replaces_actions(client, customer_headers):
    created = (await client.post(
        "/api/automations",
        json={
            "name": "Oppfølging",
            "trigger_type": "FORM_SUBMISSION",
            "actions": [{"type": "ADD_TAG", "config": {"tag": "a"}}, {"type": "ADD_TAG", "config": {"tag": "b"}}],
        },
        headers=customer_headers,
    )).json()

    response = await client.patch(
        f"/api/automations/{created['id']}",
        json={"status": "PAUSED", "actions": [{"type": "REMOVE_TAG", "config": {"tag": "a"}}]},
        headers=customer_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "PAUSED"
    assert data["name"] == "Oppfølging"
    assert [(a["type"], a["config"]) for a in data["actions"]] == [("REMOVE_TAG", {"tag": "a"})]


async def test_delete_automation(client, customer_headers):
    created = (await client.post(
        "/api/automations",
        json={"name": "Oppfølging", "trigger_type": "FORM_SUBMISSION"},
        headers=customer_headers,
    )).json()

    response = await client.delete(f"/api/automations/{created['id']}", headers=customer_headers)
    assert response.json() == {"success": True, "message": "Automatisering slettet"}

    response = await client.get(f"/api/automations/{created['id']}", headers=customer_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Automatisering ikke funnet"


async def test_automations_require_session(client):
    response = await client.get("/api/automations")

    assert response.status_code == 401
