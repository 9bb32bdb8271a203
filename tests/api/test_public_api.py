"""API tests for the hosted form page and public form definition."""

import pytest

from conftest import make_form, make_organization


@pytest.mark.api
class TestPublicForms:

    async def test_hosted_page_renders_fields(self, client, database):
        organization = await make_organization("Rørlegger AS", primary_color="#112233")
        await make_form(organization.id, name="Bestill befaring", slug="befaring")

        response = await client.get("/f/befaring")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        html = response.text
        assert "Bestill befaring" in html
        assert 'name="epost"' in html
        assert "#112233" in html

    async def test_definition_for_embeds(self, client, database):
        organization = await make_organization()
        form = await make_form(organization.id)

        response = await client.get("/api/public/forms/kontakt")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == form.id
        assert data["primary_color"] == "#4F46E5"
        assert [field["name"] for field in data["fields"]] == ["navn", "epost"]

    async def test_drafts_are_not_public(self, client, database):
        organization = await make_organization()
        await make_form(organization.id, slug="utkast", published=False)

        assert (await client.get("/f/utkast")).status_code == 404
        response = await client.get("/api/public/forms/utkast")
        assert response.status_code == 404
        assert response.json()["detail"] == "Skjema ikke funnet"
