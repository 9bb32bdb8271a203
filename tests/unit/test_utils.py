"""Unit tests for slugs, money conversion and template variables."""

from decimal import Decimal

import pytest

from kundedata.utils import (
    cents_to_kroner,
    client_ip,
    extract_variables,
    format_nok,
    kroner_to_cents,
    replace_variables,
    slugify,
)


@pytest.mark.unit
class TestSlugify:

    def test_transliterates_norwegian_letters(self):
        assert slugify("Blåbær Økonomi") == "blabaer-okonomi"

    def test_collapses_separators_and_trims(self):
        assert slugify("  Kontakt -- oss!  ") == "kontakt-oss"

    def test_strips_accents(self):
        assert slugify("Café Crème") == "cafe-creme"

    def test_only_symbols_gives_empty_slug(self):
        assert slugify("!!!") == ""


@pytest.mark.unit
class TestMoney:

    def test_kroner_to_cents_rounds_half_up(self):
        assert kroner_to_cents("10.005") == 1001
        assert kroner_to_cents(Decimal("199.99")) == 19999

    def test_float_input_has_no_binary_artefacts(self):
        assert kroner_to_cents(0.1 + 0.2) == 30

    def test_cents_to_kroner(self):
        assert cents_to_kroner(12345) == Decimal("123.45")
        assert cents_to_kroner(None) == Decimal("0.00")

    def test_format_nok_groups_thousands(self):
        assert format_nok(1250000) == "12 500,00 kr"
        assert format_nok(-50) == "-0,50 kr"


@pytest.mark.unit
class TestTemplateVariables:

    def test_replaces_known_variables(self):
        result = replace_variables("Hei {{navn}}, takk for {{ melding }}", {"navn": "Ola", "melding": "meldingen"})
        assert result == "Hei Ola, takk for meldingen"

    def test_leaves_unknown_and_null_placeholders(self):
        result = replace_variables("{{navn}} {{ukjent}}", {"navn": None})
        assert result == "{{navn}} {{ukjent}}"

    def test_joins_list_values(self):
        assert replace_variables("Valgt: {{tjenester}}", {"tjenester": ["web", "seo"]}) == "Valgt: web, seo"

    def test_none_template_gives_empty_string(self):
        assert replace_variables(None, {"a": 1}) == ""

    def test_extract_variables_keeps_first_appearance_order(self):
        assert extract_variables("{{navn}} {{epost}}", None, "<p>{{navn}} {{telefon}}</p>") == [
            "navn", "epost", "telefon"
        ]


@pytest.mark.unit
def test_client_ip_prefers_first_forwarded_hop():
    assert client_ip({"x-forwarded-for": "10.0.0.1, 172.16.0.1", "x-real-ip": "1.1.1.1"}) == "10.0.0.1"
    assert client_ip({"x-real-ip": "1.1.1.1"}) == "1.1.1.1"
    assert client_ip({}) is None
