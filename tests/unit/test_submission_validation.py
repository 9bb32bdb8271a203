"""Unit tests for validating public submissions against form fields."""

import datetime as dt

import pytest

from kundedata.schemas.common import is_valid_phone, naive_utc, validate_password_strength
from kundedata.services.submissions import validate_field, validate_submission
from kundedata.storage.models import FormField


def field(type_, name="felt", label="Felt", required=False, **kwargs):
    return FormField(type=type_, name=name, label=label, required=required, **kwargs)


@pytest.mark.unit
class TestValidateSubmission:
    """Whole-form validation."""

    def test_valid_submission_has_no_errors(self):
        fields = [
            field("TEXT", "navn", "Navn", required=True),
            field("EMAIL", "epost", "E-post", required=True),
        ]
        assert validate_submission(fields, {"navn": "Ola", "epost": "ola@example.no"}) == {}

    def test_missing_required_fields_are_reported_by_name(self):
        fields = [
            field("TEXT", "navn", "Navn", required=True),
            field("EMAIL", "epost", "E-post", required=True),
        ]
        errors = validate_submission(fields, {"navn": "   "})
        assert errors == {"navn": "Navn er påkrevd", "epost": "E-post er påkrevd"}

    def test_layout_fields_are_ignored(self):
        fields = [
            field("HEADING", "overskrift", "Om deg", required=True),
            field("DIVIDER", "skille", "Skille", required=True),
        ]
        assert validate_submission(fields, {}) == {}

    def test_optional_empty_fields_pass(self):
        fields = [field("PHONE", "telefon", "Telefon"), field("NUMBER", "antall", "Antall")]
        assert validate_submission(fields, {"telefon": "", "antall": None}) == {}


@pytest.mark.unit
class TestValidateField:
    """Per-type rules."""

    def test_invalid_email(self):
        assert validate_field(field("EMAIL"), "ikke-en-epost") == "Ugyldig e-postadresse"

    def test_norwegian_phone_numbers(self):
        assert validate_field(field("PHONE"), "+47 912 34 567") is None
        assert validate_field(field("PHONE"), "12345678") == "Ugyldig telefonnummer"

    def test_number_bounds(self):
        number = field("NUMBER", label="Antall", min_value=1, max_value=10)
        assert validate_field(number, "5,5") is None
        assert validate_field(number, "abc") == "Antall må være et tall"
        assert validate_field(number, 0) == "Antall må være minst 1"
        assert validate_field(number, 11) == "Antall kan ikke være større enn 10"

    def test_text_length_and_pattern(self):
        text = field("TEXT", label="Kode", min_length=3, max_length=5, pattern=r"[A-Z]+")
        assert validate_field(text, "AB") == "Kode må være minst 3 tegn"
        assert validate_field(text, "ABCDEF") == "Kode kan ikke være lengre enn 5 tegn"
        assert validate_field(text, "abc") == "Kode har ugyldig format"
        assert validate_field(text, "ABCD") is None

    def test_select_value_must_be_an_option(self):
        select = field("SELECT", label="Tjeneste", options=[
            {"label": "Nettside", "value": "web"},
            {"label": "SEO", "value": "seo"},
        ])
        assert validate_field(select, "web") is None
        assert validate_field(select, "annet") == "Ugyldig valg for Tjeneste"

    def test_multi_select_checks_every_value(self):
        multi = field("MULTI_SELECT", label="Tjenester", options=[{"label": "A", "value": "a"}, {"label": "B", "value": "b"}])
        assert validate_field(multi, ["a", "b"]) is None
        assert validate_field(multi, ["a", "c"]) == "Ugyldig valg for Tjenester"

    def test_required_checkbox_must_be_ticked(self):
        checkbox = field("CHECKBOX", label="Samtykke", required=True)
        assert validate_field(checkbox, True) is None
        assert validate_field(checkbox, "false") == "Samtykke er påkrevd"


@pytest.mark.unit
class TestCommonValidators:

    def test_phone_helper_ignores_spaces(self):
        assert is_valid_phone("22 33 44 55")
        assert not is_valid_phone("+46 912 34 567")

    @pytest.mark.parametrize("password,message", [
        ("Kort1", "Passord må være minst 8 tegn"),
        ("passord123", "Passord må inneholde minst én stor bokstav"),
        ("PASSORD123", "Passord må inneholde minst én liten bokstav"),
        ("Passordet", "Passord må inneholde minst ett tall"),
    ])
    def test_password_strength(self, password, message):
        with pytest.raises(ValueError, match=message):
            validate_password_strength(password)

    def test_naive_utc_converts_offsets(self):
        oslo = dt.timezone(dt.timedelta(hours=2))
        assert naive_utc(dt.datetime(2025, 3, 1, 10, 0, tzinfo=oslo)) == dt.datetime(2025, 3, 1, 8, 0)
        assert naive_utc(dt.datetime(2025, 3, 1, 10, 0)) == dt.datetime(2025, 3, 1, 10, 0)
        assert naive_utc(None) is None
