"""Shared validators and response shapes for the API schemas."""

import datetime as dt
import re
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^(\+47)?[2-9]\d{7}$")
SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
URL_PATTERN = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)
HEX_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value or ""))


def is_valid_phone(value: str) -> bool:
    """Norwegian phone number, optional +47 prefix, spaces ignored."""
    return bool(PHONE_PATTERN.match(re.sub(r"\s", "", value or "")))


def validate_email(value: str) -> str:
    value = (value or "").strip().lower()
    if not is_valid_email(value):
        raise ValueError("Ugyldig e-postadresse")
    return value


def validate_optional_email(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    return validate_email(value)


def validate_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Passord må være minst 8 tegn")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Passord må inneholde minst én stor bokstav")
    if not re.search(r"[a-z]", value):
        raise ValueError("Passord må inneholde minst én liten bokstav")
    if not re.search(r"[0-9]", value):
        raise ValueError("Passord må inneholde minst ett tall")
    return value


def validate_slug(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if len(value) < 2:
        raise ValueError("URL-navn må være minst 2 tegn")
    if len(value) > 50:
        raise ValueError("URL-navn kan ikke være lengre enn 50 tegn")
    if not SLUG_PATTERN.match(value):
        raise ValueError("URL-navn kan kun inneholde små bokstaver, tall og bindestreker")
    return value


def validate_optional_url(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    if not URL_PATTERN.match(value):
        raise ValueError("Ugyldig URL")
    return value


def validate_name(value: str, max_length: int = 100) -> str:
    value = (value or "").strip()
    if len(value) < 2:
        raise ValueError("Navn må være minst 2 tegn")
    if len(value) > max_length:
        raise ValueError(f"Navn kan ikke være lengre enn {max_length} tegn")
    return value


def validate_description(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value) > 500:
        raise ValueError("Beskrivelse kan ikke være lengre enn 500 tegn")
    return value


def naive_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    """Aware datetimes are converted to UTC and stored without tzinfo."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(dt.timezone.utc).replace(tzinfo=None)


def validate_color(value: Optional[str]) -> Optional[str]:
    if value is not None and not HEX_COLOR_PATTERN.match(value):
        raise ValueError("Ugyldig farge")
    return value


class MessageResponse(BaseModel):
    """Plain success acknowledgement."""

    success: bool = True
    message: str


class PageMeta(BaseModel):
    """Pagination fields shared by list responses."""

    total: int
    page: int = 1
    page_size: int = 20
    has_next: bool = False


# ==== REUSABLE ANNOTATED TYPES ==== #

Email = Annotated[str, AfterValidator(validate_email)]
OptionalEmail = Annotated[Optional[str], AfterValidator(validate_optional_email)]
StrongPassword = Annotated[str, AfterValidator(validate_password_strength)]
Slug = Annotated[Optional[str], AfterValidator(validate_slug)]
OptionalUrl = Annotated[Optional[str], AfterValidator(validate_optional_url)]
Description = Annotated[Optional[str], AfterValidator(validate_description)]
Color = Annotated[Optional[str], AfterValidator(validate_color)]
UtcDateTime = Annotated[dt.datetime, AfterValidator(naive_utc)]
OptionalUtcDateTime = Annotated[Optional[dt.datetime], AfterValidator(naive_utc)]
