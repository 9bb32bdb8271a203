# ==== SHARED UTILITIES ==== #

"""
Small helpers shared across routes and services: UTC timestamps, slugs,
money conversion between øre and kroner, and template variable handling.
"""

import datetime as dt
import re
import unicodedata
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List


ORE_PER_KRONE = Decimal(100)

_VARIABLE_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")

# Norwegian letters that NFKD does not decompose
_SLUG_TRANSLITERATION = str.maketrans({"æ": "ae", "ø": "o", "å": "a"})


def utcnow() -> dt.datetime:
    """Current UTC time as a naive datetime, matching the DateTime columns."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def slugify(text: str) -> str:
    """
    Build a URL slug: lower-case, Norwegian letters transliterated, runs of
    other characters collapsed to single hyphens.
    """
    value = text.lower().translate(_SLUG_TRANSLITERATION)
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-z0-9]+", "-", value)
    return value.strip("-")


# ==== MONEY ==== #

def to_decimal(value: Any) -> Decimal:
    """Convert floats and strings to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_ore(amount: Decimal) -> Decimal:
    """Round a kroner amount to whole øre."""
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def kroner_to_cents(amount: Any) -> int:
    """Convert a kroner amount to integer øre."""
    return int((round_ore(to_decimal(amount)) * ORE_PER_KRONE).to_integral_value(rounding=ROUND_HALF_UP))


def cents_to_kroner(cents: int | None) -> Decimal:
    """Convert integer øre to a kroner Decimal with two places."""
    return (Decimal(cents or 0) / ORE_PER_KRONE).quantize(Decimal("0.01"))


def format_nok(cents: int | None) -> str:
    """Format øre as a Norwegian currency string, e.g. ``12 500,00 kr``."""
    kroner = cents_to_kroner(cents)
    whole, fraction = f"{kroner:.2f}".split(".")
    sign = "-" if whole.startswith("-") else ""
    whole = whole.lstrip("-")
    grouped = "{:,}".format(int(whole)).replace(",", " ")
    return f"{sign}{grouped},{fraction} kr"


# ==== TEMPLATE VARIABLES ==== #

def replace_variables(template: str, data: Dict[str, Any]) -> str:
    """
    Substitute ``{{name}}`` placeholders with values from ``data``.

    Unknown or null placeholders are left untouched; list values are joined
    with commas.
    """
    def _substitute(match: re.Match) -> str:
        key = match.group(1)
        value = data.get(key)
        if value is None:
            return match.group(0)
        if isinstance(value, (list, tuple)):
            return ", ".join(str(v) for v in value)
        return str(value)

    return _VARIABLE_PATTERN.sub(_substitute, template or "")


def extract_variables(*templates: str | None) -> List[str]:
    """Collect distinct placeholder names in order of first appearance."""
    seen: List[str] = []
    for template in templates:
        for name in _VARIABLE_PATTERN.findall(template or ""):
            if name not in seen:
                seen.append(name)
    return seen


def client_ip(headers: Dict[str, str] | Any) -> str | None:
    """Resolve the client IP from proxy headers (first ``x-forwarded-for`` hop)."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("x-real-ip")
