"""Jinja2 environment for email bodies and the public form page."""

import datetime as dt
from typing import Any, Dict, Optional

from jinja2 import Environment, PackageLoader, select_autoescape

from kundedata.utils import format_nok


_NORWEGIAN_MONTHS = [
    "januar", "februar", "mars", "april", "mai", "juni",
    "juli", "august", "september", "oktober", "november", "desember",
]


def format_date_no(value: Optional[dt.datetime]) -> str:
    """``2025-03-14`` -> ``14. mars 2025``."""
    if value is None:
        return ""
    return f"{value.day}. {_NORWEGIAN_MONTHS[value.month - 1]} {value.year}"


def format_quantity(value: float) -> str:
    return f"{value:g}".replace(".", ",")


environment = Environment(
    loader=PackageLoader("kundedata", "templates"),
    autoescape=select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
environment.filters["nok"] = format_nok
environment.filters["date_no"] = format_date_no
environment.filters["qty"] = format_quantity


def render(template_name: str, **context: Any) -> str:
    """Render a template from ``kundedata/templates``."""
    return environment.get_template(template_name).render(**context)


def render_submission_rows(data: Dict[str, Any]) -> list:
    """Flatten submission data into (label, value) rows for notification emails."""
    rows = []
    for key, value in data.items():
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(v) for v in value)
        rows.append((key, "" if value is None else str(value)))
    return rows
