"""Lead helpers: notes stored in submission metadata and CSV/JSON export."""

import csv
import io
import uuid
from typing import Any, Dict, List, Optional, Sequence

from kundedata.storage.models import Submission
from kundedata.utils import utcnow


EXPORT_BASE_COLUMNS = ["id", "status", "form", "created_at"]


def add_note(submission: Submission, content: str, user_id: Optional[int], user_name: Optional[str]) -> Dict[str, Any]:
    """Prepend a note to the lead's metadata and return it."""
    note = {
        "id": str(uuid.uuid4()),
        "content": content.strip(),
        "created_at": utcnow().isoformat(),
        "user_id": user_id,
        "user_name": user_name or "Ukjent",
    }
    meta = dict(submission.meta or {})
    meta["notes"] = [note, *meta.get("notes", [])]
    submission.meta = meta
    return note


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def export_columns(submissions: Sequence[Submission]) -> List[str]:
    """Fixed columns followed by every data key in order of first appearance."""
    keys: List[str] = []
    for submission in submissions:
        for key in (submission.data or {}):
            if key not in keys and key not in EXPORT_BASE_COLUMNS:
                keys.append(key)
    return EXPORT_BASE_COLUMNS + keys


def export_csv(submissions: Sequence[Submission]) -> str:
    """Render leads as CSV; cells with commas, quotes or newlines are quoted."""
    columns = export_columns(submissions)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)

    for submission in submissions:
        data = submission.data or {}
        fixed = {
            "id": submission.id,
            "status": submission.status,
            "form": submission.form.name if submission.form else "",
            "created_at": submission.created_at.isoformat(),
        }
        writer.writerow([
            _cell(fixed[column]) if column in fixed else _cell(data.get(column))
            for column in columns
        ])
    return buffer.getvalue()


def export_json(submissions: Sequence[Submission]) -> List[Dict[str, Any]]:
    return [
        {
            "id": submission.id,
            "form_id": submission.form_id,
            "form": submission.form.name if submission.form else None,
            "status": submission.status,
            "data": submission.data,
            "tags": submission.tags,
            "ip_address": submission.ip_address,
            "created_at": submission.created_at.isoformat(),
        }
        for submission in submissions
    ]
