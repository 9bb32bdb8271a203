"""Pydantic schemas for leads (submissions as seen in the dashboard)."""

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

from kundedata.schemas.common import OptionalUtcDateTime, PageMeta


class StatusUpdate(BaseModel):
    # Validated in the route so an unknown value gets the "Ugyldig status" message
    status: str


class FollowUpUpdate(BaseModel):
    next_follow_up_at: OptionalUtcDateTime = None


class NoteCreate(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def _content(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("Notat kan ikke være tomt")
        if len(value) > 2000:
            raise ValueError("Notater kan ikke være lengre enn 2000 tegn")
        return value


class NoteResponse(BaseModel):
    id: str
    content: str
    created_at: str
    user_id: Optional[int] = None
    user_name: Optional[str] = None


class EmailLogResponse(BaseModel):
    id: int
    to_email: str
    subject: str
    status: str
    sent_at: Optional[dt.datetime] = None
    created_at: dt.datetime

    class Config:
        from_attributes = True


class LeadResponse(BaseModel):
    id: int
    form_id: int
    form_name: Optional[str] = None
    data: Dict[str, Any]
    status: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    tags: List[str] = []
    last_contacted_at: Optional[dt.datetime] = None
    next_follow_up_at: Optional[dt.datetime] = None
    created_at: dt.datetime
    updated_at: dt.datetime
    email_logs: List[EmailLogResponse] = []


class LeadListResponse(PageMeta):
    items: List[LeadResponse]
