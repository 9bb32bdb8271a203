"""Pydantic schemas for email templates and automations."""

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

from kundedata.business.enums import ActionType, AutomationStatus, TriggerType
from kundedata.schemas.common import Description, validate_name


# ==== EMAIL TEMPLATES ==== #


def _validate_subject(value: str) -> str:
    if len(value) < 2:
        raise ValueError("Emne må være minst 2 tegn")
    if len(value) > 200:
        raise ValueError("Emne kan ikke være lengre enn 200 tegn")
    return value


def _validate_html(value: str) -> str:
    if len(value) < 10:
        raise ValueError("Innhold er påkrevd")
    return value


class EmailTemplateCreate(BaseModel):
    name: str
    subject: str
    html_content: str
    text_content: Optional[str] = None
    variables: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return validate_name(value)

    @field_validator("subject")
    @classmethod
    def _subject(cls, value: str) -> str:
        return _validate_subject(value)

    @field_validator("html_content")
    @classmethod
    def _html(cls, value: str) -> str:
        return _validate_html(value)


class EmailTemplateUpdate(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    html_content: Optional[str] = None
    text_content: Optional[str] = None
    variables: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def _name(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else validate_name(value)

    @field_validator("subject")
    @classmethod
    def _subject(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _validate_subject(value)

    @field_validator("html_content")
    @classmethod
    def _html(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _validate_html(value)


class EmailTemplateResponse(BaseModel):
    id: int
    organization_id: int
    name: str
    subject: str
    html_content: str
    text_content: Optional[str] = None
    variables: List[str] = []
    created_at: dt.datetime
    updated_at: dt.datetime

    class Config:
        from_attributes = True


# ==== AUTOMATIONS ==== #


class AutomationActionInput(BaseModel):
    type: ActionType
    config: Dict[str, Any] = {}
    order: Optional[int] = None
    email_template_id: Optional[int] = None


class AutomationCreate(BaseModel):
    name: str
    description: Description = None
    form_id: Optional[int] = None
    trigger_type: TriggerType
    trigger_config: Dict[str, Any] = {}
    actions: List[AutomationActionInput] = []

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return validate_name(value)


class AutomationUpdate(BaseModel):
    """Partial update; a given action list replaces the existing actions."""

    name: Optional[str] = None
    description: Description = None
    status: Optional[AutomationStatus] = None
    form_id: Optional[int] = None
    trigger_type: Optional[TriggerType] = None
    trigger_config: Optional[Dict[str, Any]] = None
    actions: Optional[List[AutomationActionInput]] = None

    @field_validator("name")
    @classmethod
    def _name(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else validate_name(value)


class AutomationActionResponse(BaseModel):
    id: int
    type: str
    config: Dict[str, Any]
    order: int
    email_template_id: Optional[int] = None

    class Config:
        from_attributes = True


class AutomationResponse(BaseModel):
    id: int
    organization_id: int
    form_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    status: str
    trigger_type: str
    trigger_config: Dict[str, Any]
    run_count: int
    last_run_at: Optional[dt.datetime] = None
    created_at: dt.datetime
    updated_at: dt.datetime
    actions: List[AutomationActionResponse] = []

    class Config:
        from_attributes = True


class ProcessJobsResponse(BaseModel):
    success: bool = True
    processed: int
    succeeded: int
    failed: int
    inactivity_triggered: int = 0
    date_field_triggered: int = 0
