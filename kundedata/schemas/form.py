"""Pydantic schemas for forms, form fields and public submissions."""

import datetime as dt
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

from kundedata.business.enums import FieldType, FieldWidth, FormStatus
from kundedata.schemas.common import Description, OptionalUrl, Slug, validate_name


class FieldOption(BaseModel):
    value: str
    label: str


class FormFieldInput(BaseModel):
    """Field definition sent by the form builder."""

    type: FieldType
    name: str
    label: str
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    required: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    pattern: Optional[str] = None
    options: Optional[List[FieldOption]] = None
    width: FieldWidth = FieldWidth.FULL
    order: int = 0

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        if not value:
            raise ValueError("Feltnavn er påkrevd")
        return value

    @field_validator("label")
    @classmethod
    def _label(cls, value: str) -> str:
        if not value:
            raise ValueError("Etikett er påkrevd")
        return value

    @field_validator("pattern")
    @classmethod
    def _pattern(cls, value: Optional[str]) -> Optional[str]:
        if value:
            try:
                re.compile(value)
            except re.error:
                raise ValueError("Ugyldig valideringsmønster")
        return value or None


class FormCreate(BaseModel):
    """New form; the slug is generated from the name when omitted."""

    name: str
    slug: Slug = None
    description: Description = None
    submit_button_text: str = "Send inn"
    success_message: str = "Takk for din henvendelse!"
    redirect_url: OptionalUrl = None
    fields: List[FormFieldInput] = []

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        return validate_name(value)


class FormUpdate(BaseModel):
    """Partial form update; a given field list replaces the existing fields."""

    name: Optional[str] = None
    slug: Slug = None
    description: Description = None
    submit_button_text: Optional[str] = None
    success_message: Optional[str] = None
    redirect_url: OptionalUrl = None
    fields: Optional[List[FormFieldInput]] = None

    @field_validator("name")
    @classmethod
    def _name(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else validate_name(value)


class PublishRequest(BaseModel):
    published: bool


class FormFieldResponse(BaseModel):
    id: int
    type: str
    name: str
    label: str
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    required: bool
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    pattern: Optional[str] = None
    options: Optional[List[Dict[str, Any]]] = None
    width: str
    order: int

    class Config:
        from_attributes = True


class FormResponse(BaseModel):
    id: int
    organization_id: int
    name: str
    slug: str
    description: Optional[str] = None
    status: FormStatus
    submit_button_text: str
    success_message: str
    redirect_url: Optional[str] = None
    published_at: Optional[dt.datetime] = None
    created_at: dt.datetime
    updated_at: dt.datetime
    fields: List[FormFieldResponse] = []
    submission_count: int = 0

    class Config:
        from_attributes = True


class PublicFormResponse(BaseModel):
    """Definition of a published form for embedding."""

    id: int
    name: str
    slug: str
    description: Optional[str] = None
    submit_button_text: str
    success_message: str
    fields: List[FormFieldResponse]
    primary_color: Optional[str] = None
    logo_url: Optional[str] = None


class SubmitResponse(BaseModel):
    success: bool = True
    message: str
    redirect_url: Optional[str] = None
    submission_id: Optional[int] = None
