"""Pydantic schemas for organizations, their settings and admin customer management."""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from kundedata.schemas.common import (
    Color, Description, Email, OptionalEmail, OptionalUrl, Slug, validate_name
)


class OrganizationSettingsPayload(BaseModel):
    """Branding and sender identity; every field optional for partial updates."""

    primary_color: Color = None
    secondary_color: Color = None
    logo_url: OptionalUrl = None
    sender_name: Optional[str] = None
    sender_email: OptionalEmail = None
    reply_to_email: OptionalEmail = None
    bank_account: Optional[str] = None


class OrganizationSettingsResponse(BaseModel):
    primary_color: str
    secondary_color: str
    logo_url: Optional[str] = None
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    reply_to_email: Optional[str] = None
    bank_account: Optional[str] = None

    class Config:
        from_attributes = True


class OrganizationUpdate(BaseModel):
    """Fields a customer may change on their own organization."""

    name: Optional[str] = None
    slug: Slug = None
    website: OptionalUrl = None
    description: Description = None
    settings: Optional[OrganizationSettingsPayload] = None

    @field_validator("name")
    @classmethod
    def _name(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else validate_name(value)


class OrganizationResponse(BaseModel):
    id: int
    name: str
    slug: str
    website: Optional[str] = None
    description: Optional[str] = None
    organization_number: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: str
    plan: str
    max_users: int
    max_forms: int
    notes: Optional[str] = None
    created_at: dt.datetime
    settings: Optional[OrganizationSettingsResponse] = None

    class Config:
        from_attributes = True


# ==== ADMIN CUSTOMERS ==== #


class CustomerCreate(BaseModel):
    """New customer organization together with its first login."""

    company_name: str
    organization_number: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Email
    contact_phone: Optional[str] = None
    password: str
    website: OptionalUrl = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "Norge"
    plan: str = "standard"
    max_users: int = Field(5, ge=1)
    max_forms: int = Field(10, ge=1)
    notes: Optional[str] = None
    primary_color: Color = "#6366f1"
    secondary_color: Color = "#8b5cf6"
    logo_url: OptionalUrl = None

    @field_validator("company_name")
    @classmethod
    def _company_name(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("Firmanavn er påkrevd")
        return value

    @field_validator("password")
    @classmethod
    def _password(cls, value: str) -> str:
        if not value:
            raise ValueError("Passord er påkrevd")
        if len(value) < 8:
            raise ValueError("Passord må være minst 8 tegn")
        return value


class CustomerUpdate(BaseModel):
    company_name: Optional[str] = None
    organization_number: Optional[str] = None
    website: OptionalUrl = None
    description: Description = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    plan: Optional[str] = None
    max_users: Optional[int] = Field(None, ge=1)
    max_forms: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = None
    settings: Optional[OrganizationSettingsPayload] = None


class CustomerSummary(BaseModel):
    """Customer row in the admin list with usage counts."""

    id: int
    name: str
    slug: str
    plan: str
    max_users: int
    max_forms: int
    created_at: dt.datetime
    user_count: int = 0
    form_count: int = 0
    submission_count: int = 0
