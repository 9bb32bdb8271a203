"""Pydantic schemas for registration, login and password reset."""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from kundedata.schemas.common import Email, StrongPassword


class RegisterRequest(BaseModel):
    """Self-service sign-up creating a user and their organization."""

    name: str
    email: Email
    password: StrongPassword
    confirm_password: str

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Navn må være minst 2 tegn")
        return value

    @model_validator(mode="after")
    def _passwords_match(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passordene må være like")
        return self


class LoginRequest(BaseModel):
    email: Email
    password: str

    @field_validator("password")
    @classmethod
    def _password(cls, value: str) -> str:
        if not value:
            raise ValueError("Passord er påkrevd")
        return value


class ForgotPasswordRequest(BaseModel):
    email: Email


class ResetPasswordRequest(BaseModel):
    token: str
    email: Email
    password: StrongPassword
    confirm_password: Optional[str] = None

    @model_validator(mode="after")
    def _passwords_match(self) -> "ResetPasswordRequest":
        if self.confirm_password is not None and self.password != self.confirm_password:
            raise ValueError("Passordene må være like")
        return self


class UserResponse(BaseModel):
    """Public view of a user account."""

    id: int
    email: str
    name: Optional[str] = None
    role: str
    organization_id: Optional[int] = None
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    user: UserResponse
    token: str
    expires_at: dt.datetime


class SessionResponse(BaseModel):
    """Claims of the current session."""

    authenticated: bool
    user: Optional[dict] = None
