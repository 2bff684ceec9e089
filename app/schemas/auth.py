"""Pydantic schemas for registration and login."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class RegisterRequest(BaseModel):
    username: str = Field(
        ...,
        min_length=3,
        max_length=30,
        pattern=r"^[A-Za-z0-9]+$",
        description="Alphanumeric username (3-30 chars).",
    )
    email: str = Field(..., max_length=254, description="Contact email, unique per user.")
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_RE.match(value):
            raise ValueError("invalid email address")
        return value


class LoginRequest(BaseModel):
    identifier: str = Field(..., min_length=1, description="Username or email.")
    password: str = Field(..., min_length=1)


class UserPublic(BaseModel):
    """User fields safe to return to clients."""

    id: str
    username: str
    email: str
    created_at: datetime


class AuthResponse(BaseModel):
    success: bool = True
    message: str
    user: UserPublic
    api_key: str = Field(..., description="Send as X-API-Key on subsequent requests.")
