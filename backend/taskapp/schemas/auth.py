"""Pydantic schemas for auth endpoints."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_MIN_LENGTH = 8
NAME_MIN_LENGTH = 2


def _check_email(value: object) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError("Email is required")
    # Format is checked on the value as sent; normalization only applies to valid addresses
    if not EMAIL_RE.match(value):
        raise ValueError("Invalid email format")
    return value.strip().lower()


def _check_password_present(value: object) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError("Password is required")
    return value


class RegisterBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str
    password: str
    name: str

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, v: object) -> str:
        return _check_email(v)

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, v: object) -> str:
        password = _check_password_present(v)
        if len(password) < PASSWORD_MIN_LENGTH:
            raise ValueError("Password must be at least 8 characters")
        return password

    @field_validator("name", mode="before")
    @classmethod
    def check_name(cls, v: object) -> str:
        if not isinstance(v, str) or not v:
            raise ValueError("Name is required")
        name = v.strip()
        if len(name) < NAME_MIN_LENGTH:
            raise ValueError("Name must be at least 2 characters")
        return name


class LoginBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, v: object) -> str:
        return _check_email(v)

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, v: object) -> str:
        return _check_password_present(v)


class RefreshBody(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    refresh_token: str | None = Field(default=None, alias="refreshToken", validate_default=True)

    @field_validator("refresh_token", mode="before")
    @classmethod
    def check_refresh_token(cls, v: object) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Refresh token is required")
        return v.strip()


class LogoutBody(BaseModel):
    """Optional body for logout: revoke this refresh token only, or all of the user's when omitted."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    refresh_token: str | None = Field(default=None, alias="refreshToken")
