"""
auth/validation.py -- Input shapes for every session operation.

These Pydantic v2 models are the structural gate in front of the state
machine. They run before the user store or the audit sink is touched, and a
failure produces no audit entry.

Email is normalised (trimmed, lowercased) before the pattern check.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from auth.errors import ValidationError

# Pragmatic address shape: local@domain.tld, no whitespace.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
CODE_PATTERN = r"^\d{6}$"


class _EmailInput(BaseModel):
    # No str_strip_whitespace here: passwords are taken verbatim.
    model_config = ConfigDict(frozen=True)

    email: str = Field(max_length=254, pattern=EMAIL_PATTERN)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class LoginInput(_EmailInput):
    """Body for POST /auth/login."""

    password: str = Field(min_length=8, max_length=128)


class MfaInput(BaseModel):
    """Body for POST /auth/mfa."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    code: str = Field(pattern=CODE_PATTERN)


class RegisterInput(_EmailInput):
    """Body for POST /auth/register."""

    name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=8, max_length=128)


class VerifyEmailInput(_EmailInput):
    """Body for POST /auth/verify-email."""

    code: str = Field(pattern=CODE_PATTERN)


def parse(model: type[BaseModel], **values) -> BaseModel:
    """Validate values against model, translating failures to ValidationError.

    Only the first issue is reported, as a stable field-level message; raw
    input values are never echoed back.
    """
    try:
        return model(**values)
    except PydanticValidationError as exc:
        errors = exc.errors()
        field = ".".join(str(p) for p in errors[0]["loc"]) if errors and errors[0].get("loc") else "input"
        raise ValidationError(f"Invalid value for '{field}'.") from exc
