"""
API response models for the VaultGuard REST endpoints.

These Pydantic v2 models define the HTTP transport contract. The dataclasses
in auth/models.py and audit/models.py own the internal representation; route
handlers map between the two.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from audit.models import AuditLogEntry
from auth.models import User, UserSummary

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ExportFormatEnum(str, Enum):
    csv = "csv"
    json = "json"


# ---------------------------------------------------------------------------
# Request bodies
#
# Field rules (lengths, patterns) live in auth/validation.py and are applied
# by the session service, which reports them as 400 validation_error. These
# models only fix the JSON shape; a missing field is a 422.
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    email: str
    password: str


class MfaRequest(BaseModel):
    code: str


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str


class VerifyEmailRequest(BaseModel):
    email: str
    code: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Non-sensitive identity summary."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    role: str

    @classmethod
    def from_summary(cls, summary: UserSummary) -> "UserResponse":
        return cls(id=summary.id, email=summary.email, name=summary.name, role=summary.role)


class LoginResponse(BaseModel):
    """Response for POST /auth/login. Never contains the one-time code."""

    model_config = ConfigDict(frozen=True)

    message: str
    email: str


class MfaResponse(BaseModel):
    """Response for POST /auth/mfa."""

    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    ok: bool = True


class AdminUserRow(BaseModel):
    """One row of GET /auth/users. Password hashes and codes are never included."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    role: str
    is_verified: bool
    approval_status: str
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "AdminUserRow":
        return cls(
            id=user.id or "",
            email=user.email,
            name=user.name,
            role=user.role,
            is_verified=user.is_verified,
            approval_status=user.approval_status,
            created_at=user.created_at or "",
        )


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    event: str
    user_id: str
    user_email: str
    ip: str
    location: str
    severity: str
    timestamp: str
    meta: Optional[dict] = None

    @classmethod
    def from_entry(cls, entry: AuditLogEntry) -> "AuditEntryResponse":
        return cls(
            id=entry.id or "",
            event=entry.event,
            user_id=entry.user_id,
            user_email=entry.user_email,
            ip=entry.ip,
            location=entry.location,
            severity=entry.severity,
            timestamp=entry.timestamp or "",
            meta=entry.meta,
        )


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
