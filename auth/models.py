"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the session
service do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass

# Role and lifecycle vocabularies. Plain strings keep the DB, token claims and
# JSON responses in the same representation.
ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = frozenset({ROLE_USER, ROLE_ADMIN})

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
APPROVAL_STATUSES = frozenset({STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED})

TOKEN_TYPE_PRE_AUTH = "pre-auth"
TOKEN_TYPE_ACCESS = "access"


@dataclass
class User:
    """A registered identity.

    email is stored lowercased; lookups compare case-insensitively.

    mfa_code / mfa_expires_at exist only while a one-time code is outstanding
    (login challenge or email verification). mfa_expires_at is an ISO 8601 UTC
    timestamp.

    mfa_fallback_code is the static demo/legacy code carried by seeded
    accounts. It is only honoured when DEMO_MFA_FALLBACK_ENABLED is set.
    """

    email: str
    name: str
    hashed_password: str
    role: str = ROLE_USER  # "user" | "admin"
    id: str | None = None
    is_verified: bool = False
    approval_status: str = STATUS_PENDING  # "pending" | "approved" | "rejected"
    mfa_code: str | None = None
    mfa_expires_at: str | None = None
    mfa_fallback_code: str | None = None
    created_at: str | None = None

    def summary(self) -> "UserSummary":
        return UserSummary(id=self.id or "", email=self.email, name=self.name, role=self.role)


@dataclass(frozen=True)
class UserSummary:
    """The non-sensitive projection of a User that may leave the core."""

    id: str
    email: str
    name: str
    role: str


@dataclass(frozen=True)
class LoginChallenge:
    """Result of a successful password step.

    pre_auth_token is handed to the transport for secure storage; the one-time
    code itself never appears here.
    """

    message: str
    email: str
    pre_auth_token: str
    code_dispatched: bool


@dataclass(frozen=True)
class AuthenticatedSession:
    """Result of a successful MFA step."""

    access_token: str
    user: UserSummary
    discard_pre_auth: bool = True


@dataclass(frozen=True)
class RegistrationReceipt:
    """Identical for fresh and duplicate registrations."""

    message: str = "Verification code sent to your email."


@dataclass(frozen=True)
class Ack:
    """Plain acknowledgement for logout, email verification and admin actions."""

    message: str
    ok: bool = True
