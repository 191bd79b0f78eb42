"""
audit/models.py -- Audit trail vocabulary and the entry dataclass.

An AuditLogEntry is an immutable fact: the dataclass is frozen and the store
offers no update or delete path.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"
SEVERITIES = frozenset({SEVERITY_INFO, SEVERITY_WARNING, SEVERITY_CRITICAL})

# Actor sentinels for events without an identified user.
ACTOR_UNKNOWN = "unknown"
ACTOR_SYSTEM = "system"

LOCATION_UNKNOWN = "Unknown"

# Event names
FAILED_AUTH = "failed_auth"
PASSWORD_VERIFIED = "password_verified"
LOGIN_DENIED_APPROVAL = "login_denied_approval"
MFA_FAILED = "mfa_failed"
MFA_VERIFIED = "mfa_verified"
USER_LOGIN = "user_login"
USER_LOGOUT = "user_logout"
LOGOUT_FAILED = "logout_failed"
USER_REGISTERED = "user_registered"
DUPLICATE_REGISTRATION = "duplicate_registration"
EMAIL_VERIFIED = "email_verified"
EMAIL_VERIFICATION_FAILED = "email_verification_failed"
USER_APPROVED = "user_approved"
USER_REJECTED = "user_rejected"
ADMIN_ACTION_DENIED = "admin_action_denied"


@dataclass(frozen=True)
class AuditLogEntry:
    """One security event.

    id and timestamp are assigned by AuditStore.append(); the timestamp is
    server time at creation, never client supplied. meta is an optional
    JSON-serialisable payload.
    """

    event: str
    user_id: str
    user_email: str
    ip: str
    severity: str
    location: str = LOCATION_UNKNOWN
    meta: dict | None = field(default=None)
    id: str | None = None
    timestamp: str | None = None  # ISO 8601 UTC

    def to_dict(self) -> dict:
        return asdict(self)
