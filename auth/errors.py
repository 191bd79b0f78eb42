"""
auth/errors.py -- Error taxonomy for the authentication core.

Every error carries a stable machine code, an HTTP status hint for the
transport layer, and a caller-safe message. Messages are fixed per class:
internal detail (store errors, which sub-check failed) is never attached to
the exception the caller sees. Diagnostics go to the logger instead.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every failure the session state machine reports."""

    status_code: int = 400
    code: str = "auth_error"
    message: str = "Request could not be completed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(AuthError):
    """Malformed input. Raised before any store or audit access."""

    status_code = 400
    code = "validation_error"
    message = "Invalid input."


class InvalidCredentials(AuthError):
    """Unknown email or wrong password -- deliberately indistinguishable."""

    status_code = 401
    code = "invalid_credentials"
    message = "Invalid credentials."


class PendingApproval(AuthError):
    """Password was correct but the account may not progress yet."""

    status_code = 403
    code = "pending_approval"
    message = "Your account is awaiting administrator approval."


class InvalidOrExpiredChallenge(AuthError):
    """Bad/expired token or bad/expired one-time code, merged on purpose."""

    status_code = 401
    code = "invalid_or_expired"
    message = "Invalid or expired code. Please log in again."


class InsufficientRole(AuthError):
    status_code = 403
    code = "forbidden"
    message = "Insufficient permissions. Admin access required."


class DispatchFailure(AuthError):
    """Email delivery failed. Non-fatal to the transition that triggered it."""

    status_code = 502
    code = "dispatch_failed"
    message = "The verification code could not be delivered."


class UserNotFound(AuthError):
    """Admin-only operations naming a user id that does not exist."""

    status_code = 404
    code = "not_found"
    message = "User not found."
