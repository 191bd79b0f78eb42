"""
auth/approval.py -- Account lifecycle gate.

check_approved() runs right after a successful password match and again
before any access token is minted, whatever path leads there. Its error is
deliberately specific (PendingApproval, not InvalidCredentials): the caller
already proved knowledge of the password, so account existence is no secret
to them, and the client needs to render an "awaiting approval" state.

set_status() is the only code path that moves an account to approved or
rejected. It is idempotent at the store level; auditing each call is the
caller's job (auth/service.py).
"""

from __future__ import annotations

from auth.errors import PendingApproval, UserNotFound
from auth.models import STATUS_APPROVED, STATUS_REJECTED, User
from auth.store import UserStore

DENY_PENDING = "pending"
DENY_REJECTED = "rejected"
DENY_UNVERIFIED = "unverified"


def denial_reason(user: User) -> str | None:
    """Return why this user may not progress, or None if they may."""
    if user.approval_status == STATUS_REJECTED:
        return DENY_REJECTED
    if user.approval_status != STATUS_APPROVED:
        return DENY_PENDING
    if not user.is_verified:
        return DENY_UNVERIFIED
    return None


def check_approved(user: User) -> None:
    """Raise PendingApproval unless the user is approved and email-verified."""
    reason = denial_reason(user)
    if reason == DENY_UNVERIFIED:
        raise PendingApproval("Please verify your email address before signing in.")
    if reason is not None:
        raise PendingApproval()


def set_status(store: UserStore, user_id: str, status: str) -> User:
    """Move a user to approved or rejected. Idempotent. There is no way back to pending.

    Returns the updated record. Raises UserNotFound if user_id is unknown.
    """
    if status not in (STATUS_APPROVED, STATUS_REJECTED):
        raise ValueError(f"Approval status can only be set to approved or rejected, not {status!r}")
    if not store.set_approval_status(user_id, status):
        raise UserNotFound()
    user = store.find_by_id(user_id)
    if user is None:
        raise UserNotFound()
    return user
