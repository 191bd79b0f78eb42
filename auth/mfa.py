"""
auth/mfa.py -- One-time code issuance and verification.

Codes are six decimal digits drawn uniformly from 000000-999999 with the
secrets module (leading zeros kept). A code lives on the user record with an
absolute expiry and is cleared on first successful use.

Concurrency: issue_code() overwrites any outstanding code (last write wins).
Two overlapping logins for the same account can therefore supersede a code
that was already emailed; the earlier code simply stops working. Consuming a
code is a conditional write in the store (UserStore.consume_code), so two
requests racing with the same code cannot both succeed.

Demo/legacy fallback: seeded demo accounts carry a static mfa_fallback_code.
It is accepted only through _matches_demo_fallback_code(), and only when the
engine is built with allow_demo_fallback=True (DEMO_MFA_FALLBACK_ENABLED).
Keep it disabled outside demos: a static code never expires.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

from auth.models import User
from auth.store import UserStore

logger = logging.getLogger("vaultguard.auth")

CODE_DIGITS = 6
_CODE_SPACE = 10**CODE_DIGITS


def generate_code() -> str:
    """Return a uniformly random zero-padded 6-digit code."""
    return f"{secrets.randbelow(_CODE_SPACE):0{CODE_DIGITS}d}"


def _codes_equal(submitted: str, expected: str) -> bool:
    return hmac.compare_digest(submitted.encode("utf-8"), expected.encode("utf-8"))


class MfaEngine:
    """Issues and checks one-time codes stored on the user record."""

    def __init__(self, store: UserStore, code_ttl_seconds: int = 300, allow_demo_fallback: bool = False) -> None:
        self.store = store
        self.code_ttl_seconds = code_ttl_seconds
        self.allow_demo_fallback = allow_demo_fallback

    def issue_code(self, user_id: str, now: datetime | None = None) -> str:
        """Generate, persist and return a fresh code for out-of-band delivery."""
        now = now or datetime.now(timezone.utc)
        code = generate_code()
        expires_at = now + timedelta(seconds=self.code_ttl_seconds)
        self.store.update_fields(user_id, mfa_code=code, mfa_expires_at=expires_at.isoformat())
        return code

    def verify_code(
        self,
        user_id: str,
        submitted: str,
        *,
        accept_fallback: bool = True,
        now: datetime | None = None,
    ) -> bool:
        """Return True if submitted matches the outstanding code (or the demo fallback).

        Fails without distinction when no code is outstanding, the code has
        expired, or the digits differ. On success the outstanding code is
        cleared before returning, so a code is accepted at most once.
        """
        user = self.store.find_by_id(user_id)
        if user is None:
            return False
        now = now or datetime.now(timezone.utc)

        if self._matches_dynamic_code(user, submitted, now):
            # Another request may have consumed the same code since the read.
            return self.store.consume_code(user.id, user.mfa_code, user.mfa_expires_at)
        if accept_fallback and self._matches_demo_fallback_code(user, submitted):
            self.clear_code(user_id)
            return True
        return False

    def clear_code(self, user_id: str) -> None:
        self.store.update_fields(user_id, mfa_code=None, mfa_expires_at=None)

    def _matches_dynamic_code(self, user: User, submitted: str, now: datetime) -> bool:
        if not user.mfa_code or not user.mfa_expires_at:
            return False
        if now > datetime.fromisoformat(user.mfa_expires_at):
            return False
        return _codes_equal(submitted, user.mfa_code)

    def _matches_demo_fallback_code(self, user: User, submitted: str) -> bool:
        if not self.allow_demo_fallback or not user.mfa_fallback_code:
            return False
        if _codes_equal(submitted, user.mfa_fallback_code):
            logger.warning("Demo fallback MFA code accepted for user_id=%s", user.id)
            return True
        return False
