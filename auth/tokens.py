"""
auth/tokens.py -- Signed tokens and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Two token kinds are issued:
       pre-auth -- proves the password step succeeded; 5 minutes; signed with
                   PRE_AUTH_SECRET_KEY.
       access   -- proves full authentication; 8 hours; signed with SECRET_KEY.
       Each kind has its own secret, so a token is first checked against the
       secret of the kind the caller expects and only then against its "type"
       claim. A pre-auth token presented where an access token is expected
       fails the signature check before the type check is ever reached [S1].
       Verification returns None on any failure -- callers cannot tell a bad
       signature from an expired or mistyped token.

  Revocation: tokens are self-contained. There is no server-side denylist, so
       an issued token stays valid until it expires even if the user's role or
       approval status changes. Each token carries a jti so a denylist keyed by
       token id can be added without changing the wire format.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in authenticate_user() so response time
       does not reveal whether an email is registered [C1].

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import TOKEN_TYPE_ACCESS, TOKEN_TYPE_PRE_AUTH
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("vaultguard.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# One verification context per token kind [S1].
_SECRETS: dict[str, str] = {
    TOKEN_TYPE_PRE_AUTH: _settings.pre_auth_secret_key,
    TOKEN_TYPE_ACCESS: _settings.secret_key,
}

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input past 72 bytes. Passwords are capped at 128
    characters by input validation, so multi-byte passwords near the cap can
    lose their tail; this is the standard bcrypt limitation.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("vaultguard_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure. Approval and
    verification status are NOT checked here -- that is the approval gate's job.
    """
    user = store.find_by_email(email)
    if user is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def _encode(claims: dict, token_type: str, duration_seconds: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "type": token_type,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(seconds=duration_seconds),
    }
    return jwt.encode(payload, _SECRETS[token_type], algorithm=_ALGORITHM)


def create_pre_auth_token(user_id: str, email: str) -> str:
    """Encode the short-lived pre-auth token issued after the password step."""
    return _encode(
        {"sub": user_id, "email": email},
        TOKEN_TYPE_PRE_AUTH,
        _settings.pre_auth_token_expire_seconds,
    )


def create_access_token(
    user_id: str,
    email: str,
    name: str,
    role: str,
    approval_status: str,
    expire_seconds: int = 0,
) -> str:
    """Encode an access token carrying an identity and role snapshot.

    Args:
        expire_seconds: Session duration. If 0 (default), uses
                        Settings.access_token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    return _encode(
        {"sub": user_id, "email": email, "name": name, "role": role, "status": approval_status},
        TOKEN_TYPE_ACCESS,
        duration,
    )


def verify_token(token: str | None, expected_type: str) -> dict | None:
    """Decode a token of the expected kind. Returns the claims or None.

    Order of checks: signature (with the expected kind's secret) and expiry,
    then the "type" claim, then the presence of a subject. Any failure
    returns None so callers have one opaque failure category.
    """
    secret = _SECRETS.get(expected_type)
    if not token or secret is None:
        return None
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != expected_type or not payload.get("sub"):
        logger.debug("Rejected correctly signed token with wrong type or subject")
        return None
    return payload
