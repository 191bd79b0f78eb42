"""
auth/seed.py -- Idempotent creation of bootstrap accounts.

Runs against the UserStore at process start (SEED_DEMO_ACCOUNTS=true) or from
the operator CLI. Existing emails are skipped, so running it any number of
times leaves exactly one record per account.

The demo accounts carry static fallback MFA codes. They are only usable when
DEMO_MFA_FALLBACK_ENABLED is also set; otherwise they behave like normal
accounts and need the emailed code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from auth.models import ROLE_ADMIN, ROLE_USER, STATUS_APPROVED, User
from auth.store import UserStore
from auth.tokens import hash_password

logger = logging.getLogger("vaultguard.auth")


@dataclass(frozen=True)
class SeedAccount:
    id: str
    email: str
    name: str
    password: str
    role: str
    fallback_code: str
    created_at: str


DEMO_ACCOUNTS: tuple[SeedAccount, ...] = (
    SeedAccount(
        id="usr_admin_001",
        email="admin@vault.io",
        name="Admin User",
        password="password123",
        role=ROLE_ADMIN,
        fallback_code="247831",
        created_at="2025-01-01T00:00:00+00:00",
    ),
    SeedAccount(
        id="usr_user_002",
        email="user@vault.io",
        name="Regular User",
        password="user1234",
        role=ROLE_USER,
        fallback_code="112233",
        created_at="2025-06-01T00:00:00+00:00",
    ),
)


def seed_demo_accounts(store: UserStore, accounts: tuple[SeedAccount, ...] = DEMO_ACCOUNTS) -> int:
    """Insert any missing demo account. Returns the number created."""
    created = 0
    for account in accounts:
        if store.find_by_email(account.email) is not None:
            continue
        user = User(
            id=account.id,
            email=account.email,
            name=account.name,
            hashed_password=hash_password(account.password),
            role=account.role,
            is_verified=True,
            approval_status=STATUS_APPROVED,
            mfa_fallback_code=account.fallback_code,
            created_at=account.created_at,
        )
        try:
            store.insert(user)
        except IntegrityError:
            # Another process seeded it first
            continue
        created += 1
    if created:
        logger.info("Seeded %d demo account(s)", created)
    return created


def create_admin(store: UserStore, email: str, name: str, password: str) -> tuple[str, bool]:
    """Create a verified, approved admin unless the email exists.

    Returns (user_id, created). An existing account is left untouched.
    """
    existing = store.find_by_email(email)
    if existing is not None:
        return existing.id, False
    user_id = store.insert(
        User(
            email=email,
            name=name,
            hashed_password=hash_password(password),
            role=ROLE_ADMIN,
            is_verified=True,
            approval_status=STATUS_APPROVED,
        )
    )
    logger.info("Created admin account %s", user_id)
    return user_id, True
