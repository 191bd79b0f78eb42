"""
tests/conftest.py -- Shared test fixtures for VaultGuard.

This module provides:
  - FakeMailer: captures codes instead of talking to SMTP
  - make_stores(): isolated in-memory DBs for users + audit trail
  - add_user(): insert a user with a known password in one call
  - service / fallback_service: AuthService over fresh stores per test
  - api_client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process, so every
fixture picks a unique name.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates both signing keys in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY and PRE_AUTH_SECRET_KEY instead of raising.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from audit.recorder import AuditRecorder
from audit.store import AuditStore
from auth.errors import DispatchFailure
from auth.models import ROLE_ADMIN, ROLE_USER, STATUS_APPROVED, User
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import hash_password

# ---------------------------------------------------------------------------
# Email capture
# ---------------------------------------------------------------------------


@dataclass
class FakeMailer:
    """Stands in for auth.mailer.Mailer. Set fail=True to simulate an SMTP outage."""

    fail: bool = False
    sent: list[tuple[str, str]] = field(default_factory=list)

    @property
    def is_configured(self) -> bool:
        return True

    def send_code(self, to_email: str, code: str) -> None:
        if self.fail:
            raise DispatchFailure()
        self.sent.append((to_email, code))

    def last_code(self, email: str) -> str:
        for to_email, code in reversed(self.sent):
            if to_email == email:
                return code
        raise AssertionError(f"No code was sent to {email}")


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_stores(db_suffix: str | None = None) -> tuple[UserStore, AuditStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Appended to the DB names. A random suffix is used when
                   omitted so tests never see each other's rows.
    """
    suffix = db_suffix or uuid.uuid4().hex
    auth_url = f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true"
    audit_url = f"sqlite:///file:test_audit_{suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), AuditStore(db_url=audit_url)


def add_user(
    store: UserStore,
    email: str,
    password: str = "correct-horse",
    *,
    name: str = "Test User",
    role: str = ROLE_USER,
    is_verified: bool = True,
    approval_status: str = STATUS_APPROVED,
    fallback_code: str | None = None,
) -> str:
    """Insert a user with a known password. Returns the new id."""
    return store.insert(
        User(
            email=email,
            name=name,
            hashed_password=hash_password(password),
            role=role,
            is_verified=is_verified,
            approval_status=approval_status,
            mfa_fallback_code=fallback_code,
        )
    )


def _build_service(allow_demo_fallback: bool) -> tuple[AuthService, FakeMailer]:
    users, audit_store = make_stores()
    mailer = FakeMailer()
    service = AuthService(
        users,
        AuditRecorder(audit_store),
        mailer,
        code_ttl_seconds=300,
        allow_demo_fallback=allow_demo_fallback,
    )
    return service, mailer


# ---------------------------------------------------------------------------
# Function-scoped fixtures -- one fresh pair of databases per test
# ---------------------------------------------------------------------------


@pytest.fixture()
def service() -> Generator[tuple[AuthService, FakeMailer], None, None]:
    """Yield (service, mailer) with the demo fallback code path disabled."""
    svc, mailer = _build_service(allow_demo_fallback=False)
    yield svc, mailer
    svc.users.close()
    svc.audit.store.close()


@pytest.fixture()
def fallback_service() -> Generator[tuple[AuthService, FakeMailer], None, None]:
    """Yield (service, mailer) with DEMO_MFA_FALLBACK_ENABLED behaviour."""
    svc, mailer = _build_service(allow_demo_fallback=True)
    yield svc, mailer
    svc.users.close()
    svc.audit.store.close()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the test service and its stores into app.state so TestClient routes
    see isolated test DBs rather than the configured databases.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = service.users
        app.state.audit_store = service.audit.store
        app.state.auth_service = service
        yield

    return test_lifespan


@dataclass
class ApiHarness:
    client: TestClient
    service: AuthService
    mailer: FakeMailer
    admin_id: str
    user_id: str


ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-pass-123"
USER_EMAIL = "member@example.com"
USER_PASSWORD = "member-pass-123"


@pytest.fixture(scope="module")
def api_client() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers and middleware but use isolated in-memory stores.
    One approved admin and one approved user exist before the client starts.
    Rate limiting is switched off: the tests log in far more often than the
    production limit allows from one address.
    """
    svc, mailer = _build_service(allow_demo_fallback=False)
    admin_id = add_user(svc.users, ADMIN_EMAIL, ADMIN_PASSWORD, name="Admin", role=ROLE_ADMIN)
    user_id = add_user(svc.users, USER_EMAIL, USER_PASSWORD, name="Member")

    app.router.lifespan_context = _patch_lifespan(svc)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, service=svc, mailer=mailer, admin_id=admin_id, user_id=user_id)

    limiter.enabled = True
    svc.users.close()
    svc.audit.store.close()
