"""
tests/test_user_store.py -- UserStore repository tests.

Each test gets its own named in-memory database through make_stores().
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED, User
from conftest import add_user, make_stores


@pytest.fixture()
def users():
    user_store, audit_store = make_stores()
    yield user_store
    user_store.close()
    audit_store.close()


class TestInsertAndFind:
    def test_insert_assigns_uuid_and_timestamp(self, users) -> None:
        uid = users.insert(User(email="New@Example.com", name="New", hashed_password="h"))
        user = users.find_by_id(uid)
        assert user is not None
        assert len(uid) == 36
        assert user.created_at, "created_at must be set by the store"

    def test_email_stored_lowercased_and_found_case_insensitively(self, users) -> None:
        add_user(users, "Mixed.Case@Example.com")
        user = users.find_by_email("  MIXED.case@example.COM ")
        assert user is not None
        assert user.email == "mixed.case@example.com"

    def test_fixed_id_and_created_at_are_kept(self, users) -> None:
        users.insert(
            User(id="usr_fixed", email="f@b.io", name="F", hashed_password="h", created_at="2025-01-01T00:00:00+00:00")
        )
        user = users.find_by_id("usr_fixed")
        assert user.created_at == "2025-01-01T00:00:00+00:00"

    def test_duplicate_email_raises_integrity_error(self, users) -> None:
        add_user(users, "dup@b.io")
        with pytest.raises(IntegrityError):
            add_user(users, "DUP@b.io")

    def test_defaults_are_pending_and_unverified(self, users) -> None:
        uid = users.insert(User(email="d@b.io", name="D", hashed_password="h"))
        user = users.find_by_id(uid)
        assert user.approval_status == STATUS_PENDING
        assert user.is_verified is False

    def test_missing_lookups_return_none(self, users) -> None:
        assert users.find_by_email("nobody@b.io") is None
        assert users.find_by_id("nope") is None

    def test_has_users(self, users) -> None:
        assert users.has_users() is False
        add_user(users, "a@b.io")
        assert users.has_users() is True

    def test_list_users_newest_first(self, users) -> None:
        users.insert(User(email="old@b.io", name="Old", hashed_password="h", created_at="2024-01-01T00:00:00+00:00"))
        users.insert(User(email="new@b.io", name="New", hashed_password="h", created_at="2025-01-01T00:00:00+00:00"))
        assert [u.email for u in users.list_users()] == ["new@b.io", "old@b.io"]


class TestUpdates:
    def test_update_fields_patches_whitelisted_columns(self, users) -> None:
        uid = add_user(users, "a@b.io", is_verified=False)
        assert users.update_fields(uid, is_verified=True, mfa_code="123456") is True
        user = users.find_by_id(uid)
        assert user.is_verified is True
        assert user.mfa_code == "123456"

    def test_update_fields_refuses_approval_status(self, users) -> None:
        uid = add_user(users, "a@b.io", approval_status=STATUS_PENDING)
        with pytest.raises(ValueError):
            users.update_fields(uid, approval_status=STATUS_APPROVED)
        assert users.find_by_id(uid).approval_status == STATUS_PENDING

    def test_update_fields_refuses_unknown_columns(self, users) -> None:
        uid = add_user(users, "a@b.io")
        with pytest.raises(ValueError):
            users.update_fields(uid, email="other@b.io")

    def test_update_unknown_user_returns_false(self, users) -> None:
        assert users.update_fields("missing", mfa_code=None) is False

    def test_set_approval_status(self, users) -> None:
        uid = add_user(users, "a@b.io", approval_status=STATUS_PENDING)
        assert users.set_approval_status(uid, STATUS_REJECTED) is True
        assert users.find_by_id(uid).approval_status == STATUS_REJECTED
        assert users.set_approval_status("missing", STATUS_APPROVED) is False

    def test_set_approval_status_rejects_unknown_value(self, users) -> None:
        uid = add_user(users, "a@b.io")
        with pytest.raises(ValueError):
            users.set_approval_status(uid, "banned")

    def test_consume_code_applies_once(self, users) -> None:
        uid = add_user(users, "a@b.io")
        users.update_fields(uid, mfa_code="123456", mfa_expires_at="2026-01-01T12:05:00+00:00")
        assert users.consume_code(uid, "123456", "2026-01-01T12:05:00+00:00") is True
        assert users.consume_code(uid, "123456", "2026-01-01T12:05:00+00:00") is False
        user = users.find_by_id(uid)
        assert user.mfa_code is None
        assert user.mfa_expires_at is None

    def test_consume_code_refuses_a_superseded_code(self, users) -> None:
        uid = add_user(users, "a@b.io")
        users.update_fields(uid, mfa_code="654321", mfa_expires_at="2026-01-01T12:10:00+00:00")
        assert users.consume_code(uid, "123456", "2026-01-01T12:05:00+00:00") is False
        assert users.find_by_id(uid).mfa_code == "654321"
