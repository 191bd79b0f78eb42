"""
tests/test_approval.py -- Approval gate tests.
"""

from __future__ import annotations

import pytest

from auth.approval import DENY_PENDING, DENY_REJECTED, DENY_UNVERIFIED, check_approved, denial_reason, set_status
from auth.errors import PendingApproval, UserNotFound
from auth.models import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED, User
from conftest import add_user, make_stores


def _user(status: str, verified: bool = True) -> User:
    return User(email="a@b.io", name="A", hashed_password="x", approval_status=status, is_verified=verified, id="u-1")


class TestDenialReason:
    @pytest.mark.parametrize(
        "status,verified,expected",
        [
            (STATUS_APPROVED, True, None),
            (STATUS_PENDING, True, DENY_PENDING),
            (STATUS_REJECTED, True, DENY_REJECTED),
            (STATUS_APPROVED, False, DENY_UNVERIFIED),
            (STATUS_PENDING, False, DENY_PENDING),
            (STATUS_REJECTED, False, DENY_REJECTED),
        ],
    )
    def test_reason(self, status: str, verified: bool, expected: str | None) -> None:
        assert denial_reason(_user(status, verified)) == expected


class TestCheckApproved:
    def test_approved_verified_passes(self) -> None:
        check_approved(_user(STATUS_APPROVED))

    def test_pending_and_rejected_share_one_message(self) -> None:
        with pytest.raises(PendingApproval) as pending:
            check_approved(_user(STATUS_PENDING))
        with pytest.raises(PendingApproval) as rejected:
            check_approved(_user(STATUS_REJECTED))
        assert pending.value.message == rejected.value.message

    def test_unverified_gets_verification_message(self) -> None:
        with pytest.raises(PendingApproval, match="verify your email"):
            check_approved(_user(STATUS_APPROVED, verified=False))


class TestSetStatus:
    def setup_method(self) -> None:
        self.users, self.audit = make_stores()
        self.uid = add_user(self.users, "p@b.io", approval_status=STATUS_PENDING)

    def teardown_method(self) -> None:
        self.users.close()
        self.audit.close()

    def test_approve_then_approve_again(self) -> None:
        assert set_status(self.users, self.uid, STATUS_APPROVED).approval_status == STATUS_APPROVED
        assert set_status(self.users, self.uid, STATUS_APPROVED).approval_status == STATUS_APPROVED

    def test_unknown_user(self) -> None:
        with pytest.raises(UserNotFound):
            set_status(self.users, "missing", STATUS_APPROVED)

    def test_unknown_status(self) -> None:
        with pytest.raises(ValueError):
            set_status(self.users, self.uid, "banned")

    def test_cannot_move_back_to_pending(self) -> None:
        set_status(self.users, self.uid, STATUS_REJECTED)
        with pytest.raises(ValueError, match="approved or rejected"):
            set_status(self.users, self.uid, STATUS_PENDING)
        assert self.users.find_by_id(self.uid).approval_status == STATUS_REJECTED
