"""
auth/service.py -- The login state machine.

    Anonymous --login--> PasswordVerified (pre-auth token)
              --verify_mfa--> Authenticated (access token)
              --logout--> Anonymous

    Anonymous --register--> PendingVerification --verify_email--> verified,
              then the normal login path once an admin approves the account.

The service holds no session state. Everything a later step needs travels in
the signed tokens; the only per-user mutable state is the outstanding one-time
code on the user record.

Contract kept by every operation:
  1. Input is validated first (auth/validation.py). A ValidationError touches
     neither the user store nor the audit trail.
  2. Every other outcome, success or failure, emits its audit entry only after
     the state change it describes has completed. MFA success is the one
     transition that emits two entries (mfa_verified, user_login).
  3. Failures raise an AuthError subclass with a fixed, caller-safe message.
     Internal detail (which check failed) goes to the audit meta and the
     diagnostic log, never to the caller.

The approval gate is applied after the password check and re-applied before
any access token is minted. Email verification never mints a token.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from audit import models as events
from audit.export import EXPORT_FORMATS, export_filename, render
from audit.models import ACTOR_SYSTEM, ACTOR_UNKNOWN, AuditLogEntry
from audit.recorder import AuditRecorder
from audit.store import AuditStore
from auth.approval import check_approved, denial_reason, set_status
from auth.errors import (
    DispatchFailure,
    InsufficientRole,
    InvalidCredentials,
    InvalidOrExpiredChallenge,
    PendingApproval,
    UserNotFound,
    ValidationError,
)
from auth.mailer import Mailer, redact_email
from auth.mfa import MfaEngine
from auth.models import (
    ROLE_ADMIN,
    ROLE_USER,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_PRE_AUTH,
    Ack,
    AuthenticatedSession,
    LoginChallenge,
    RegistrationReceipt,
    User,
    UserSummary,
)
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, create_pre_auth_token, hash_password, verify_token
from auth.validation import LoginInput, MfaInput, RegisterInput, VerifyEmailInput, parse
from core.config import Settings

logger = logging.getLogger("vaultguard.auth")


class AuthService:
    """Orchestrates credential checks, codes, tokens and audit emission.

    Usage:
        service = AuthService(UserStore(), AuditRecorder(AuditStore()), Mailer())
        challenge = service.login("user@vault.io", "user1234", "10.0.0.7")
        session = service.verify_mfa(challenge.pre_auth_token, "123456", "10.0.0.7")
    """

    def __init__(
        self,
        users: UserStore,
        audit: AuditRecorder,
        mailer: Mailer,
        *,
        code_ttl_seconds: int = 300,
        allow_demo_fallback: bool = False,
    ) -> None:
        self.users = users
        self.audit = audit
        self.mailer = mailer
        self.mfa = MfaEngine(users, code_ttl_seconds=code_ttl_seconds, allow_demo_fallback=allow_demo_fallback)

    @classmethod
    def from_settings(cls, settings: Settings, users: UserStore, audit_store: AuditStore) -> "AuthService":
        """Wire a service from application settings. Used by the API lifespan and the CLI."""
        return cls(
            users,
            AuditRecorder(audit_store),
            Mailer.from_settings(settings),
            code_ttl_seconds=settings.mfa_code_ttl_seconds,
            allow_demo_fallback=settings.demo_mfa_fallback_enabled,
        )

    # ------------------------------------------------------------------
    # Login: Anonymous -> PasswordVerified
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, source_ip: str) -> LoginChallenge:
        """Check the password, pass the approval gate, issue a code and a pre-auth token.

        Unknown email and wrong password take the same path (same bcrypt
        cost, same audit event, same error) so account existence cannot be
        probed.
        """
        creds = parse(LoginInput, email=email, password=password)

        user = authenticate_user(self.users, creds.email, creds.password)
        if user is None:
            self.audit.record(
                events.FAILED_AUTH,
                events.SEVERITY_CRITICAL,
                user_id=ACTOR_UNKNOWN,
                user_email=creds.email,
                ip=source_ip,
            )
            raise InvalidCredentials()

        self._gate(user, source_ip, stage="password")

        code = self.mfa.issue_code(user.id)
        dispatched = self._dispatch(user.email, code)
        token = create_pre_auth_token(user.id, user.email)
        self.audit.record(
            events.PASSWORD_VERIFIED,
            events.SEVERITY_INFO,
            user_id=user.id,
            user_email=user.email,
            ip=source_ip,
            meta={"code_dispatched": dispatched},
        )
        return LoginChallenge(
            message="Password verified. Proceed to MFA.",
            email=user.email,
            pre_auth_token=token,
            code_dispatched=dispatched,
        )

    # ------------------------------------------------------------------
    # MFA: PasswordVerified -> Authenticated
    # ------------------------------------------------------------------

    def verify_mfa(self, pre_auth_token: str | None, code: str, source_ip: str) -> AuthenticatedSession:
        """Exchange a pre-auth token plus a one-time code for an access token.

        The caller learns only "invalid or expired": a bad token, a missing
        account, no pending code, an expired code and wrong digits all look
        the same from outside. The audit meta records which one it was.
        """
        body = parse(MfaInput, code=code)

        claims = verify_token(pre_auth_token, TOKEN_TYPE_PRE_AUTH)
        if claims is None:
            self._mfa_failed(ACTOR_UNKNOWN, ACTOR_UNKNOWN, source_ip, "invalid_token")
            raise InvalidOrExpiredChallenge()

        user = self.users.find_by_id(claims["sub"])
        if user is None:
            self._mfa_failed(claims["sub"], claims.get("email", ACTOR_UNKNOWN), source_ip, "unknown_user")
            raise InvalidOrExpiredChallenge()

        if not self.mfa.verify_code(user.id, body.code):
            self._mfa_failed(user.id, user.email, source_ip, "code_rejected")
            raise InvalidOrExpiredChallenge()

        self._gate(user, source_ip, stage="mfa")

        access_token = create_access_token(user.id, user.email, user.name, user.role, user.approval_status)
        for event in (events.MFA_VERIFIED, events.USER_LOGIN):
            self.audit.record(event, events.SEVERITY_INFO, user_id=user.id, user_email=user.email, ip=source_ip)
        return AuthenticatedSession(access_token=access_token, user=user.summary())

    def _mfa_failed(self, user_id: str, user_email: str, source_ip: str, reason: str) -> None:
        self.audit.record(
            events.MFA_FAILED,
            events.SEVERITY_WARNING,
            user_id=user_id,
            user_email=user_email,
            ip=source_ip,
            meta={"reason": reason},
        )

    # ------------------------------------------------------------------
    # Logout: Authenticated -> Anonymous
    # ------------------------------------------------------------------

    def logout(self, access_token: str | None, source_ip: str) -> Ack:
        """Record the logout. The transport discards both token kinds.

        Tokens are not revoked server-side; an access token that is not
        discarded by the client stays valid until it expires.
        """
        claims = verify_token(access_token, TOKEN_TYPE_ACCESS)
        if claims is None:
            self.audit.record(
                events.LOGOUT_FAILED,
                events.SEVERITY_WARNING,
                user_id=ACTOR_UNKNOWN,
                user_email=ACTOR_UNKNOWN,
                ip=source_ip,
            )
            raise InvalidOrExpiredChallenge("Invalid or expired session. Please log in again.")
        self.audit.record(
            events.USER_LOGOUT,
            events.SEVERITY_INFO,
            user_id=claims["sub"],
            user_email=claims.get("email", ACTOR_UNKNOWN),
            ip=source_ip,
        )
        return Ack(message="Logged out successfully")

    def me(self, access_token: str | None) -> UserSummary:
        """Return the identity snapshot carried by an access token."""
        claims = verify_token(access_token, TOKEN_TYPE_ACCESS)
        if claims is None:
            raise InvalidOrExpiredChallenge("Invalid or expired session. Please log in again.")
        return UserSummary(
            id=claims["sub"],
            email=claims.get("email", ""),
            name=claims.get("name", ""),
            role=claims.get("role", ROLE_USER),
        )

    # ------------------------------------------------------------------
    # Registration: Anonymous -> PendingVerification
    # ------------------------------------------------------------------

    def register(self, name: str, email: str, password: str, source_ip: str) -> RegistrationReceipt:
        """Create an unverified, pending account and send it a verification code.

        A duplicate email gets the same receipt as a fresh registration. The
        password is hashed on both paths so the two take comparable time.
        """
        data = parse(RegisterInput, name=name, email=email, password=password)
        hashed = hash_password(data.password)

        existing = self.users.find_by_email(data.email)
        if existing is not None:
            self._duplicate_registration(existing, source_ip)
            return RegistrationReceipt()

        try:
            user_id = self.users.insert(
                User(
                    email=data.email,
                    name=data.name,
                    hashed_password=hashed,
                    role=ROLE_USER,
                    is_verified=False,
                    approval_status=STATUS_PENDING,
                )
            )
        except IntegrityError:
            # Lost a race against a concurrent registration of the same email.
            raced = self.users.find_by_email(data.email)
            if raced is None:
                raise
            self._duplicate_registration(raced, source_ip)
            return RegistrationReceipt()

        code = self.mfa.issue_code(user_id)
        dispatched = self._dispatch(data.email, code)
        self.audit.record(
            events.USER_REGISTERED,
            events.SEVERITY_INFO,
            user_id=user_id,
            user_email=data.email,
            ip=source_ip,
            meta={"code_dispatched": dispatched},
        )
        return RegistrationReceipt()

    def _duplicate_registration(self, existing: User, source_ip: str) -> None:
        """Audit a registration for a taken address.

        An account that never finished email verification is sent a fresh
        code, so an expired or undelivered first code is not a dead end. The
        submitted name and password are ignored and the caller returns the
        usual receipt either way.
        """
        meta = None
        if not existing.is_verified:
            code = self.mfa.issue_code(existing.id)
            meta = {"code_reissued": True, "code_dispatched": self._dispatch(existing.email, code)}
        self.audit.record(
            events.DUPLICATE_REGISTRATION,
            events.SEVERITY_WARNING,
            user_id=existing.id,
            user_email=existing.email,
            ip=source_ip,
            meta=meta,
        )

    def verify_email(self, email: str, code: str, source_ip: str = ACTOR_UNKNOWN) -> Ack:
        """Mark the account verified if the registration code matches.

        No token is issued here, whatever the approval status: the account
        still has to pass the approval gate on its next login. The static demo
        fallback code is not accepted on this path.
        """
        data = parse(VerifyEmailInput, email=email, code=code)

        user = self.users.find_by_email(data.email)
        if user is None or user.is_verified or not self.mfa.verify_code(user.id, data.code, accept_fallback=False):
            self.audit.record(
                events.EMAIL_VERIFICATION_FAILED,
                events.SEVERITY_WARNING,
                user_id=user.id if user is not None else ACTOR_UNKNOWN,
                user_email=data.email,
                ip=source_ip,
            )
            raise InvalidOrExpiredChallenge("Invalid or expired verification code.")

        self.users.update_fields(user.id, is_verified=True)
        self.audit.record(
            events.EMAIL_VERIFIED,
            events.SEVERITY_INFO,
            user_id=user.id,
            user_email=user.email,
            ip=source_ip,
            meta={"approval_status": user.approval_status},
        )
        if user.approval_status == STATUS_APPROVED:
            return Ack(message="Email verified. You can now sign in.")
        return Ack(message="Email verified. Your account is awaiting administrator approval.")

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def approve_user(self, admin_access_token: str | None, target_user_id: str, source_ip: str) -> Ack:
        """Approve an account. Idempotent; every call writes one audit entry."""
        return self._set_approval(admin_access_token, target_user_id, source_ip, STATUS_APPROVED)

    def reject_user(self, admin_access_token: str | None, target_user_id: str, source_ip: str) -> Ack:
        """Reject an account. Idempotent; every call writes one audit entry."""
        return self._set_approval(admin_access_token, target_user_id, source_ip, STATUS_REJECTED)

    def list_users(self, admin_access_token: str | None, source_ip: str) -> list[User]:
        self._require_admin(admin_access_token, source_ip, action="list_users")
        return self.users.list_users()

    def list_audit_log(
        self,
        admin_access_token: str | None,
        source_ip: str,
        limit: int | None = None,
    ) -> list[AuditLogEntry]:
        self._require_admin(admin_access_token, source_ip, action="list_audit_log")
        return self.audit.store.list_entries(limit=limit)

    def export_audit_log(self, admin_access_token: str | None, source_ip: str, fmt: str) -> tuple[str, str, str]:
        """Return (body, media_type, filename) for a CSV or JSON download of the full log."""
        if fmt not in EXPORT_FORMATS:
            raise ValidationError("Invalid value for 'format'.")
        self._require_admin(admin_access_token, source_ip, action="export_audit_log")
        body, media_type = render(self.audit.store.list_entries(), fmt)
        return body, media_type, export_filename(fmt)

    def set_approval_as_operator(self, target_user_id: str, status: str) -> User:
        """Approval change made from the operator CLI. Audited with actor 'system'."""
        if status not in (STATUS_APPROVED, STATUS_REJECTED):
            raise ValueError(f"Operators may only approve or reject, not {status!r}")
        user = set_status(self.users, target_user_id, status)
        self._approval_audit(status, ACTOR_SYSTEM, ACTOR_SYSTEM, "internal", user)
        return user

    def _set_approval(self, admin_access_token: str | None, target_user_id: str, source_ip: str, status: str) -> Ack:
        action = "approve_user" if status == STATUS_APPROVED else "reject_user"
        admin = self._require_admin(admin_access_token, source_ip, action=action, target_user_id=target_user_id)
        try:
            user = set_status(self.users, target_user_id, status)
        except UserNotFound:
            self.audit.record(
                events.ADMIN_ACTION_DENIED,
                events.SEVERITY_WARNING,
                user_id=admin["sub"],
                user_email=admin.get("email", ACTOR_UNKNOWN),
                ip=source_ip,
                meta={"action": action, "target_user_id": target_user_id, "reason": "not_found"},
            )
            raise
        self._approval_audit(status, admin["sub"], admin.get("email", ACTOR_UNKNOWN), source_ip, user)
        return Ack(message=f"User {status}.")

    def _approval_audit(self, status: str, actor_id: str, actor_email: str, source_ip: str, target: User) -> None:
        event = events.USER_APPROVED if status == STATUS_APPROVED else events.USER_REJECTED
        self.audit.record(
            event,
            events.SEVERITY_INFO,
            user_id=actor_id,
            user_email=actor_email,
            ip=source_ip,
            meta={"target_user_id": target.id, "target_email": target.email, "approval_status": status},
        )

    def _require_admin(
        self,
        token: str | None,
        source_ip: str,
        *,
        action: str,
        target_user_id: str | None = None,
    ) -> dict:
        """Return the admin's claims or raise, auditing the refusal.

        The role is read from the token snapshot, so a demoted admin keeps
        admin rights until their token expires.
        """
        claims = verify_token(token, TOKEN_TYPE_ACCESS)
        meta = {"action": action}
        if target_user_id is not None:
            meta["target_user_id"] = target_user_id
        if claims is None:
            self.audit.record(
                events.ADMIN_ACTION_DENIED,
                events.SEVERITY_WARNING,
                user_id=ACTOR_UNKNOWN,
                user_email=ACTOR_UNKNOWN,
                ip=source_ip,
                meta={**meta, "reason": "invalid_token"},
            )
            raise InvalidOrExpiredChallenge("Invalid or expired session. Please log in again.")
        if claims.get("role") != ROLE_ADMIN:
            self.audit.record(
                events.ADMIN_ACTION_DENIED,
                events.SEVERITY_WARNING,
                user_id=claims["sub"],
                user_email=claims.get("email", ACTOR_UNKNOWN),
                ip=source_ip,
                meta={**meta, "reason": "insufficient_role"},
            )
            raise InsufficientRole()
        return claims

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _gate(self, user: User, source_ip: str, *, stage: str) -> None:
        """Apply the approval gate, auditing a denial before re-raising it."""
        try:
            check_approved(user)
        except PendingApproval:
            self.audit.record(
                events.LOGIN_DENIED_APPROVAL,
                events.SEVERITY_WARNING,
                user_id=user.id,
                user_email=user.email,
                ip=source_ip,
                meta={"reason": denial_reason(user), "stage": stage},
            )
            raise

    def _dispatch(self, email: str, code: str) -> bool:
        """Send a code; a delivery failure is logged and reported, not raised."""
        try:
            self.mailer.send_code(email, code)
        except DispatchFailure as exc:
            logger.warning("Code dispatch to %s failed: %s", redact_email(email), exc.message)
            return False
        return True
