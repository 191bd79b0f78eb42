"""
api/routes/v1/auth.py -- Login flow and account administration REST endpoints.

Routes:
  POST /api/v1/auth/login                -- password step; sets pre-auth cookie
  POST /api/v1/auth/mfa                  -- one-time code step; sets access cookie
  POST /api/v1/auth/logout               -- audits the logout; clears both cookies
  POST /api/v1/auth/register             -- self-registration (201)
  POST /api/v1/auth/verify-email         -- confirm the registration code
  GET  /api/v1/auth/me                   -- identity from the access token
  GET  /api/v1/auth/users                -- list accounts (admin only)
  POST /api/v1/auth/users/{id}/approve   -- approve an account (admin only)
  POST /api/v1/auth/users/{id}/reject    -- reject an account (admin only)

Every handler is a thin adapter: pull tokens and the source IP off the
request, call AuthService, map the result to a response model. Errors are
AuthError subclasses and become the error envelope in api/main.py.

Security:
  [H2] login, mfa, register and verify-email are rate-limited per client IP.
  [M5] Cache-Control: no-store on every response that carries a token.
  Cookies are HttpOnly and SameSite=Strict; Secure follows SECURE_COOKIES.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import AUTH_RATE_LIMIT, limiter
from api.models import (
    AdminUserRow,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    MfaRequest,
    MfaResponse,
    RegisterRequest,
    UserResponse,
    VerifyEmailRequest,
)
from auth.dependencies import (
    ACCESS_COOKIE,
    PRE_AUTH_COOKIE,
    get_access_token,
    get_auth_service,
    get_pre_auth_token,
    get_source_ip,
)
from core.config import get_settings

# Auth policy:
# - POST /auth/login, /auth/mfa, /auth/register, /auth/verify-email: public, rate-limited
# - POST /auth/logout:                   requires a valid access token (audited either way)
# - GET  /auth/me:                       requires a valid access token
# - GET  /auth/users, POST /auth/users/{id}/*: admin role in the access token
router = APIRouter()

_settings = get_settings()


def _set_cookie(resp: JSONResponse, name: str, token: str, max_age: int) -> None:
    resp.set_cookie(
        key=name,
        value=token,
        max_age=max_age,
        httponly=True,
        secure=_settings.secure_cookies,
        samesite="strict",
        path="/",
    )


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Login flow
# ---------------------------------------------------------------------------


@limiter.limit(AUTH_RATE_LIMIT)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Verify the password and start the MFA step.

    The pre-auth token goes into a short-lived cookie; the one-time code is
    delivered by email and never appears in the response.
    """
    service = get_auth_service(request)
    challenge = service.login(body.email, body.password, get_source_ip(request))
    resp = JSONResponse(content=LoginResponse(message=challenge.message, email=challenge.email).model_dump())
    _set_cookie(resp, PRE_AUTH_COOKIE, challenge.pre_auth_token, _settings.pre_auth_token_expire_seconds)
    return _no_store(resp)


@limiter.limit(AUTH_RATE_LIMIT)  # [H2]
@router.post("/auth/mfa", response_model=MfaResponse)
def verify_mfa(request: Request, body: MfaRequest) -> JSONResponse:
    """Exchange the pre-auth cookie and the emailed code for an access cookie."""
    service = get_auth_service(request)
    session = service.verify_mfa(get_pre_auth_token(request), body.code, get_source_ip(request))
    resp = JSONResponse(
        content=MfaResponse(
            message="Login successful.",
            user=UserResponse.from_summary(session.user),
        ).model_dump()
    )
    _set_cookie(resp, ACCESS_COOKIE, session.access_token, _settings.access_token_expire_seconds)
    if session.discard_pre_auth:
        resp.delete_cookie(PRE_AUTH_COOKIE, path="/")
    return _no_store(resp)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Audit the logout and clear both session cookies.

    Tokens are not revoked server-side. Clearing the cookies is what ends the
    browser session.
    """
    service = get_auth_service(request)
    ack = service.logout(get_access_token(request), get_source_ip(request))
    resp = JSONResponse(content=MessageResponse(message=ack.message, ok=ack.ok).model_dump())
    resp.delete_cookie(ACCESS_COOKIE, path="/")
    resp.delete_cookie(PRE_AUTH_COOKIE, path="/")
    return _no_store(resp)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@limiter.limit(AUTH_RATE_LIMIT)  # [H2]
@router.post("/auth/register", response_model=MessageResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a pending account. A taken email gets the same 201 response."""
    service = get_auth_service(request)
    receipt = service.register(body.name, body.email, body.password, get_source_ip(request))
    return JSONResponse(status_code=201, content=MessageResponse(message=receipt.message).model_dump())


@limiter.limit(AUTH_RATE_LIMIT)  # [H2]
@router.post("/auth/verify-email", response_model=MessageResponse)
def verify_email(request: Request, body: VerifyEmailRequest) -> JSONResponse:
    service = get_auth_service(request)
    ack = service.verify_email(body.email, body.code, get_source_ip(request))
    return JSONResponse(content=MessageResponse(message=ack.message, ok=ack.ok).model_dump())


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request) -> UserResponse:
    """Return the identity snapshot carried by the access token."""
    service = get_auth_service(request)
    return UserResponse.from_summary(service.me(get_access_token(request)))


# ---------------------------------------------------------------------------
# User administration (admin only)
# ---------------------------------------------------------------------------


@router.get("/auth/users", response_model=list[AdminUserRow])
def list_users(request: Request) -> list[AdminUserRow]:
    """List every account, newest first. Password hashes and codes are omitted."""
    service = get_auth_service(request)
    users = service.list_users(get_access_token(request), get_source_ip(request))
    return [AdminUserRow.from_user(u) for u in users]


@router.post("/auth/users/{user_id}/approve", response_model=MessageResponse)
def approve_user(request: Request, user_id: str) -> MessageResponse:
    service = get_auth_service(request)
    ack = service.approve_user(get_access_token(request), user_id, get_source_ip(request))
    return MessageResponse(message=ack.message, ok=ack.ok)


@router.post("/auth/users/{user_id}/reject", response_model=MessageResponse)
def reject_user(request: Request, user_id: str) -> MessageResponse:
    service = get_auth_service(request)
    ack = service.reject_user(get_access_token(request), user_id, get_source_ip(request))
    return MessageResponse(message=ack.message, ok=ack.ok)
