"""
auth/dependencies.py -- FastAPI Depends() helpers for the auth transport.

Tokens are looked up in priority order:
  1. Cookie -- "access_token" / "pre_auth_token", set by the login flow.
  2. Authorization: Bearer <token> header -- API clients.

These helpers only extract raw strings. Verification, and the audit entry
for a rejected token, are the session service's job.

Layer rule: auth/dependencies.py may import from fastapi because it is part of
the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.service import AuthService

ACCESS_COOKIE = "access_token"
PRE_AUTH_COOKIE = "pre_auth_token"


def _bearer(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_access_token(request: Request) -> str | None:
    return request.cookies.get(ACCESS_COOKIE) or _bearer(request)


def get_pre_auth_token(request: Request) -> str | None:
    return request.cookies.get(PRE_AUTH_COOKIE) or _bearer(request)


def get_source_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the peer address, else "unknown".

    X-Forwarded-For is client-controlled unless a trusted proxy overwrites it.
    The value is used for audit context only, never for access decisions.
    """
    forwarded = request.headers.get("X-Forwarded-For", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return request.client.host if request.client else "unknown"


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service
