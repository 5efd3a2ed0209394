"""
Session cookies shared between the auth routes and the edge gatekeeper.

Three cookies always travel together:

  refreshToken: signed refresh JWT, only ever read by /auth/me and /auth/refresh
  identifier  : student UID (as stored) or the admin sentinel
  role        : "student" | "admin"

The gatekeeper trusts identifier + role without verifying the refresh
token signature, so they are only ever written next to a freshly minted
refresh token and cleared together with it.
"""
from dataclasses import dataclass
from typing import Mapping

from fastapi import Response

from abcid.core.config import Settings, settings as default_settings
from abcid.core.security import TokenPair
from abcid.schemas.identity import AdminIdentity, StudentIdentity

REFRESH_COOKIE = "refreshToken"
IDENTIFIER_COOKIE = "identifier"
ROLE_COOKIE = "role"

SESSION_COOKIES = (REFRESH_COOKIE, IDENTIFIER_COOKIE, ROLE_COOKIE)
ROLES = frozenset({"student", "admin"})


@dataclass(frozen=True)
class SessionCookies:
    refresh_token: str
    identifier: str
    role: str


def session_identifier(identity: AdminIdentity | StudentIdentity, cfg: Settings = default_settings) -> str:
    if identity.kind == "student":
        return identity.uid
    return cfg.ADMIN_IDENTIFIER


def set_session(
    response: Response,
    tokens: TokenPair,
    identity: AdminIdentity | StudentIdentity,
    cfg: Settings = default_settings,
) -> SessionCookies:
    cookies = SessionCookies(
        refresh_token=tokens.refresh_token,
        identifier=session_identifier(identity, cfg),
        role=identity.role,
    )
    values = {
        REFRESH_COOKIE: cookies.refresh_token,
        IDENTIFIER_COOKIE: cookies.identifier,
        ROLE_COOKIE: cookies.role,
    }
    for name, value in values.items():
        response.set_cookie(
            key=name,
            value=value,
            max_age=cfg.refresh_max_age_seconds,
            path="/",
            httponly=True,
            secure=cfg.COOKIE_SECURE,
            samesite="lax",
        )
    return cookies


def clear_session(response: Response, cfg: Settings = default_settings) -> None:
    """Expire all three cookies. Safe to call with no session present."""
    for name in SESSION_COOKIES:
        response.delete_cookie(
            key=name,
            path="/",
            httponly=True,
            secure=cfg.COOKIE_SECURE,
            samesite="lax",
        )


def read_session(cookies: Mapping[str, str]) -> SessionCookies | None:
    """
    Returns the session only when all three cookies are present and
    non-empty with a known role. Partial state counts as no session.
    """
    refresh = cookies.get(REFRESH_COOKIE) or ""
    identifier = cookies.get(IDENTIFIER_COOKIE) or ""
    role = cookies.get(ROLE_COOKIE) or ""
    if not (refresh and identifier and role in ROLES):
        return None
    return SessionCookies(refresh_token=refresh, identifier=identifier, role=role)
