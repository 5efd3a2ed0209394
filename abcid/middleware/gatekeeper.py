"""Edge gatekeeper.

Classifies every incoming path and decides, from cookies alone, whether
the request may reach its handler. The refresh token signature is NOT
checked here; this is a cheap pre-filter that keeps obviously
unauthenticated visitors off protected pages. Handlers that touch data
still verify the bearer access token themselves (see
``abcid.core.dependencies``).

Order of evaluation:
  1. exempt paths            -> allow
  2. student page  /<uid>    -> allow only for the matching student session
  3. admin pages   /home...  -> allow only for an admin session
  4. non-auth API  /api/...  -> allow any session, else 401
  5. everything else         -> allow
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from abcid.core.identifiers import strip_uid_prefix
from abcid.core.logging import get_logger
from abcid.core.session_cookies import read_session

log = get_logger(__name__)

LOGIN_PATH = "/"

EXEMPT_PATHS: frozenset[str] = frozenset({
    "/",
    "/logout",
    "/api/auth/send-otp",
    "/api/auth/verify-otp",
    "/api/auth/login",
})

ADMIN_PREFIXES: tuple[str, ...] = ("/home", "/admin")
API_PREFIX = "/api/"
AUTH_API_PREFIX = "/api/auth/"

# first segment: optional two-letter tag + digits, e.g. /0123456789 or /ST0123456789/upload
_STUDENT_PATH = re.compile(r"^/((?:[A-Za-z]{2})?\d+)(?:/.*)?$")


class GateAction(str, Enum):
    ALLOW = "allow"
    REDIRECT_TO_LOGIN = "redirect_to_login"
    UNAUTHORIZED = "unauthorized"


@dataclass(frozen=True)
class Decision:
    action: GateAction
    reason: str = ""


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def student_path_uid(path: str) -> str | None:
    m = _STUDENT_PATH.match(path)
    return m.group(1) if m else None


def is_admin_path(path: str) -> bool:
    return any(_under(path, p) for p in ADMIN_PREFIXES)


def is_protected_path(path: str) -> bool:
    """Pages that need a session; used by the client orchestrator as well."""
    return student_path_uid(path) is not None or is_admin_path(path)


def evaluate(path: str, cookies: Mapping[str, str]) -> Decision:
    if path in EXEMPT_PATHS:
        return Decision(GateAction.ALLOW, "exempt")

    session = read_session(cookies)

    path_uid = student_path_uid(path)
    if path_uid is not None:
        if session is None:
            return Decision(GateAction.REDIRECT_TO_LOGIN, "no session")
        if strip_uid_prefix(path_uid).upper() != strip_uid_prefix(session.identifier).upper():
            return Decision(GateAction.REDIRECT_TO_LOGIN, "uid mismatch")
        return Decision(GateAction.ALLOW, "student owner")

    if is_admin_path(path):
        if session is None or session.role != "admin":
            return Decision(GateAction.REDIRECT_TO_LOGIN, "not admin")
        return Decision(GateAction.ALLOW, "admin")

    if path.startswith(API_PREFIX) and not path.startswith(AUTH_API_PREFIX):
        if session is None:
            return Decision(GateAction.UNAUTHORIZED, "no session")
        return Decision(GateAction.ALLOW, "api session")

    return Decision(GateAction.ALLOW, "public")


class GatekeeperMiddleware(BaseHTTPMiddleware):
    """Applies `evaluate` ahead of every route handler."""

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        decision = evaluate(path, request.cookies)

        if decision.action is GateAction.REDIRECT_TO_LOGIN:
            log.info("gatekeeper_redirect", path=path, reason=decision.reason)
            return RedirectResponse(LOGIN_PATH, status_code=307)

        if decision.action is GateAction.UNAUTHORIZED:
            log.info("gatekeeper_unauthorized", path=path, reason=decision.reason)
            return JSONResponse({"detail": "Not authenticated"}, status_code=401)

        return await call_next(request)
