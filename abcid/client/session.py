"""Client-side session orchestrator.

Holds the access token in memory only (the refresh token stays in the
HTTP-only cookie jar), attaches it to outgoing calls and recovers from an
expired access token with exactly one refresh + one retry per request.

States::

    IDLE ──bootstrap()──> CHECKING ──/me ok──────────────> AUTHENTICATED
                              │                                  ^
                              └─/me failed──refresh()──ok────────┘
                                                 └─failed──> UNAUTHENTICATED

Concurrent refreshes are collapsed: every caller that needs a new token
while one is already being fetched awaits the same in-flight request.
"""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable

import httpx

from abcid.core.logging import get_logger
from abcid.middleware.gatekeeper import LOGIN_PATH, is_protected_path
from abcid.schemas.identity import AdminIdentity, StudentIdentity, identity_adapter

log = get_logger(__name__)

ME_URL = "/api/auth/me"
REFRESH_URL = "/api/auth/refresh"
LOGOUT_URL = "/api/auth/logout"


class SessionState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


def is_protected_route(pathname: str) -> bool:
    return is_protected_path(pathname) or pathname == "/settings" or pathname.startswith("/settings/")


class SessionClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        navigate: Callable[[str], Any] | None = None,
    ):
        self.http = http
        self._navigate = navigate or (lambda path: None)
        self.state = SessionState.IDLE
        self.access_token: str | None = None
        self.identity: AdminIdentity | StudentIdentity | None = None
        self.pathname = LOGIN_PATH
        self._refresh_task: asyncio.Task | None = None

    # ── state helpers ─────────────────────────────────────────────────
    def login(self, access_token: str, identity: AdminIdentity | StudentIdentity) -> None:
        """Adopt the token returned by /auth/login or /auth/verify-otp."""
        self._authenticated(access_token, identity)

    def _authenticated(self, access_token: str, identity: AdminIdentity | StudentIdentity) -> None:
        self.access_token = access_token
        self.identity = identity
        self.state = SessionState.AUTHENTICATED

    def _clear(self) -> None:
        self.access_token = None
        self.identity = None
        self.state = SessionState.UNAUTHENTICATED

    def _adopt(self, response: httpx.Response) -> bool:
        if response.status_code != 200:
            return False
        try:
            body = response.json()
            identity = identity_adapter.validate_python(body["identity"])
            token = body["accessToken"]
        except (ValueError, KeyError, TypeError):
            log.warning("session_payload_unreadable", url=str(response.request.url))
            return False
        self._authenticated(token, identity)
        return True

    # ── bootstrap ─────────────────────────────────────────────────────
    async def bootstrap(self, pathname: str) -> SessionState:
        self.pathname = pathname
        if not is_protected_route(pathname):
            # public page: no probing, no redirect
            self.state = SessionState.UNAUTHENTICATED
            return self.state

        self.state = SessionState.CHECKING
        try:
            response = await self.http.get(ME_URL)
        except httpx.HTTPError as exc:
            log.info("session_check_failed", error=str(exc))
            response = None

        if response is None or not self._adopt(response):
            await self.refresh()
        return self.state

    # ── refresh (single-flight) ───────────────────────────────────────
    async def refresh(self) -> str | None:
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._do_refresh())
        return await asyncio.shield(self._refresh_task)

    async def _do_refresh(self) -> str | None:
        try:
            response = await self.http.get(REFRESH_URL)
        except httpx.HTTPError as exc:
            log.info("token_refresh_failed", error=str(exc))
            self._clear()
            return None

        if not self._adopt(response):
            log.info("token_refresh_rejected", status=response.status_code)
            self._clear()
            return None
        return self.access_token

    # ── requests ──────────────────────────────────────────────────────
    def _with_bearer(self, kwargs: dict, token: str | None) -> dict:
        headers = dict(kwargs.get("headers") or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return {**kwargs, "headers": headers}

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Sends with the current bearer token. A 401 triggers one refresh
        and one retry; whatever the retry returns is handed back, so a
        request costs at most two calls to `url`.
        """
        sent_with = self.access_token
        response = await self.http.request(method, url, **self._with_bearer(kwargs, sent_with))
        if response.status_code != 401:
            return response

        # another request may have refreshed while this one was in flight
        if self.access_token and self.access_token != sent_with:
            token = self.access_token
        else:
            token = await self.refresh()

        if token is None:
            if is_protected_route(self.pathname):
                self._navigate(LOGIN_PATH)
            return response

        return await self.http.request(method, url, **self._with_bearer(kwargs, token))

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    # ── logout ────────────────────────────────────────────────────────
    async def logout(self, pathname: str | None = None) -> None:
        pathname = pathname or self.pathname
        if not is_protected_route(pathname):
            return
        try:
            await self.http.post(LOGOUT_URL)
        except httpx.HTTPError as exc:
            log.warning("logout_request_failed", error=str(exc))
        finally:
            # local state goes regardless of what the server said
            self._clear()
            self._navigate(LOGIN_PATH)
