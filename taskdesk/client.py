"""
Async HTTP client for the Taskdesk API.

Session tokens are held by the caller-owned SessionTokens object rather than
global state. When several requests hit an expired access token at once,
exactly one refresh call is made; the others wait for it and retry with the
new token.

    async with TaskdeskClient("http://localhost:8000", SessionTokens(access, refresh)) as client:
        me = await client.me()
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from taskdesk.utils import get_logger


log = get_logger(__name__)

REFRESH_PATH = "/auth/refresh"


class SessionExpired(Exception):
    """The refresh token was rejected; the user has to sign in again."""


@dataclass
class SessionTokens:
    access_token: str
    refresh_token: str


class SingleFlight:
    """
    Coalesce concurrent calls into one in-flight execution.

    The first caller starts the work; callers arriving while it runs await
    the same result (or exception). Once it finishes the next call starts a
    fresh execution.
    """

    def __init__(self):
        self._inflight: Optional[asyncio.Future] = None

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    async def do(self, fn: Callable[[], Awaitable[Any]]) -> Any:
        if self._inflight is None:
            future = asyncio.ensure_future(fn())
            self._inflight = future
            future.add_done_callback(self._clear)
        # shield: one cancelled waiter must not cancel the shared call
        return await asyncio.shield(self._inflight)

    def _clear(self, future: asyncio.Future) -> None:
        if self._inflight is future:
            self._inflight = None


class TaskdeskClient:
    """Thin API client that refreshes its access token on 401."""

    def __init__(
        self,
        base_url: str,
        tokens: Optional[SessionTokens] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        on_tokens: Optional[Callable[[Optional[SessionTokens]], None]] = None,
    ):
        """
        Args:
            base_url: API root, e.g. http://localhost:8000
            tokens: Current session, if signed in
            http_client: Preconfigured httpx client (tests pass one bound to
                an ASGI transport)
            on_tokens: Called with the new tokens after a refresh, or None
                when the session has expired
        """
        self.tokens = tokens
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(30.0, connect=10.0),
        )
        self._on_tokens = on_tokens
        self._refresh_flight = SingleFlight()

    async def __aenter__(self) -> "TaskdeskClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        if self.tokens is None:
            return {}
        return {"Authorization": f"Bearer {self.tokens.access_token}"}

    async def _send(self, method: str, url: str, **kwargs) -> tuple[httpx.Response, Optional[str]]:
        sent_with = self.tokens.access_token if self.tokens is not None else None
        response = await self._http.request(method, url, headers=self._headers(), **kwargs)
        return response, sent_with

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Send a request; on 401 refresh the session once and retry once.

        Raises:
            SessionExpired: If the refresh token is rejected
        """
        response, sent_with = await self._send(method, url, **kwargs)

        if response.status_code != 401 or url == REFRESH_PATH or self.tokens is None:
            return response

        await self.refresh(stale_access_token=sent_with)
        response, _ = await self._send(method, url, **kwargs)
        return response

    async def refresh(self, stale_access_token: Optional[str] = None) -> SessionTokens:
        """
        Refresh the session, sharing one call among concurrent callers.

        A caller whose failed request used a token that has since been
        replaced skips the refresh and retries with the current token.
        """
        if (
            stale_access_token is not None
            and self.tokens is not None
            and self.tokens.access_token != stale_access_token
            and not self._refresh_flight.in_flight
        ):
            return self.tokens
        return await self._refresh_flight.do(self._do_refresh)

    async def _do_refresh(self) -> SessionTokens:
        if self.tokens is None:
            raise SessionExpired("Not signed in")

        log.debug("Refreshing access token")
        response = await self._http.post(REFRESH_PATH, json={"refresh_token": self.tokens.refresh_token})
        if response.status_code != 200:
            log.info("Refresh rejected with status %s", response.status_code)
            self.tokens = None
            if self._on_tokens is not None:
                self._on_tokens(None)
            raise SessionExpired("Session expired, sign in again")

        data = response.json()
        self.tokens = SessionTokens(access_token=data["access_token"], refresh_token=data["refresh_token"])
        if self._on_tokens is not None:
            self._on_tokens(self.tokens)
        return self.tokens

    async def _json(self, method: str, url: str, **kwargs) -> Any:
        response = await self.request(method, url, **kwargs)
        response.raise_for_status()
        return response.json()

    # ===== Convenience endpoints =====

    async def me(self) -> dict[str, Any]:
        return await self._json("GET", "/users/me")

    async def my_permissions(self) -> dict[str, Any]:
        return await self._json("GET", "/users/me/permissions")

    async def check(self, resource_group: str, action: str, resource_id: Optional[str] = None) -> dict[str, Any]:
        """Ask the server whether the current user may perform an action."""
        return await self._json(
            "POST",
            "/permissions/check",
            json={"resource_group": resource_group, "action": action, "resource_id": resource_id},
        )

    async def list_projects(self) -> list[dict[str, Any]]:
        return await self._json("GET", "/projects/")

    async def list_tasks(self, **params) -> list[dict[str, Any]]:
        return await self._json("GET", "/tasks/", params=params)
