"""Session-expiry handling for console API calls.

The backend signals an expired or invalid session with HTTP 401. When that
happens anywhere outside the authentication flow, the client logs out and
sends the user to the login page. On the authentication pages themselves a 401
is an ordinary answer (e.g. wrong password) and is left for the caller to
display.

The decision is based on the page the user is currently on, not on the URL of
the failed request: several requests failing together after the session
expires must lead to a single navigation.
"""

from __future__ import annotations

from typing import Final, Protocol

import httpx
from loguru import logger

from boulder_console.net.http import HttpCallError, Method, RequestDescriptor, Transport

__all__ = [
    "AUTH_FLOW_PATHS",
    "AUTH_STATUS_PATH",
    "InMemoryNavigator",
    "LOGIN_PATH",
    "LOGOUT_PATH",
    "Navigator",
    "SessionManager",
]

log = logger.bind(module="net.session")

LOGIN_PATH: Final[str] = "/login"
LOGOUT_PATH: Final[str] = "/logout"
AUTH_STATUS_PATH: Final[str] = "/auth/status"
AUTH_FLOW_PATHS: Final[frozenset[str]] = frozenset({"/login", "/auth", "/register"})
# Replies to these calls are answers about the session, not signs of expiry.
_UNINTERCEPTED_PATHS: Final[tuple[str, ...]] = (LOGOUT_PATH, AUTH_STATUS_PATH)

_UNAUTHORIZED = 401
_DEFAULT_LOGOUT_TIMEOUT_SECONDS = 2.0


class Navigator(Protocol):
    """Where the user currently is, and how to send them elsewhere."""

    def current_path(self) -> str: ...

    def navigate(self, path: str) -> None: ...


class InMemoryNavigator:
    """Navigator that only tracks the current path and the visited history."""

    def __init__(self, initial_path: str = "/") -> None:
        self._path = initial_path or "/"
        self.history: list[str] = []

    def current_path(self) -> str:
        return self._path

    def navigate(self, path: str) -> None:
        self._path = path
        self.history.append(path)


def _server_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except Exception:
        return None
    if isinstance(body, dict):
        value = body.get("msg") or body.get("message")
        return str(value) if value else None
    return None


class SessionManager:
    """Owns logout and reacts to 401 responses seen by the transport."""

    def __init__(
        self,
        transport: Transport,
        navigator: Navigator,
        *,
        logout_timeout_seconds: float = _DEFAULT_LOGOUT_TIMEOUT_SECONDS,
    ) -> None:
        self.transport = transport
        self.navigator = navigator
        self.logout_timeout_seconds = float(logout_timeout_seconds)

    def install(self) -> "SessionManager":
        self.transport.add_response_hook(self.on_response)
        return self

    def on_auth_flow(self) -> bool:
        return self.navigator.current_path() in AUTH_FLOW_PATHS

    def _go_to_login(self) -> None:
        if self.navigator.current_path() == LOGIN_PATH:
            return
        self.navigator.navigate(LOGIN_PATH)

    async def on_response(self, response: httpx.Response) -> None:
        """Response hook: log out and redirect on 401 outside the auth flow."""
        if response.status_code != _UNAUTHORIZED:
            return
        if response.request.url.path.endswith(_UNINTERCEPTED_PATHS):
            return

        if self.on_auth_flow():
            await response.aread()
            log.warning("Authentication failed: {}", _server_message(response) or "unauthorized")
            return

        log.warning(
            "Session expired or invalid (path={}); redirecting to {}",
            self.navigator.current_path(),
            LOGIN_PATH,
        )
        # Navigate before awaiting anything so concurrent 401s see the login page.
        self._go_to_login()
        await self.logout()

    async def logout(self) -> None:
        """Best-effort server logout, then drop local cookies and go to login.

        The server call is bounded by a short timeout and its failure is ignored.
        """
        try:
            await self.transport.send(
                RequestDescriptor(
                    LOGOUT_PATH,
                    Method.POST,
                    {},
                    {"timeout": self.logout_timeout_seconds},
                )
            )
        except HttpCallError as exc:
            log.warning("Logout call failed, proceeding anyway: {}", exc)
        finally:
            self.transport.cookies.clear()
            self._go_to_login()
