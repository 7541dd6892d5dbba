"""Login, logout and session status for the console API.

The session itself lives in an HttpOnly cookie set by the server on login;
the client never sees a token. The password is not sent in clear: the server
compares against ``md5(password + ":" + username)``.
"""

from __future__ import annotations

import hashlib
from typing import Final, Mapping

from loguru import logger

from boulder_console.api.calls import ApiCalls
from boulder_console.api.envelope import Envelope, failure, is_success, success
from boulder_console.net.http import HttpCallError, Method, RequestDescriptor
from boulder_console.net.session import AUTH_STATUS_PATH, SessionManager

__all__ = ["AuthAPI", "password_digest"]

log = logger.bind(module="api.auth")

LOGIN_FAILED: Final[str] = "Login failed"


def password_digest(username: str, password: str) -> str:
    """Return the hex digest the server expects in place of the password."""
    raw = f"{password}:{username}".encode("utf-8")
    return hashlib.md5(raw).hexdigest()


class AuthAPI:
    def __init__(self, calls: ApiCalls, session: SessionManager) -> None:
        self.calls = calls
        self.session = session
        self._login = calls.post("/login", LOGIN_FAILED)

    async def login(self, username: str, password: str) -> Envelope:
        """Log in and let the server set the session cookie.

        A reply with ``code != 0`` is reported as a failure even when the HTTP
        status is 2xx.
        """
        username = (username or "").strip()
        reply = await self._login({"username": username, "password": password_digest(username, password)})
        if not isinstance(reply, Mapping):
            return failure(LOGIN_FAILED)
        message = str(reply.get("msg") or reply.get("message") or "")
        if is_success(reply):
            log.info("Logged in as {}", username)
            return success(message)
        return failure(message or LOGIN_FAILED)

    async def logout(self) -> None:
        await self.session.logout()

    async def check_auth_status(self) -> bool:
        """Return True when the server still accepts the session cookie.

        A 401 here is an answer, not an expiry: it neither logs out nor navigates.
        """
        try:
            await self.calls.transport.send(RequestDescriptor(AUTH_STATUS_PATH, Method.GET))
        except HttpCallError as exc:
            log.debug("Auth status check failed: {}", exc)
            return False
        return True
