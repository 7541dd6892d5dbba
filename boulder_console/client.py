"""Async client for the object-storage admin console API.

`ConsoleClient` wires the shared transport, the session-expiry hook and the
endpoint table together. Every endpoint operation resolves to an envelope::

    async with ConsoleClient(ClientContext("http://127.0.0.1:9001/api")) as client:
        await client.login("admin", "secret")
        buckets = await client.api.list_buckets()
"""

from __future__ import annotations

from boulder_console.api.admin import ConsoleAPI
from boulder_console.api.auth import AuthAPI
from boulder_console.api.calls import ApiCalls
from boulder_console.api.download import DirectorySink
from boulder_console.api.envelope import Envelope
from boulder_console.context import ClientContext
from boulder_console.net.http import Transport
from boulder_console.net.session import Navigator, SessionManager

__all__ = ["ConsoleClient"]


class ConsoleClient:
    """Envelope-returning client for the console API."""

    def __init__(self, context: ClientContext) -> None:
        self.context = context
        headers = {"Accept-Language": context.language} if context.language else None
        self.transport = Transport(
            base_url=context.base_url,
            timeout_seconds=context.timeout_seconds,
            include_credentials=context.include_credentials,
            headers=headers,
            transport=context.transport,
        )
        self.session = SessionManager(
            self.transport,
            context.navigator,
            logout_timeout_seconds=context.logout_timeout_seconds,
        ).install()
        sink = context.sink if context.sink is not None else DirectorySink(context.download_dir)
        self.calls = ApiCalls(self.transport, sink=sink)
        self.auth = AuthAPI(self.calls, self.session)
        self.api = ConsoleAPI(self.calls)

    @property
    def navigator(self) -> Navigator:
        return self.context.navigator

    async def login(self, username: str, password: str) -> Envelope:
        return await self.auth.login(username, password)

    async def logout(self) -> None:
        await self.auth.logout()

    async def check_auth_status(self) -> bool:
        return await self.auth.check_auth_status()

    async def aclose(self) -> None:
        """Close any underlying HTTP resources."""
        await self.transport.aclose()

    async def __aenter__(self) -> "ConsoleClient":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> None:
        await self.aclose()
