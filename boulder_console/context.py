"""Explicit client context.

Everything a `ConsoleClient` needs from its surroundings is passed in here:
where the API lives, whether cookies travel with requests, and how to find out
and change the user's current page. Tests swap in an `InMemoryNavigator` and
an `httpx.MockTransport`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import httpx

from boulder_console.api.download import DownloadSink
from boulder_console.config import Settings
from boulder_console.net.session import InMemoryNavigator, Navigator

__all__ = ["ClientContext"]


@dataclass(frozen=True, slots=True)
class ClientContext:
    base_url: str
    navigator: Navigator = field(default_factory=InMemoryNavigator)
    include_credentials: bool = True
    timeout_seconds: float = 10.0
    logout_timeout_seconds: float = 2.0
    language: str | None = None
    download_dir: Path = Path("downloads")
    sink: DownloadSink | None = None
    transport: httpx.AsyncBaseTransport | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        navigator: Navigator | None = None,
        sink: DownloadSink | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ClientContext":
        return cls(
            base_url=settings.api_base_url,
            navigator=navigator if navigator is not None else InMemoryNavigator(),
            include_credentials=settings.include_credentials,
            timeout_seconds=settings.timeout_seconds,
            logout_timeout_seconds=settings.logout_timeout_seconds,
            language=settings.language,
            download_dir=settings.download_dir,
            sink=sink,
            transport=transport,
        )
