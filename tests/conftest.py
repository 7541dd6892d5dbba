from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable, Generator

import httpx
import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# Keep a developer's shell from leaking into settings under test.
for _name in ("CONSOLE_ORIGIN", "CONSOLE_API_BASE_PATH", "CONSOLE_USERNAME", "CONSOLE_PASSWORD"):
    os.environ.pop(_name, None)

from boulder_console.api.download import DirectorySink  # noqa: E402
from boulder_console.client import ConsoleClient  # noqa: E402
from boulder_console.config import Settings  # noqa: E402
from boulder_console.context import ClientContext  # noqa: E402
from boulder_console.net.session import InMemoryNavigator  # noqa: E402

BASE_URL = "http://example.local/api"

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def settings() -> Generator[Settings, None, None]:
    """Return a fresh Settings instance for each test."""

    yield Settings(origin="http://example.local", api_base_path="/api", _env_file=None)


@pytest.fixture
def make_client(tmp_path: Path) -> Callable[..., ConsoleClient]:
    """Build a ConsoleClient whose HTTP traffic is served by `handler`."""

    def _make(
        handler: Handler,
        *,
        path: str = "/dashboard",
        navigator: InMemoryNavigator | None = None,
        include_credentials: bool = True,
    ) -> ConsoleClient:
        context = ClientContext(
            base_url=BASE_URL,
            navigator=navigator if navigator is not None else InMemoryNavigator(path),
            include_credentials=include_credentials,
            sink=DirectorySink(tmp_path / "downloads"),
            transport=httpx.MockTransport(handler),
        )
        return ConsoleClient(context)

    return _make
