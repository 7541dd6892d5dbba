"""Shared async HTTP transport built on top of httpx.

This module centralizes base URL, timeout, cookie and content-type behavior for
every console API call, and maps httpx exceptions into `HttpCallError` so that
the call wrappers only ever deal with one error type.
"""

from __future__ import annotations

import enum
import json
import secrets
import weakref
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Mapping, TypedDict

import httpx
from loguru import logger

__all__ = [
    "HttpCallError",
    "Method",
    "RequestConfig",
    "RequestDescriptor",
    "ResponseHook",
    "Transport",
]

log = logger.bind(module="net.http")

_MIN_TIMEOUT_SECONDS = 0.1
_MAX_ERROR_TEXT_CHARS = 2048

ResponseHook = Callable[[httpx.Response], Awaitable[None]]


class Method(str, enum.Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    # Both travel as POST; they differ in body encoding and response handling.
    UPLOAD = "UPLOAD"
    DOWNLOAD = "DOWNLOAD"

    @property
    def http_method(self) -> str:
        if self in (Method.UPLOAD, Method.DOWNLOAD):
            return "POST"
        return self.value


class RequestConfig(TypedDict, total=False):
    """Per-call overrides accepted by every operation."""

    headers: Mapping[str, str]
    timeout: float


@dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """One backend call: where, how, and with what."""

    path: str
    method: Method = Method.GET
    payload: Any | None = None
    config: RequestConfig | None = None


class HttpCallError(RuntimeError):
    """Raised when an HTTP request fails or returns a non-success response."""

    def __init__(self, message: str, *, status_code: int | None = None, body: Any | None = None) -> None:
        super().__init__(message)
        self.message = str(message)
        self.status_code = int(status_code) if status_code is not None else None
        self.body = body

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.status_code is None:
            return self.message
        return f"{self.message} (status={self.status_code})"


def _truncate(text: str, *, limit: int) -> str:
    """Return a truncated string with an ellipsis when needed."""
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    head = text[: max(0, limit - 3)].rstrip()
    return f"{head}..."


def _safe_response_text(response: httpx.Response) -> str:
    """Best-effort extraction of response text for error messages.

    The returned value is trimmed and truncated to keep logs readable.
    """
    try:
        text = (response.text or "").strip()
    except Exception:
        try:
            text = response.content.decode("utf-8", errors="replace").strip()
        except Exception:
            text = ""
    return _truncate(text, limit=_MAX_ERROR_TEXT_CHARS)


def _safe_response_json(response: httpx.Response) -> Any | None:
    """Parse a response body as JSON, returning None when it is not JSON."""
    if not response.content:
        return None
    try:
        return json.loads(response.content.decode("utf-8", errors="replace"))
    except json.JSONDecodeError:
        return None


def _status_error(response: httpx.Response) -> HttpCallError:
    message = _safe_response_text(response) or "HTTP request failed"
    return HttpCallError(
        message,
        status_code=int(response.status_code),
        body=_safe_response_json(response),
    )


def _is_file_part(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray, tuple)) or hasattr(value, "read")


def _split_multipart(form: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split an upload form into httpx `data` fields and `files` parts."""
    data: dict[str, Any] = {}
    files: dict[str, Any] = {}
    for key, value in form.items():
        if value is None:
            continue
        if _is_file_part(value):
            files[str(key)] = value
        else:
            data[str(key)] = str(value)
    return data, files


def _empty_multipart_body(boundary: str) -> bytes:
    """Return a multipart body with no parts: only the closing delimiter."""
    return f"--{boundary}--\r\n".encode("ascii")


class Transport:
    """Async HTTP transport with fixed defaults shared by all console calls.

    Notes:
        - The underlying `httpx.AsyncClient` is created lazily on first use and
          reused afterwards, so session cookies set by the server are carried
          on every later request. Call `aclose()` (or use this object as an
          async context manager) to release it.
        - When `include_credentials=False` the `Cookie` header is removed from
          every outgoing request.
        - Response hooks run for every response before status checking, which
          is where session-expiry handling plugs in.
        - Timeouts are clamped to at least `_MIN_TIMEOUT_SECONDS`.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 10.0,
        include_credentials: bool = True,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_url = (base_url or "").strip()
        if not base_url:
            raise ValueError("base_url must be non-empty.")
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout_seconds = float(timeout_seconds)
        self.include_credentials = bool(include_credentials)
        self.transport = transport

        merged: dict[str, str] = {"Accept": "application/json"}
        merged.update(dict(headers or {}))
        self.headers = merged
        self._response_hooks: list[ResponseHook] = []
        self._client: httpx.AsyncClient | None = None
        self._finalizer: weakref.finalize | None = None

    def add_response_hook(self, hook: ResponseHook) -> None:
        """Register a coroutine called with every response (any status)."""
        self._response_hooks.append(hook)

    def _clamp_timeout(self, timeout_seconds: float | None) -> float:
        return float(
            max(
                _MIN_TIMEOUT_SECONDS,
                timeout_seconds if timeout_seconds is not None else self.timeout_seconds,
            )
        )

    def _build_client(self) -> httpx.AsyncClient:
        kwargs: dict[str, object] = {
            "base_url": self.base_url,
            "timeout": self._clamp_timeout(None),
            "follow_redirects": True,
            "headers": self.headers,
            "event_hooks": {"response": [self._run_response_hooks]},
        }
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return httpx.AsyncClient(**kwargs)  # type: ignore[arg-type]

    @property
    def client(self) -> httpx.AsyncClient:
        """Return the shared `httpx.AsyncClient`, building it on first access."""
        if self._client is None:
            self._client = self._build_client()
            # Pools are only released by aclose(); warn loudly if that never happens.
            self._finalizer = weakref.finalize(
                self,
                log.warning,
                "Transport for {} garbage collected without aclose()",
                self.base_url,
            )
        return self._client

    @property
    def cookies(self) -> httpx.Cookies:
        return self.client.cookies

    async def aclose(self) -> None:
        """Close the underlying `httpx.AsyncClient`, if one was built."""
        if self._finalizer is not None:
            self._finalizer.detach()
            self._finalizer = None
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> None:
        await self.aclose()

    async def _run_response_hooks(self, response: httpx.Response) -> None:
        for hook in self._response_hooks:
            await hook(response)

    def _build_request(self, descriptor: RequestDescriptor) -> httpx.Request:
        target = (descriptor.path or "").strip()
        if not target:
            raise ValueError("descriptor.path must be non-empty.")
        # Relative to base_url; a leading slash would be resolved by httpx anyway.
        target = target.lstrip("/")

        config: Mapping[str, Any] = descriptor.config or {}
        caller_headers = dict(config.get("headers") or {})
        timeout = self._clamp_timeout(config.get("timeout"))
        method = descriptor.method
        client = self.client

        if method in (Method.GET, Method.DELETE):
            request = client.build_request(
                method.http_method,
                target,
                params=dict(descriptor.payload) if descriptor.payload else None,
                headers=caller_headers or None,
                timeout=timeout,
            )
        elif method is Method.UPLOAD:
            data, files = _split_multipart(descriptor.payload or {})
            if not files:
                # httpx only switches to multipart encoding when file parts exist.
                files = {key: (None, value) for key, value in data.items()}
                data = {}
            if files:
                request = client.build_request(
                    method.http_method,
                    target,
                    data=data or None,
                    files=files,
                    timeout=timeout,
                )
            else:
                boundary = secrets.token_hex(16)
                request = client.build_request(
                    method.http_method,
                    target,
                    content=_empty_multipart_body(boundary),
                    headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
                    timeout=timeout,
                )
            # The multipart encoder owns Content-Type so the boundary stays intact.
            request.headers.update(
                {key: value for key, value in caller_headers.items() if key.lower() != "content-type"}
            )
        else:
            request = client.build_request(
                method.http_method,
                target,
                json=descriptor.payload,
                headers=caller_headers or None,
                timeout=timeout,
            )

        if not self.include_credentials:
            request.headers.pop("Cookie", None)
        return request

    async def send(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Send a request and return the fully read response.

        Raises:
            HttpCallError: When the request fails or returns a 4xx/5xx response.
        """
        request = self._build_request(descriptor)
        try:
            response = await self.client.send(request)
        except httpx.RequestError as exc:
            raise HttpCallError(f"HTTP request failed: {exc}") from exc
        if response.is_error:
            raise _status_error(response)
        return response

    @asynccontextmanager
    async def stream(self, descriptor: RequestDescriptor) -> AsyncIterator[httpx.Response]:
        """Send a request and yield the response with its body still unread.

        Error responses are read eagerly and raised as `HttpCallError`.
        """
        request = self._build_request(descriptor)
        try:
            response = await self.client.send(request, stream=True)
        except httpx.RequestError as exc:
            raise HttpCallError(f"HTTP request failed: {exc}") from exc
        try:
            if response.is_error:
                await response.aread()
                raise _status_error(response)
            yield response
        finally:
            await response.aclose()
