"""Verb wrappers that turn backend calls into envelopes.

Each factory binds one HTTP verb and one backend path to a fallback failure
message and returns an async operation::

    list_buckets = calls.get("/bucket/list", "Error listing buckets")
    envelope = await list_buckets()

Operations never raise for transport or HTTP failures; those come back as
``{"success": False, "message": ...}``.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

import httpx
from loguru import logger

from boulder_console.api.download import Downloader, DownloadSink
from boulder_console.api.envelope import Envelope, Operation, failure, resolve_message, success
from boulder_console.net.http import HttpCallError, Method, RequestConfig, RequestDescriptor, Transport

__all__ = ["ApiCalls", "query_params"]

log = logger.bind(module="api.calls")


def query_params(params: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Drop None entries; return None when nothing is left to encode."""
    if not params:
        return None
    cleaned = {str(key): value for key, value in params.items() if value is not None}
    return cleaned or None


def _require_path(path: str) -> None:
    if not (path or "").strip():
        raise ValueError("Operation path must be non-empty.")


def _passthrough(response: httpx.Response) -> Any:
    """Return a 2xx JSON body unmodified; wrap empty or non-JSON bodies."""
    if not response.content:
        return success()
    text = response.content.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return success(data=text)


class ApiCalls:
    """Factories for envelope-returning operations over a shared transport."""

    def __init__(self, transport: Transport, sink: DownloadSink | None = None) -> None:
        self.transport = transport
        self.sink = sink

    async def call(self, descriptor: RequestDescriptor, fallback: str) -> Envelope:
        """Perform one call and normalize its outcome into an envelope."""
        try:
            response = await self.transport.send(descriptor)
        except HttpCallError as exc:
            message = resolve_message(exc.body, fallback)
            log.warning(
                "{} {} failed (status={}): {}",
                descriptor.method.value,
                descriptor.path,
                exc.status_code,
                message,
            )
            return failure(message)
        except Exception as exc:
            log.warning("{} {} failed unexpectedly: {!r}", descriptor.method.value, descriptor.path, exc)
            return failure(resolve_message(None, fallback))
        return _passthrough(response)

    def _query_operation(self, method: Method, path: str, fallback: str) -> Operation:
        _require_path(path)

        async def operation(
            params: Mapping[str, Any] | None = None,
            config: RequestConfig | None = None,
        ) -> Envelope:
            descriptor = RequestDescriptor(path, method, query_params(params), config)
            return await self.call(descriptor, fallback)

        return operation

    def _body_operation(self, method: Method, path: str, fallback: str) -> Operation:
        _require_path(path)

        async def operation(
            payload: Any | None = None,
            config: RequestConfig | None = None,
        ) -> Envelope:
            return await self.call(RequestDescriptor(path, method, payload, config), fallback)

        return operation

    def get(self, path: str, fallback: str) -> Operation:
        return self._query_operation(Method.GET, path, fallback)

    def delete(self, path: str, fallback: str) -> Operation:
        """DELETE with its filter encoded in the query string, like GET."""
        return self._query_operation(Method.DELETE, path, fallback)

    def post(self, path: str, fallback: str) -> Operation:
        return self._body_operation(Method.POST, path, fallback)

    def put(self, path: str, fallback: str) -> Operation:
        return self._body_operation(Method.PUT, path, fallback)

    def upload(self, path: str, fallback: str = "File upload failed") -> Operation:
        """Multipart POST; bytes, file objects and tuples become file parts."""
        return self._body_operation(Method.UPLOAD, path, fallback or "File upload failed")

    def download(self, path: str, fallback: str = "Download failed") -> Operation:
        """POST whose reply is a file, saved through the configured sink."""
        _require_path(path)
        if self.sink is None:
            raise ValueError("A download sink is required for download operations.")
        return Downloader(self.transport, self.sink).operation(path, fallback)
