"""File downloads over the console API.

Downloads are POST requests whose reply is either the file itself or, when the
server refuses, a small JSON/text error body sent down the same channel. The
content type tells the two apart.

Saved files are named after the ``Content-Disposition`` header when present,
then after the caller-supplied ``filename`` parameter, then `DEFAULT_FILENAME`.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import tempfile
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Mapping, Protocol
from urllib.parse import unquote_plus

from loguru import logger

from boulder_console.api.envelope import Envelope, Operation, failure, resolve_message, success
from boulder_console.net.http import HttpCallError, Method, RequestConfig, RequestDescriptor, Transport

__all__ = [
    "DEFAULT_FILENAME",
    "DirectorySink",
    "DownloadOutcome",
    "DownloadSink",
    "Downloader",
    "filename_from_disposition",
    "is_error_content_type",
    "resolve_filename",
    "sanitize_filename",
]

log = logger.bind(module="api.download")

DEFAULT_FILENAME: Final[str] = "download.zip"
DEFAULT_DOWNLOAD_FAILURE: Final[str] = "Download failed"
DOWNLOAD_STARTED: Final[str] = "Download started"

_ERROR_CONTENT_TYPES: Final[tuple[str, ...]] = ("application/json", "text/plain")
_DISPOSITION_RE = re.compile(r"filename(\*?)[^;=\n]*=((['\"]).*?\3|[^;\n]*)", re.IGNORECASE)
_UNSAFE_FILENAME_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


@dataclass(frozen=True, slots=True)
class DownloadOutcome:
    saved: bool
    filename: str
    content_type: str
    path: Path


class DownloadSink(Protocol):
    """Destination for downloaded bytes."""

    async def save(self, filename: str, content_type: str, chunks: AsyncIterator[bytes]) -> Path: ...


def sanitize_filename(name: str) -> str:
    """Replace characters that are unsafe in file names with underscores."""
    return _UNSAFE_FILENAME_RE.sub("_", name)


def filename_from_disposition(disposition: str | None) -> str | None:
    """Extract the filename token from a Content-Disposition header.

    Handles quoted and bare values as well as RFC 5987 ``filename*`` values,
    which the server uses for zip archives. When both forms are present the
    ``filename*`` value wins (RFC 6266).
    """
    if not disposition:
        return None
    matches = [m for m in _DISPOSITION_RE.finditer(disposition) if m.group(2)]
    if not matches:
        return None
    match = next((m for m in matches if m.group(1)), matches[0])
    value = match.group(2).strip()
    if match.group(1):
        # filename*=[charset'lang']percent-encoded-value
        if "''" in value:
            value = value.split("''", 1)[1]
        value = unquote_plus(value.strip("\"'"))
    value = value.replace('"', "").replace("'", "")
    return value.strip() or None


def resolve_filename(disposition: str | None, requested: Any | None) -> str:
    """Pick the header name, then the requested name, then the default."""
    candidates = (filename_from_disposition(disposition), requested)
    for candidate in candidates:
        if not candidate:
            continue
        name = sanitize_filename(str(candidate).strip())
        if name and name not in (".", ".."):
            return name
    return DEFAULT_FILENAME


def is_error_content_type(content_type: str | None) -> bool:
    lowered = (content_type or "").lower()
    return any(marker in lowered for marker in _ERROR_CONTENT_TYPES)


def _reserve_path(directory: Path, filename: str) -> Path:
    """Create an empty file under a free name and return its path.

    Exclusive creation claims the name atomically, so a file another process
    creates at the same moment is never overwritten.
    """
    stem, suffix = os.path.splitext(filename)
    counter = 0
    while True:
        name = filename if counter == 0 else f"{stem} ({counter}){suffix}"
        candidate = directory / name
        try:
            with open(candidate, "xb"):
                pass
        except FileExistsError:
            counter += 1
            continue
        return candidate


class DirectorySink:
    """Save downloads into a directory, never overwriting existing files.

    Bytes are written to a temporary ``.part`` file first and moved onto a
    reserved name once complete; the temporary file is removed if anything
    goes wrong. Disk I/O runs in worker threads.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    async def save(self, filename: str, content_type: str, chunks: AsyncIterator[bytes]) -> Path:
        await asyncio.to_thread(self.directory.mkdir, parents=True, exist_ok=True)
        fd, tmp_name = await asyncio.to_thread(
            tempfile.mkstemp, prefix=".download-", suffix=".part", dir=self.directory
        )
        tmp_path = Path(tmp_name)
        target: Path | None = None
        try:
            with os.fdopen(fd, "wb") as handle:
                async for chunk in chunks:
                    await asyncio.to_thread(handle.write, chunk)
            target = await asyncio.to_thread(_reserve_path, self.directory, filename)
            await asyncio.to_thread(os.replace, tmp_path, target)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            if target is not None:
                target.unlink(missing_ok=True)
            raise
        log.info("Saved {} ({}) to {}", filename, content_type or "unknown type", target)
        return target


class Downloader:
    """Factory for download operations bound to a transport and a sink."""

    def __init__(self, transport: Transport, sink: DownloadSink) -> None:
        self.transport = transport
        self.sink = sink

    async def fetch(
        self,
        path: str,
        fallback: str,
        params: Mapping[str, Any] | None = None,
        config: RequestConfig | None = None,
    ) -> Envelope:
        fallback = fallback or DEFAULT_DOWNLOAD_FAILURE
        params = dict(params or {})
        descriptor = RequestDescriptor(path, Method.DOWNLOAD, params, config)
        try:
            async with self.transport.stream(descriptor) as response:
                content_type = response.headers.get("content-type") or ""
                if is_error_content_type(content_type):
                    await response.aread()
                    message = fallback
                    try:
                        message = resolve_message(json.loads(response.text), fallback)
                    except ValueError:
                        pass
                    log.warning("Download {} refused by server: {}", path, message)
                    return failure(message)

                filename = resolve_filename(
                    response.headers.get("content-disposition"),
                    params.get("filename"),
                )
                saved_path = await self.sink.save(filename, content_type, response.aiter_bytes())
        except HttpCallError as exc:
            message = resolve_message(exc.body, fallback)
            log.warning("Download {} failed (status={}): {}", path, exc.status_code, message)
            return failure(message)
        except Exception as exc:
            log.warning("Download {} failed: {!r}", path, exc)
            return failure(fallback)

        outcome = DownloadOutcome(
            saved=True,
            filename=saved_path.name,
            content_type=content_type,
            path=saved_path,
        )
        return success(DOWNLOAD_STARTED, data=outcome)

    def operation(self, path: str, fallback: str) -> Operation:
        async def download(
            params: Mapping[str, Any] | None = None,
            config: RequestConfig | None = None,
        ) -> Envelope:
            return await self.fetch(path, fallback, params, config)

        return download
