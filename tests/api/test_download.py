from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from pathlib import Path

import httpx
import pytest

from boulder_console.api.download import (
    DEFAULT_FILENAME,
    DirectorySink,
    DownloadOutcome,
    Downloader,
    filename_from_disposition,
    resolve_filename,
    sanitize_filename,
    _reserve_path,
)
from boulder_console.net.http import Transport


def _file_response(request: httpx.Request, disposition: str | None = None) -> httpx.Response:
    headers = {"Content-Type": "application/octet-stream"}
    if disposition is not None:
        headers["Content-Disposition"] = disposition
    return httpx.Response(200, content=b"col1,col2\n1,2\n", headers=headers, request=request)


async def test_json_reply_is_reported_as_failure_with_server_message(make_client, tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 500, "msg": "quota exceeded"}, request=request)

    async with make_client(handler) as client:
        envelope = await client.api.get_object({"bucket": "b", "files": ["a.csv"]})

    assert envelope == {"success": False, "message": "quota exceeded"}
    assert not (tmp_path / "downloads").exists()


async def test_text_reply_that_is_not_json_uses_fallback(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="internal error", request=request)

    async with make_client(handler) as client:
        envelope = await client.api.get_object({"bucket": "b", "files": ["a.csv"]})

    assert envelope == {"success": False, "message": "Failed to download file"}


async def test_binary_reply_is_saved_under_header_filename(make_client, tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/api/bucket/getobject"
        assert json.loads(request.content) == {"bucket": "b", "files": ["report.csv"], "filename": "ignored.csv"}
        return _file_response(request, 'attachment; filename="report.csv"')

    async with make_client(handler) as client:
        envelope = await client.api.get_object(
            {"bucket": "b", "files": ["report.csv"], "filename": "ignored.csv"}
        )

    assert envelope["success"] is True
    assert envelope["message"] == "Download started"
    outcome = envelope["data"]
    assert isinstance(outcome, DownloadOutcome)
    assert outcome.filename == "report.csv"
    assert outcome.content_type == "application/octet-stream"
    assert outcome.path == tmp_path / "downloads" / "report.csv"
    assert outcome.path.read_bytes() == b"col1,col2\n1,2\n"


async def test_requested_filename_is_sanitized(make_client, tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return _file_response(request)

    async with make_client(handler) as client:
        envelope = await client.api.get_object({"bucket": "b", "files": ["x"], "filename": "a/b:c.txt"})

    assert envelope["data"].filename == "a_b_c.txt"
    assert (tmp_path / "downloads" / "a_b_c.txt").exists()


async def test_default_filename_when_nothing_is_known(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return _file_response(request, "attachment")

    async with make_client(handler) as client:
        envelope = await client.api.get_object({"bucket": "b", "files": ["album/"]})

    assert envelope["data"].filename == DEFAULT_FILENAME


async def test_existing_files_are_not_overwritten(make_client, tmp_path: Path) -> None:
    downloads = tmp_path / "downloads"
    downloads.mkdir()
    (downloads / "report.csv").write_text("old")

    def handler(request: httpx.Request) -> httpx.Response:
        return _file_response(request, "attachment; filename=report.csv")

    async with make_client(handler) as client:
        envelope = await client.api.get_object({"bucket": "b", "files": ["report.csv"]})

    assert envelope["data"].filename == "report (1).csv"
    assert (downloads / "report.csv").read_text() == "old"
    assert not list(downloads.glob("*.part"))


async def test_error_status_uses_server_message(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"code": 404, "msg": "NoSuchKey"}, request=request)

    async with make_client(handler) as client:
        envelope = await client.api.get_object({"bucket": "b", "files": ["gone.txt"]})

    assert envelope == {"success": False, "message": "NoSuchKey"}


async def test_network_failure_uses_fallback(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with make_client(handler) as client:
        envelope = await client.api.get_object({"bucket": "b", "files": ["a"]})

    assert envelope == {"success": False, "message": "Failed to download file"}


async def test_sink_failure_is_reported_as_failure() -> None:
    class BrokenSink:
        async def save(self, filename: str, content_type: str, chunks: AsyncIterator[bytes]) -> Path:
            raise OSError("disk full")

    def handler(request: httpx.Request) -> httpx.Response:
        return _file_response(request, 'attachment; filename="a.bin"')

    transport = Transport(base_url="http://example.local/api", transport=httpx.MockTransport(handler))
    async with transport:
        download = Downloader(transport, BrokenSink()).operation("/bucket/getobject", "")
        envelope = await download({"bucket": "b", "files": ["a.bin"]})

    assert envelope == {"success": False, "message": "Download failed"}


async def test_directory_sink_removes_partial_file_on_error(tmp_path: Path) -> None:
    async def chunks() -> AsyncIterator[bytes]:
        yield b"partial"
        raise ConnectionResetError("stream cut")

    sink = DirectorySink(tmp_path)
    with pytest.raises(ConnectionResetError):
        await sink.save("a.bin", "application/octet-stream", chunks())

    assert list(tmp_path.iterdir()) == []


async def test_directory_sink_never_overwrites_a_file_created_concurrently(tmp_path: Path) -> None:
    release = asyncio.Event()

    async def chunks() -> AsyncIterator[bytes]:
        await release.wait()
        yield b"new"

    sink = DirectorySink(tmp_path)
    pending = asyncio.create_task(sink.save("report.csv", "text/csv", chunks()))
    await asyncio.sleep(0.05)
    # Another writer claims the name while the download is still streaming.
    (tmp_path / "report.csv").write_text("theirs")
    release.set()
    saved = await pending

    assert saved == tmp_path / "report (1).csv"
    assert saved.read_bytes() == b"new"
    assert (tmp_path / "report.csv").read_text() == "theirs"
    assert not list(tmp_path.glob("*.part"))


async def test_concurrent_saves_with_the_same_name_get_distinct_files(tmp_path: Path) -> None:
    async def chunks(body: bytes) -> AsyncIterator[bytes]:
        yield body

    sink = DirectorySink(tmp_path)
    paths = await asyncio.gather(
        sink.save("a.bin", "application/octet-stream", chunks(b"one")),
        sink.save("a.bin", "application/octet-stream", chunks(b"two")),
    )

    assert len(set(paths)) == 2
    assert sorted(path.read_bytes() for path in paths) == [b"one", b"two"]


def test_reserving_a_name_claims_it_on_disk(tmp_path: Path) -> None:
    first = _reserve_path(tmp_path, "a.bin")
    second = _reserve_path(tmp_path, "a.bin")

    assert first == tmp_path / "a.bin"
    assert second == tmp_path / "a (1).bin"
    assert first.read_bytes() == b""
    assert second.exists()


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ('attachment; filename="report.csv"', "report.csv"),
        ("attachment; filename=report.csv", "report.csv"),
        ("attachment; filename='quoted.txt'; size=10", "quoted.txt"),
        ("attachment; filename*=UTF-8''na%C3%AFve%20file.zip", "naïve file.zip"),
        ("attachment; filename=\"fallback.zip\"; filename*=UTF-8''real%20name.zip", "real name.zip"),
        ("attachment; filename*=UTF-8''real%20name.zip; filename=\"fallback.zip\"", "real name.zip"),
        ("inline", None),
        ("", None),
        (None, None),
    ],
)
def test_filename_from_disposition(header: str | None, expected: str | None) -> None:
    assert filename_from_disposition(header) == expected


def test_header_filename_is_sanitized_too() -> None:
    assert resolve_filename('attachment; filename="..\\evil:name.txt"', None) == ".._evil_name.txt"
    assert resolve_filename(None, "  ") == DEFAULT_FILENAME
    assert resolve_filename(None, "..") == DEFAULT_FILENAME
    assert sanitize_filename('a<b>c|d?e*f"g') == "a_b_c_d_e_f_g"
