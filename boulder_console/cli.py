"""Command-line entry point for the console API client.

Usage:

    boulder-console --username admin buckets
    boulder-console --username admin ls my-bucket --prefix logs/
    boulder-console --username admin get my-bucket logs/app.log --dir ./out

The password is read from ``--password`` or ``CONSOLE_PASSWORD``. Each run logs
in first when a username is available, then performs one command.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Sequence

from loguru import logger
from rich.console import Console
from rich.table import Table

from boulder_console.api.download import DirectorySink, DownloadOutcome
from boulder_console.api.envelope import Envelope, is_success
from boulder_console.client import ConsoleClient
from boulder_console.config import Settings, get_settings
from boulder_console.context import ClientContext
from boulder_console.net.session import LOGIN_PATH, InMemoryNavigator

console = Console()
log = logger.bind(module="cli")

DASHBOARD_PATH = "/dashboard"

Command = Callable[[ConsoleClient, argparse.Namespace], Awaitable[int]]


class _LoguruInterceptHandler(logging.Handler):
    """Bridge standard-library logging records (httpx) into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - thin wrapper
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        logger.opt(exception=record.exc_info).log(level, record.getMessage())


def _configure_logging(settings: Settings, *, verbose: bool) -> None:
    level = "DEBUG" if verbose else (settings.log_level or "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=level, backtrace=False, diagnose=False)

    root = logging.getLogger()
    root.handlers = [_LoguruInterceptHandler()]
    # httpx logs every request at INFO; only surface that when asked to.
    root.setLevel("DEBUG" if verbose else "WARNING")


def _failed(envelope: Any) -> bool:
    if is_success(envelope):
        return False
    message = None
    if isinstance(envelope, dict):
        message = envelope.get("message") or envelope.get("msg")
    console.print(f"[bold red]Error:[/] {message or 'request failed'}")
    return True


def _data(envelope: Envelope) -> Any:
    return envelope.get("data") if isinstance(envelope, dict) else None


def _render_rows(
    title: str,
    rows: Sequence[dict[str, Any]],
    columns: Sequence[tuple[str, Callable[[dict[str, Any]], Any]]],
) -> None:
    table = Table(title=title, show_lines=False)
    for header, _getter in columns:
        table.add_column(header)
    for row in rows:
        cells = [getter(row) for _header, getter in columns]
        table.add_row(*("" if value is None else str(value) for value in cells))
    console.print(table)


def _object_name(row: dict[str, Any]) -> str:
    name = str(row.get("name") or "")
    if row.get("isFolder") and not name.endswith("/"):
        return f"{name}/"
    return name


def _join(values: Any) -> str:
    if not values:
        return ""
    return ", ".join(str(value) for value in values)


async def cmd_status(client: ConsoleClient, args: argparse.Namespace) -> int:
    if await client.check_auth_status():
        console.print("[bold green]Session is valid[/]")
        return 0
    console.print("[bold yellow]Not logged in[/]")
    return 1


async def cmd_stats(client: ConsoleClient, args: argparse.Namespace) -> int:
    envelope = await client.api.get_stats()
    if _failed(envelope):
        return 1
    console.print_json(data=_data(envelope) or {}, default=str)
    return 0


async def cmd_buckets(client: ConsoleClient, args: argparse.Namespace) -> int:
    envelope = await client.api.list_buckets()
    if _failed(envelope):
        return 1
    _render_rows(
        "Buckets",
        _data(envelope) or [],
        [
            ("Name", lambda row: (row.get("base") or {}).get("name")),
            ("Location", lambda row: (row.get("base") or {}).get("location")),
            ("Created", lambda row: (row.get("base") or {}).get("creationDate")),
        ],
    )
    return 0


async def cmd_make_bucket(client: ConsoleClient, args: argparse.Namespace) -> int:
    envelope = await client.api.create_bucket({"name": args.name, "region": args.region})
    if _failed(envelope):
        return 1
    console.print(f"[bold green]Created bucket[/] {args.name}")
    return 0


async def cmd_remove_bucket(client: ConsoleClient, args: argparse.Namespace) -> int:
    envelope = await client.api.delete_bucket({"name": args.name})
    if _failed(envelope):
        return 1
    console.print(f"[bold green]Deleted bucket[/] {args.name}")
    return 0


async def cmd_list_objects(client: ConsoleClient, args: argparse.Namespace) -> int:
    envelope = await client.api.list_objects(
        {"bucket": args.bucket, "prefix": args.prefix, "marker": args.marker},
    )
    if _failed(envelope):
        return 1
    listing = _data(envelope) or {}
    _render_rows(
        f"{args.bucket}/{args.prefix or ''}",
        listing.get("objects") or [],
        [
            ("Name", _object_name),
            ("Size", lambda row: row.get("size")),
            ("Modified", lambda row: row.get("lastModify")),
            ("ETag", lambda row: row.get("etag")),
        ],
    )
    if listing.get("nextMarker"):
        console.print(f"More results: --marker {listing['nextMarker']}")
    return 0


async def cmd_make_folder(client: ConsoleClient, args: argparse.Namespace) -> int:
    envelope = await client.api.create_folder({"bucket": args.bucket, "folder": args.folder})
    if _failed(envelope):
        return 1
    console.print(f"[bold green]Created folder[/] {args.bucket}/{args.folder}")
    return 0


async def cmd_put_object(client: ConsoleClient, args: argparse.Namespace) -> int:
    source = Path(args.file).expanduser()
    key = args.key or source.name
    content_type = args.content_type or mimetypes.guess_type(source.name)[0] or "application/octet-stream"
    with source.open("rb") as handle:
        envelope = await client.api.put_object(
            {
                "bucket": args.bucket,
                "object": key,
                "contentType": content_type,
                "file": (source.name, handle, content_type),
            }
        )
    if _failed(envelope):
        return 1
    console.print(f"[bold green]Uploaded[/] {source} -> {args.bucket}/{key}")
    return 0


async def cmd_remove_objects(client: ConsoleClient, args: argparse.Namespace) -> int:
    envelope = await client.api.delete_objects({"bucket": args.bucket, "keys": list(args.keys)})
    if _failed(envelope):
        return 1
    console.print(f"[bold green]Deleted[/] {len(args.keys)} key(s) from {args.bucket}")
    return 0


async def cmd_get_objects(client: ConsoleClient, args: argparse.Namespace) -> int:
    params: dict[str, Any] = {"bucket": args.bucket, "files": list(args.keys)}
    if args.name:
        params["filename"] = args.name
    envelope = await client.api.get_object(params)
    if _failed(envelope):
        return 1
    outcome = _data(envelope)
    if isinstance(outcome, DownloadOutcome):
        console.print(f"[bold green]Saved[/] {outcome.path} ({outcome.content_type or 'unknown type'})")
    return 0


async def cmd_users(client: ConsoleClient, args: argparse.Namespace) -> int:
    envelope = await client.api.list_users()
    if _failed(envelope):
        return 1
    _render_rows(
        "Users",
        _data(envelope) or [],
        [
            ("Username", lambda row: row.get("username")),
            ("Groups", lambda row: _join(row.get("group"))),
            ("Roles", lambda row: _join(row.get("role"))),
            ("Enabled", lambda row: row.get("enabled")),
        ],
    )
    return 0


async def cmd_policies(client: ConsoleClient, args: argparse.Namespace) -> int:
    envelope = await client.api.list_policies()
    if _failed(envelope):
        return 1
    console.print_json(data=_data(envelope) or [], default=str)
    return 0


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="boulder-console",
        description="Manage an object-storage service through its admin console API.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--origin", default=None, help="Console origin (overrides CONSOLE_ORIGIN).")
    parser.add_argument("--username", default=None, help="Login name (overrides CONSOLE_USERNAME).")
    parser.add_argument("--password", default=None, help="Password (overrides CONSOLE_PASSWORD).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every HTTP request.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Check whether the session is valid.").set_defaults(handler=cmd_status)
    sub.add_parser("stats", help="Show storage statistics.").set_defaults(handler=cmd_stats)
    sub.add_parser("buckets", help="List buckets.").set_defaults(handler=cmd_buckets)

    mb = sub.add_parser("mb", help="Create a bucket.")
    mb.add_argument("name")
    mb.add_argument("--region", default="us-east-1")
    mb.set_defaults(handler=cmd_make_bucket)

    rb = sub.add_parser("rb", help="Delete an empty bucket.")
    rb.add_argument("name")
    rb.set_defaults(handler=cmd_remove_bucket)

    ls = sub.add_parser("ls", help="List objects in a bucket.")
    ls.add_argument("bucket")
    ls.add_argument("--prefix", default=None)
    ls.add_argument("--marker", default=None)
    ls.set_defaults(handler=cmd_list_objects)

    mkdir = sub.add_parser("mkdir", help="Create a folder in a bucket.")
    mkdir.add_argument("bucket")
    mkdir.add_argument("folder")
    mkdir.set_defaults(handler=cmd_make_folder)

    put = sub.add_parser("put", help="Upload a local file.")
    put.add_argument("bucket")
    put.add_argument("file")
    put.add_argument("--key", default=None, help="Object key (defaults to the file name).")
    put.add_argument("--content-type", default=None)
    put.set_defaults(handler=cmd_put_object)

    rm = sub.add_parser("rm", help="Delete objects; keys ending in '/' delete folders.")
    rm.add_argument("bucket")
    rm.add_argument("keys", nargs="+")
    rm.set_defaults(handler=cmd_remove_objects)

    get = sub.add_parser("get", help="Download objects; several keys arrive as a zip.")
    get.add_argument("bucket")
    get.add_argument("keys", nargs="+")
    get.add_argument("--name", default=None, help="File name to save as when the server sends none.")
    get.add_argument("--dir", default=None, help="Target directory (overrides CONSOLE_DOWNLOAD_DIR).")
    get.set_defaults(handler=cmd_get_objects)

    sub.add_parser("users", help="List IAM users.").set_defaults(handler=cmd_users)
    sub.add_parser("policies", help="List IAM policies.").set_defaults(handler=cmd_policies)
    return parser


async def run(args: argparse.Namespace, settings: Settings, *, context: ClientContext | None = None) -> int:
    """Log in when credentials are available, then run the selected command."""
    username = args.username or settings.username
    password = args.password if args.password is not None else settings.password

    if context is None:
        download_dir = getattr(args, "dir", None)
        context = ClientContext.from_settings(
            settings,
            navigator=InMemoryNavigator(LOGIN_PATH if username else DASHBOARD_PATH),
            sink=DirectorySink(download_dir) if download_dir else None,
        )
    navigator = context.navigator
    handler: Command = args.handler

    async with ConsoleClient(context) as client:
        if username:
            result = await client.login(username, password or "")
            if _failed(result):
                return 1
            navigator.navigate(DASHBOARD_PATH)

        code = await handler(client, args)

    if navigator.current_path() == LOGIN_PATH:
        console.print("[bold yellow]Session expired or not logged in;[/] pass --username to log in.")
        return code or 1
    return code


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(list(argv) if argv is not None else None)

    settings = get_settings()
    if args.origin:
        settings = settings.model_copy(update={"origin": args.origin})
    _configure_logging(settings, verbose=args.verbose)
    log.debug("Running {} against {}", args.command, settings.api_base_url)

    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        console.log("[yellow]Keyboard interrupt received[/]; aborting.")
        return 130


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
