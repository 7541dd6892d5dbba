"""Result envelope helpers.

Every console operation resolves to a mapping shaped like
``{"success": bool, "message": str, "data": ...}``. Successful backend replies
are passed through as-is (the backend emits ``{"code", "msg", "data"}``), so
`is_success` understands both spellings.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Mapping

__all__ = [
    "DEFAULT_FAILURE_MESSAGE",
    "Envelope",
    "Operation",
    "failure",
    "is_success",
    "resolve_message",
    "success",
]

Envelope = dict[str, Any]
Operation = Callable[..., Awaitable[Envelope]]

DEFAULT_FAILURE_MESSAGE = "Request failed"


def resolve_message(body: Any, fallback: str) -> str:
    """Pick the backend `msg`, then `message`, then the fallback text."""
    if isinstance(body, Mapping):
        for key in ("msg", "message"):
            value = body.get(key)
            if value:
                return str(value)
    return fallback or DEFAULT_FAILURE_MESSAGE


def failure(message: str) -> Envelope:
    return {"success": False, "message": message}


def success(message: str = "", data: Any | None = None) -> Envelope:
    envelope: Envelope = {"success": True, "message": message}
    if data is not None:
        envelope["data"] = data
    return envelope


def is_success(envelope: Any) -> bool:
    """Return True for a successful envelope or a backend reply with code 0."""
    if not isinstance(envelope, Mapping):
        return False
    if "success" in envelope:
        return bool(envelope["success"])
    return envelope.get("code") == 0
