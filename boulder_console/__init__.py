"""Async client for the object-storage admin console API."""

from boulder_console.api.envelope import is_success
from boulder_console.client import ConsoleClient
from boulder_console.context import ClientContext
from boulder_console.net.session import InMemoryNavigator

__all__ = ["ClientContext", "ConsoleClient", "InMemoryNavigator", "is_success"]

__version__ = "0.1.0"
