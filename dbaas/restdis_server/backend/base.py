"""
Base protocol and types for backing store connections.

The REST server never talks to a store directly. It asks a connection
factory for a Connection per request, runs commands on it, and closes it
when the request ends.

Invariants:
    - A Connection is used by one request only, never shared
    - Store error replies raise ReplyError with the store's message verbatim
    - Connectivity failures raise BackendConnectionError

How to change safely:
    - Protocol changes require updating all implementations
    - Keep error messages verbatim, clients match on their first word
"""

from __future__ import annotations

import json
from abc import abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable


class BackendError(Exception):
    """Base exception for backing store operations."""
    pass


class ReplyError(BackendError):
    """The store answered a command with an error reply."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BackendConnectionError(BackendError):
    """The store could not be reached or the connection broke."""
    pass


@runtime_checkable
class Connection(Protocol):
    """Protocol for a connection to a backing store.

    Example:
        >>> conn = await factory()
        >>> try:
        ...     await conn.execute("SET", "k", "v")
        ... finally:
        ...     await conn.close()
    """

    @abstractmethod
    async def execute(self, command: str, *args: Any) -> Any:
        """Run a command and return its reply.

        Raises:
            ReplyError: If the store returned an error reply
            BackendConnectionError: If the connection failed
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""
        ...


ConnectionFactory = Callable[[], Awaitable[Connection]]


def normalize_arg(value: Any) -> str | int | float:
    """Coerce a JSON-decoded argument to a value a store accepts.

    Strings and numbers pass through, except integral floats which become
    their integer text (JSON 1.0 is the argument "1"). Booleans become
    "1"/"0", null becomes "", arrays and objects their compact JSON text.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return value
    if value is None:
        return ""
    if isinstance(value, (list, dict)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)
