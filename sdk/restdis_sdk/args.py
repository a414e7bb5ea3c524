"""
Argument encoding for Redis commands sent over the REST API.

Arguments are converted to the token form accepted in a REST command
array: strings, or numbers kept as JSON numbers.

Invariants:
    - Encoding never raises; unknown types fall back to str()
    - A RedisArgument is expanded at most one level deep
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from .errors import EmptyCommandError

logger = logging.getLogger(__name__)

Token = str | int | float
Command = tuple[Token, ...]


@runtime_checkable
class RedisArgument(Protocol):
    """A value that knows how to encode itself as a command argument.

    Example:
        >>> class UserId:
        ...     def __init__(self, n): self.n = n
        ...     def redis_arg(self): return f"user:{self.n}"
        >>> encode_arg(UserId(7))
        'user:7'
    """

    def redis_arg(self) -> Any:
        """Return the value to encode, typically a str or bytes."""
        ...


def encode_arg(arg: Any, *, expand: bool = True) -> Token:
    """Encode a single argument value.

    Args:
        arg: Value to encode
        expand: Whether a RedisArgument may be expanded. Set to False when
            encoding the value returned by redis_arg(), so that expansion
            stops after one level.

    Returns:
        A string, int or float token
    """
    if isinstance(arg, str):
        return arg
    if isinstance(arg, (bytes, bytearray, memoryview)):
        return bytes(arg).decode("utf-8", errors="replace")
    # bool is a subclass of int, test it first
    if isinstance(arg, bool):
        return "1" if arg else "0"
    if isinstance(arg, (int, float)):
        return arg
    if arg is None:
        return ""
    if expand and isinstance(arg, RedisArgument):
        return encode_arg(arg.redis_arg(), expand=False)

    logger.debug("Encoding argument of type %s with str()", type(arg).__name__)
    return str(arg)


def encode_command(name: str, args: tuple[Any, ...] | list[Any]) -> Command:
    """Build the token tuple for a command.

    Raises:
        EmptyCommandError: If name is empty
    """
    if not name:
        raise EmptyCommandError()
    return (name, *(encode_arg(a) for a in args))
