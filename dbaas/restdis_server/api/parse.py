"""
Command parsing for REST requests.

A REST request carries a Redis command in one of three shapes:
- Root path: the body is a JSON array, ["SET", "k", "v"]
- /pipeline: the body is a JSON array of arrays, one per command
- Any other path: /<cmd>/<arg>/..., then the raw body as one argument,
  then each query pair key=value as two arguments

All functions here are pure, they never touch a connection.

Invariants:
    - Error messages are part of the REST contract, clients match on them
    - Path arguments keep their order: path, then body, then query
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import unquote

from ..backend.base import normalize_arg

PIPELINE_PATH = "/pipeline"

# Query parameter carrying the API token, never a command argument
TOKEN_PARAM = "_token"

ERR_PARSE_COMMAND = "ERR failed to parse command"
ERR_EMPTY_COMMAND = "ERR empty command"
ERR_PARSE_PIPELINE = "ERR failed to parse pipeline request"
ERR_EMPTY_PIPELINE = "ERR empty pipeline request"
ERR_EMPTY_PIPELINE_COMMAND = "ERR empty pipeline command"


class CommandParseError(Exception):
    """The request does not hold a valid command."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def normalize_path(path: str) -> str:
    """Drop a single trailing slash, so that "/" becomes the root ""."""
    return path.removesuffix("/")


def command_name(value: Any) -> str:
    """Return the textual form of the first element of a command array."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(normalize_arg(value))
    return json.dumps(value, separators=(",", ":"))


def parse_single(body: bytes) -> tuple[str, list[Any]]:
    """Parse a root path body into a command name and its arguments.

    Raises:
        CommandParseError: If the body is not a non-empty JSON array
    """
    try:
        args = json.loads(body)
    except ValueError:
        raise CommandParseError(ERR_PARSE_COMMAND)
    if args is None:
        args = []
    if not isinstance(args, list):
        raise CommandParseError(ERR_PARSE_COMMAND)
    if not args:
        raise CommandParseError(ERR_EMPTY_COMMAND)
    return command_name(args[0]), args[1:]


def parse_pipeline(body: bytes) -> list[list[Any]]:
    """Parse a /pipeline body into its commands.

    An inner null is returned as an empty command; the caller replies to
    it with an error without aborting the pipeline.

    Raises:
        CommandParseError: If the body is not a non-empty array of arrays
    """
    try:
        cmds = json.loads(body)
    except ValueError:
        raise CommandParseError(ERR_PARSE_PIPELINE)
    if cmds is None:
        cmds = []
    if not isinstance(cmds, list) or not all(c is None or isinstance(c, list) for c in cmds):
        raise CommandParseError(ERR_PARSE_PIPELINE)
    if not cmds:
        raise CommandParseError(ERR_EMPTY_PIPELINE)
    return [c or [] for c in cmds]


def query_args(query: str) -> list[str]:
    """Split a raw query string into command arguments.

    Each key=value pair gives two arguments, a bare key one. Keys and
    values are percent-decoded; the _token pair and empty pairs are left
    out.

    Example:
        >>> query_args("EX=10&NX&_token=abc")
        ['EX', '10', 'NX']
    """
    args: list[str] = []
    for part in query.split("&"):
        if not part:
            continue
        kv = [unquote(p) for p in part.split("=", 1)]
        if kv[0] == TOKEN_PARAM:
            continue
        args.extend(kv)
    return args


def parse_path_command(path: str, body: bytes, query: str) -> tuple[str, list[str]]:
    """Assemble a command from the path, the body and the query string.

    Args:
        path: Decoded request path, e.g. "/set/a"
        body: Raw request body, appended as a single argument if present
        query: Raw query string, without the leading "?"

    Returns:
        Command name and arguments

    Example:
        >>> parse_path_command("/set/a", b"", "EX=10")
        ('set', ['a', 'EX', '10'])
    """
    segments = normalize_path(path).split("/")[1:]
    if body:
        segments.append(body.decode("utf-8", errors="replace"))
    segments.extend(query_args(query))
    return segments[0], segments[1:]
