"""
Error types for the restdis SDK.

This module defines all exception types raised by the client:
- RestdisError: Base exception
- EmptyCommandError / NoCommandError: Invalid command queue usage
- TooManyDestinationsError: More destinations than replies
- CommandError: A command returned an error reply
- TransportError: The HTTP round trip itself failed
- ResultDecodeError: A reply could not be decoded into its destination

Invariants:
    - All errors inherit from RestdisError
    - CommandError.pipeline_index is -1 when no single command is at fault
    - CommandError.kind is derived from the message, never set independently
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class RestdisError(Exception):
    """Base exception for all restdis SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "RESTDIS_ERROR"
        self.details = details or {}


class EmptyCommandError(RestdisError):
    """A command was queued with an empty name."""

    def __init__(self) -> None:
        super().__init__("restdis: empty command", code="EMPTY_COMMAND")


class NoCommandError(RestdisError):
    """A request was executed with nothing queued."""

    def __init__(self) -> None:
        super().__init__("restdis: no command to execute", code="NO_COMMAND")


class TooManyDestinationsError(RestdisError):
    """More destination values were supplied than replies were received."""

    def __init__(self, destinations: int, results: int) -> None:
        super().__init__(
            "restdis: too many destination values",
            code="TOO_MANY_DESTINATIONS",
            details={"destinations": destinations, "results": results},
        )


def error_kind(message: str) -> str:
    """Return the conventional error kind of a Redis error message.

    This is the first word of the message when it is all upper-case
    (e.g. ERR, WRONGTYPE, WRONGPASS), or an empty string.
    """
    parts = message.split(None, 1)
    if not parts or not parts[0].isupper():
        return ""
    return parts[0]


class CommandError(RestdisError):
    """An error reply returned by the backing store.

    Attributes:
        kind: Leading upper-case word of the message, may be empty
        pipeline_index: Index of the failing command in the transmitted
            batch, or -1 if the error is not attributable to one command
        results: Values decoded for the other positions of the batch, when
            raised from Request.exec
    """

    def __init__(
        self,
        message: str,
        pipeline_index: int = -1,
        results: Optional[List[Any]] = None,
    ) -> None:
        kind = error_kind(message)
        super().__init__(
            message,
            code="COMMAND_ERROR",
            details={"kind": kind, "pipeline_index": pipeline_index},
        )
        self.kind = kind
        self.pipeline_index = pipeline_index
        self.results = results or []


class TransportError(RestdisError):
    """The REST request failed before any command reply could be read.

    Raised when:
    - The server is unreachable
    - A non-200 status has no decodable error payload
    - A 200 response body is not a valid reply payload
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="TRANSPORT_ERROR",
            details={"status_code": status_code, "url": url},
        )
        self.status_code = status_code
        self.url = url
        self.pipeline_index = -1


class ResultDecodeError(RestdisError):
    """A successful reply does not fit the requested destination type."""

    def __init__(self, message: str, pipeline_index: int) -> None:
        super().__init__(
            message,
            code="DECODE_ERROR",
            details={"pipeline_index": pipeline_index},
        )
        self.pipeline_index = pipeline_index
