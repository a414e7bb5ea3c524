"""
restdis Python SDK - Client library for the Redis REST API.

This SDK speaks the Upstash-compatible Redis REST protocol:
- RestClient for the HTTP configuration
- Request to queue commands and run them singly or as a pipeline
- Typed errors carrying the error kind and pipeline position

Example:
    >>> from sdk.restdis_sdk import RestClient
    >>>
    >>> async with RestClient("http://localhost:8080", "token") as client:
    ...     req = client.new_request()
    ...     req.send("SET", "counter", 1)
    ...     req.send("INCR", "counter")
    ...     req.send("GET", "counter")
    ...     _, incr, value = await req.exec(None, int, str)

Invariants:
    - Pipelines are not atomic
    - Replies are positionally aligned with the queued commands

Version: 1.0.0
"""

__version__ = "1.0.0"

from .args import RedisArgument, encode_arg
from .client import Request, RestClient
from .config import ClientSettings
from .errors import (
    CommandError,
    EmptyCommandError,
    NoCommandError,
    RestdisError,
    ResultDecodeError,
    TooManyDestinationsError,
    TransportError,
)
from .result import Result

__all__ = [
    # Version
    "__version__",
    # Client
    "RestClient",
    "Request",
    "ClientSettings",
    # Arguments and replies
    "RedisArgument",
    "encode_arg",
    "Result",
    # Errors
    "RestdisError",
    "CommandError",
    "EmptyCommandError",
    "NoCommandError",
    "TooManyDestinationsError",
    "TransportError",
    "ResultDecodeError",
]
