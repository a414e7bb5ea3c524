"""
REST API for the restdis server.

This module provides the external interface:
- Command parsing for the path, body and query string shapes
- The dispatcher running commands and pipelines on a backing connection
- ACL RESTTOKEN token issuance and authentication
- The FastAPI application

Invariants:
    - Every request authenticates with the admin token or an issued token
    - One backing connection per request, closed when the request ends

How to change safely:
    - Keep error texts and status codes compatible with the Upstash REST API
    - Add parsing rules to parse.py, keep them pure
"""

from .dispatcher import BodyReadError, Dispatcher, RestReply, RestRequest
from .http_server import create_app
from .parse import CommandParseError, parse_path_command, parse_pipeline, parse_single
from .tokens import Credential, TokenStore

__all__ = [
    "Dispatcher",
    "RestRequest",
    "RestReply",
    "BodyReadError",
    "create_app",
    "CommandParseError",
    "parse_single",
    "parse_pipeline",
    "parse_path_command",
    "Credential",
    "TokenStore",
]
