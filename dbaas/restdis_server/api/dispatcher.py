"""
REST command dispatcher.

Turns one REST request into Redis commands run on a backing connection,
and the replies into the REST payload and status code. It is independent
of the web framework; http_server.py adapts it to FastAPI.

Request flow:
    1. Authenticate the token (401)
    2. Reject methods other than GET and POST (405, empty body)
    3. Read the whole body (500 on failure)
    4. Acquire a connection, closed when the request ends
    5. AUTH as the token's user if it was issued by ACL RESTTOKEN
    6. Parse and run the command or pipeline

Invariants:
    - Validation and authorization errors never reach the store
    - Pipeline commands run in order, a failure never stops the others
    - A pipeline replies 200 even if every command failed
    - ACL RESTTOKEN is handled here, never forwarded as is

How to change safely:
    - Error texts and status codes are part of the REST contract
    - Keep the token store lock out of any store round trip
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote

from sdk.restdis_sdk.result import Result

from ..backend.base import BackendConnectionError, Connection, ConnectionFactory, ReplyError
from .parse import (
    ERR_EMPTY_PIPELINE_COMMAND,
    PIPELINE_PATH,
    TOKEN_PARAM,
    CommandParseError,
    command_name,
    normalize_path,
    parse_path_command,
    parse_pipeline,
    parse_single,
)
from .tokens import Credential, TokenStore

logger = logging.getLogger(__name__)

ALLOWED_METHODS = frozenset({"GET", "POST"})

ERR_UNAUTHORIZED = "Unauthorized"
ERR_RESTTOKEN_SYNTAX = "ERR invalid syntax. Usage: ACL RESTTOKEN username password"

HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_METHOD_NOT_ALLOWED = 405
HTTP_INTERNAL_ERROR = 500


class BodyReadError(Exception):
    """The request body could not be read."""
    pass


@dataclass
class RestRequest:
    """An inbound REST request.

    Attributes:
        method: HTTP method
        path: Percent-decoded URL path
        query: Raw query string, without the leading "?"
        headers: Request headers (case-insensitive mapping)
        read_body: Coroutine function returning the full body, raising
            BodyReadError on failure
    """

    method: str
    path: str
    query: str
    headers: Mapping[str, str]
    read_body: Callable[[], Awaitable[bytes]]

    def token(self) -> str:
        """Return the API token, from the _token parameter or the header."""
        for part in self.query.split("&"):
            key, _, value = part.partition("=")
            if key == TOKEN_PARAM and value:
                return unquote(value)
        return self.headers.get("authorization", "").removeprefix("Bearer ")


@dataclass
class RestReply:
    """Status code and JSON payload of a REST response.

    A payload of None means the response has no body.
    """

    status: int
    payload: Any = None

    @classmethod
    def from_result(cls, result: Result, status: int) -> RestReply:
        return cls(status, result.to_envelope())


class Dispatcher:
    """Executes REST requests against a backing store.

    Attributes:
        api_token: Admin token accepted for every request
        connection_factory: Coroutine function returning a new Connection
        tokens: Store of tokens issued by ACL RESTTOKEN

    Example:
        >>> dispatcher = Dispatcher("secret", MemoryStore().connect)
        >>> reply = await dispatcher.dispatch(request)
        >>> reply.status, reply.payload
        (200, {'result': 'a'})
    """

    def __init__(
        self,
        api_token: str,
        connection_factory: ConnectionFactory,
        tokens: TokenStore | None = None,
    ) -> None:
        self.api_token = api_token
        self.connection_factory = connection_factory
        self.tokens = tokens if tokens is not None else TokenStore()

    def authenticate(self, token: str) -> tuple[bool, Credential | None]:
        """Check a request token.

        Returns:
            (authorized, credential). The credential is None for the admin
            token, or the user a RESTTOKEN token was issued for.
        """
        if not token:
            return False, None
        if self.api_token and secrets.compare_digest(token.encode(), self.api_token.encode()):
            return True, None
        credential = self.tokens.lookup(token)
        return credential is not None, credential

    async def dispatch(self, request: RestRequest) -> RestReply:
        """Handle one REST request."""
        authorized, credential = self.authenticate(request.token())
        if not authorized:
            return RestReply.from_result(Result.fail(ERR_UNAUTHORIZED), HTTP_UNAUTHORIZED)

        if request.method.upper() not in ALLOWED_METHODS:
            return RestReply(HTTP_METHOD_NOT_ALLOWED)

        try:
            body = await request.read_body()
        except BodyReadError as e:
            logger.warning(f"Failed to read request body: {e}")
            return RestReply.from_result(Result.fail(str(e)), HTTP_INTERNAL_ERROR)

        try:
            conn = await self.connection_factory()
        except BackendConnectionError as e:
            logger.error(f"Backing store unavailable: {e}")
            return RestReply.from_result(Result.fail(str(e)), HTTP_INTERNAL_ERROR)

        try:
            return await self._dispatch_on(conn, request, body, credential)
        except BackendConnectionError as e:
            logger.error(f"Backing store connection failed: {e}")
            return RestReply.from_result(Result.fail(str(e)), HTTP_INTERNAL_ERROR)
        finally:
            await conn.close()

    async def _dispatch_on(
        self,
        conn: Connection,
        request: RestRequest,
        body: bytes,
        credential: Credential | None,
    ) -> RestReply:
        if credential is not None:
            result, status = await self.exec_cmd(
                conn, "AUTH", credential.username, credential.password
            )
            if status != HTTP_OK:
                return RestReply.from_result(result, status)

        path = normalize_path(request.path)
        try:
            if path == "":
                name, args = parse_single(body)
                result, status = await self.exec_cmd(conn, name, *args)
                return RestReply.from_result(result, status)

            if path == PIPELINE_PATH:
                cmds = parse_pipeline(body)
                return RestReply(HTTP_OK, await self.exec_pipeline(conn, cmds))

            name, args = parse_path_command(request.path, body, request.query)
        except CommandParseError as e:
            return RestReply.from_result(Result.fail(e.message), HTTP_BAD_REQUEST)

        result, status = await self.exec_cmd(conn, name, *args)
        return RestReply.from_result(result, status)

    async def exec_pipeline(self, conn: Connection, cmds: list[list[Any]]) -> list[dict[str, Any]]:
        """Run pipeline commands in order, one reply object per command."""
        replies: list[dict[str, Any]] = []
        for cmd in cmds:
            if not cmd:
                replies.append(Result.fail(ERR_EMPTY_PIPELINE_COMMAND).to_envelope())
                continue
            result, _ = await self.exec_cmd(conn, command_name(cmd[0]), *cmd[1:])
            replies.append(result.to_envelope())
        return replies

    async def exec_cmd(self, conn: Connection, name: str, *args: Any) -> tuple[Result, int]:
        """Run a single command.

        Returns:
            The Result and the status code it maps to: 200 on success, 400
            on an error reply
        """
        if name.lower() == "acl" and args and command_name(args[0]).lower() == "resttoken":
            return await self.exec_acl_resttoken(conn, *args[1:])

        logger.debug("Executing %s with %d argument(s)", name, len(args))
        try:
            value = await conn.execute(name, *args)
        except ReplyError as e:
            return Result.fail(e.message), HTTP_BAD_REQUEST
        return Result.ok(value), HTTP_OK

    async def exec_acl_resttoken(self, conn: Connection, *args: Any) -> tuple[Result, int]:
        """Issue a token for a username and password.

        The credential is checked with AUTH on the backing store; on
        success a password generated by ACL GENPASS becomes the token.
        """
        if len(args) != 2:
            return Result.fail(ERR_RESTTOKEN_SYNTAX), HTTP_BAD_REQUEST

        credential = Credential(command_name(args[0]), command_name(args[1]))
        result, status = await self.exec_cmd(conn, "AUTH", credential.username, credential.password)
        if status != HTTP_OK:
            return result, status

        try:
            token = await conn.execute("ACL", "GENPASS")
        except ReplyError as e:
            return Result.fail(e.message), HTTP_BAD_REQUEST

        token = str(token)
        self.tokens.issue(token, credential)
        logger.info(f"Issued REST token for user '{credential.username}'")
        return Result.ok(token), HTTP_OK
