"""
restdis client for the Redis REST API.

This module provides the main client interface:
- RestClient: HTTP configuration shared by all requests
- Request: Command queue executed as a single call or as a pipeline

Example:
    >>> async with RestClient("http://localhost:8080", "token") as client:
    ...     req = client.new_request()
    ...     req.send("SET", "k", 1)
    ...     req.send("INCR", "k")
    ...     _, n = await req.exec(None, int)

Invariants:
    - One queued command is sent to the base URL, more to <base>/pipeline
    - A pipeline is not atomic: every command runs even if one fails
    - A Request is not safe for concurrent use
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from .args import Command, encode_command
from .config import ClientSettings
from .errors import (
    CommandError,
    NoCommandError,
    ResultDecodeError,
    RestdisError,
    TooManyDestinationsError,
    TransportError,
)
from .result import Result, parse_batch

logger = logging.getLogger(__name__)

# Bytes of a failed response body inspected for an error payload
ERROR_BODY_LIMIT = 512


class RestClient:
    """Client for a Redis REST API server.

    Holds the base URL, the default API token and the HTTP client. The
    client is safe to share between tasks; each task starts its own
    Request.

    Example:
        >>> client = RestClient("http://localhost:8080", "token")
        >>> await client.new_request().exec_one(str, "ECHO", "a")
        'a'
    """

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize client.

        Args:
            base_url: Base URL of the REST API
            api_token: Token sent as Bearer credential
            http_client: Optional HTTP client to use. It is not closed by
                close(). If it sets a default Authorization header, that
                header is sent instead of the API token.
            timeout: Timeout in seconds for the HTTP client created when
                http_client is not provided
        """
        self.base_url = base_url
        self.api_token = api_token
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: ClientSettings | None = None) -> RestClient:
        """Create a client from environment settings."""
        settings = settings or ClientSettings()
        return cls(settings.rest_url, settings.rest_token, timeout=settings.timeout)

    async def close(self) -> None:
        """Close the HTTP client if this client created it."""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> RestClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def new_request(self) -> Request:
        """Start a new request using the client's API token."""
        return Request(self, self.api_token)

    def new_request_with_token(self, token: str) -> Request:
        """Start a new request that authenticates with another token.

        Useful with a token issued by ACL RESTTOKEN while sharing the
        client's HTTP configuration.
        """
        return Request(self, token)

    def _pipeline_url(self) -> httpx.URL:
        url = httpx.URL(self.base_url)
        return url.copy_with(path=url.path.rstrip("/") + "/pipeline")

    async def _post(self, body: Any, token: str, pipeline: bool) -> list[Result]:
        """Send a command or pipeline and parse the replies.

        Raises:
            CommandError: If the server rejected the request with an error
                payload
            TransportError: If the body cannot be encoded (NaN or infinite
                floats) or the request failed otherwise
        """
        url = self._pipeline_url() if pipeline else httpx.URL(self.base_url)
        try:
            # NaN and infinities have no JSON form
            content = json.dumps(body, separators=(",", ":"), allow_nan=False)
        except ValueError as e:
            raise TransportError(f"failed to encode request: {e}", url=str(url)) from e
        request = self._http.build_request(
            "POST", url, content=content, headers={"Content-Type": "application/json"}
        )
        if "Authorization" not in request.headers:
            request.headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._http.send(request)
        except httpx.HTTPError as e:
            raise TransportError(f"request failed: {e}", url=str(url)) from e

        if response.status_code != httpx.codes.OK:
            raise self._status_error(response, pipeline)

        try:
            data = json.loads(response.content)
            if pipeline:
                return parse_batch(data)
            return [Result.from_envelope(data)]
        except ValueError as e:
            raise TransportError(
                f"invalid reply payload: {e}",
                status_code=response.status_code,
                url=str(url),
            ) from e

    @staticmethod
    def _status_error(response: httpx.Response, pipeline: bool) -> RestdisError:
        body = response.content[:ERROR_BODY_LIMIT]
        if not body:
            text = f"{response.status_code} {response.reason_phrase}"
        else:
            try:
                payload = Result.from_envelope(json.loads(body))
            except ValueError:
                payload = None
            if payload is not None and payload.failed:
                # A failed single command is the whole request; a failed
                # pipeline request is not attributable to any command.
                return CommandError(payload.error, -1 if pipeline else 0)
            text = body.decode("utf-8", errors="replace")
        return TransportError(
            f"[{response.status_code}]: {text}",
            status_code=response.status_code,
            url=str(response.request.url),
        )


class Request:
    """A queue of commands executed together.

    Commands are queued with send() and transmitted by exec(),
    exec_one() or exec_raw(), each of which empties the queue.
    """

    def __init__(self, client: RestClient, token: str) -> None:
        self._client = client
        self._token = token
        self._commands: list[Command] = []

    def __len__(self) -> int:
        return len(self._commands)

    def send(self, cmd: str, *args: Any) -> Request:
        """Queue a command for execution.

        Returns:
            Self for chaining

        Raises:
            EmptyCommandError: If cmd is empty
        """
        self._commands.append(encode_command(cmd, args))
        return self

    async def exec(self, *dst: Any) -> list[Any]:
        """Execute all queued commands.

        A single command is sent as a standard call, several as a pipeline.

        Replies are decoded into the destination types positionally. At
        most len(dst) replies are decoded, the rest are discarded. A None
        destination ignores its reply.

        Args:
            *dst: Destination types, or None

        Returns:
            One decoded value per destination (None where ignored or failed)

        Raises:
            NoCommandError: If nothing is queued
            TooManyDestinationsError: If len(dst) exceeds the replies
            CommandError: For the first failed command. Its results
                attribute holds the values decoded for the other positions.
            ResultDecodeError: If a reply does not fit its destination
            TransportError: If the request itself failed
        """
        results = await self._exec()
        if len(dst) > len(results):
            raise TooManyDestinationsError(len(dst), len(results))

        values: list[Any] = []
        first_err: CommandError | None = None
        for ix, (res, d) in enumerate(zip(results, dst)):
            if res.failed:
                if first_err is None:
                    first_err = CommandError(res.error, ix)
                values.append(None)
                continue
            values.append(_decode(res, d, ix) if d is not None else None)

        if first_err is not None:
            first_err.results = values
            raise first_err
        return values

    async def exec_one(self, dst: Any, cmd: str, *args: Any) -> Any:
        """Execute a command after flushing any queued ones.

        Queued commands run first in the same pipeline, but their replies
        are discarded, errors included. Only the reply of cmd is returned.

        Args:
            dst: Destination type, or None to ignore the reply
            cmd: Command name
            *args: Command arguments

        Returns:
            The decoded reply, or None if dst is None

        Raises:
            CommandError: If cmd failed. Its pipeline_index is always 0, as
                if no other command had been queued.
        """
        self.send(cmd, *args)
        results = await self._exec()
        if not results:
            raise TransportError("no reply returned")

        last = results[-1]
        if last.failed:
            raise CommandError(last.error, 0)
        if dst is None:
            return None
        return _decode(last, dst, 0)

    async def exec_raw(self) -> list[Result]:
        """Execute all queued commands and return every Result as-is.

        Command errors are not raised, they are stored in each Result.
        Use this to know every command that failed in a pipeline.

        Raises:
            NoCommandError: If nothing is queued
            CommandError: If the server rejected the whole request
            TransportError: If the request itself failed
        """
        return await self._exec()

    async def _exec(self) -> list[Result]:
        if not self._commands:
            raise NoCommandError()

        commands, self._commands = self._commands, []
        pipeline = len(commands) > 1
        body: Any = [list(c) for c in commands] if pipeline else list(commands[0])

        logger.debug(
            "Executing %d command(s)%s",
            len(commands),
            " as pipeline" if pipeline else "",
        )
        return await self._client._post(body, self._token, pipeline)


def _decode(res: Result, dst: Any, ix: int) -> Any:
    try:
        return res.decode(dst)
    except ValidationError as e:
        raise ResultDecodeError(f"failed to decode result {ix}: {e}", ix) from e
