"""
Redis backing store connection.

This module connects the REST server to a real Redis instance (version 6
and above for ACL support) using redis-py's asyncio connection class.

Invariants:
    - Every Connection owns one dedicated TCP connection, never pooled,
      so an AUTH on behalf of one request cannot leak into another
    - Replies are the raw RESP values, with no client-side parsing
    - Error replies keep their full text, including the kind prefix

How to change safely:
    - Test against a real Redis with RESTDIS_TEST_REDIS_ADDR set
    - Keep error text verbatim, REST clients match on the first word
"""

from __future__ import annotations

import logging
from typing import Any

# Private parser module, present in redis-py 5.x and 6.x (see the
# version bound in pyproject.toml)
from redis._parsers import _AsyncRESP2Parser
from redis.asyncio.connection import Connection as _RedisConnection
from redis.exceptions import ConnectionError as _RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as _RedisTimeoutError

from .base import BackendConnectionError, ConnectionFactory, ReplyError, normalize_arg

logger = logging.getLogger(__name__)


class _VerbatimErrorParser(_AsyncRESP2Parser):
    """RESP2 parser that keeps error replies intact.

    The default parser strips prefixes such as ERR or WRONGPASS and maps
    them to exception classes. The REST API returns the full text instead.
    """

    EXCEPTION_CLASSES: dict = {}


def parse_addr(addr: str) -> tuple[str, int]:
    """Split a host:port address, defaulting to port 6379.

    Raises:
        ValueError: If the port is not a number
    """
    host, sep, port = addr.rpartition(":")
    if not sep:
        return addr, 6379
    return host or "localhost", int(port)


class RedisConnection:
    """Connection to a Redis server.

    Example:
        >>> conn = RedisConnection("localhost", 6379)
        >>> await conn.connect()
        >>> await conn.execute("HGETALL", "h")
        ['a', '1']
    """

    def __init__(
        self,
        host: str,
        port: int = 6379,
        *,
        username: str | None = None,
        password: str | None = None,
        db: int = 0,
        connect_timeout: float | None = None,
    ) -> None:
        self._conn = _RedisConnection(
            host=host,
            port=port,
            username=username,
            password=password,
            db=db,
            socket_connect_timeout=connect_timeout,
            decode_responses=True,
            # Values that are not valid UTF-8 decode with U+FFFD
            encoding_errors="replace",
            parser_class=_VerbatimErrorParser,
        )

    async def connect(self) -> None:
        """Open the TCP connection.

        Raises:
            BackendConnectionError: If Redis is unreachable
        """
        try:
            await self._conn.connect()
        except (RedisError, OSError) as e:
            raise BackendConnectionError(f"failed to connect to redis: {e}") from e
        logger.debug("Connected to redis at %s:%s", self._conn.host, self._conn.port)

    async def execute(self, command: str, *args: Any) -> Any:
        try:
            await self._conn.send_command(command, *(normalize_arg(a) for a in args))
            return await self._conn.read_response()
        except ResponseError as e:
            raise ReplyError(str(e)) from e
        except (_RedisConnectionError, _RedisTimeoutError, OSError) as e:
            raise BackendConnectionError(f"redis connection error: {e}") from e
        except RedisError as e:
            raise BackendConnectionError(f"redis error: {e}") from e

    async def close(self) -> None:
        await self._conn.disconnect()


def redis_connection_factory(
    addr: str,
    *,
    username: str | None = None,
    password: str | None = None,
    db: int = 0,
    connect_timeout: float | None = None,
) -> ConnectionFactory:
    """Return a ConnectionFactory dialing the Redis server at addr."""
    host, port = parse_addr(addr)

    async def connect() -> RedisConnection:
        conn = RedisConnection(
            host,
            port,
            username=username,
            password=password,
            db=db,
            connect_timeout=connect_timeout,
        )
        await conn.connect()
        return conn

    return connect
