"""
Unit tests for the Redis backing connection.

A small RESP server on localhost stands in for Redis, so that replies
which a real server rarely produces can be served on demand.

Tests cover:
- Replies holding invalid UTF-8
- Verbatim error replies
- Pipelines dispatched over a Redis connection
"""

import asyncio
from contextlib import asynccontextmanager

import pytest

from dbaas.restdis_server.api.dispatcher import Dispatcher, RestRequest
from dbaas.restdis_server.backend.base import ReplyError
from dbaas.restdis_server.backend.redis_conn import redis_connection_factory

TOKEN = "_token_"

REPLIES = {
    b"GET": b"$2\r\n\xff\xfe\r\n",
    b"NOPE": b"-ERR unknown command 'NOPE', with args beginning with: \r\n",
}


async def _read_command(reader: asyncio.StreamReader) -> list[bytes]:
    header = await reader.readline()
    if not header:
        return []
    parts = []
    for _ in range(int(header[1:])):
        size = int((await reader.readline())[1:])
        parts.append((await reader.readexactly(size + 2))[:-2])
    return parts


@asynccontextmanager
async def fake_redis():
    """Serve canned replies, +OK for anything else. Yields (addr, received)."""
    received: list[list[bytes]] = []

    async def handle(reader, writer):
        while True:
            cmd = await _read_command(reader)
            if not cmd:
                break
            received.append(cmd)
            writer.write(REPLIES.get(cmd[0].upper(), b"+OK\r\n"))
            await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"127.0.0.1:{port}", received
    finally:
        server.close()


class TestRedisConnection:
    """Tests for RedisConnection against canned replies."""

    @pytest.mark.asyncio
    async def test_invalid_utf8_value_replaced(self):
        async with fake_redis() as (addr, _):
            conn = await redis_connection_factory(addr)()
            try:
                assert await conn.execute("GET", "bin") == "\ufffd\ufffd"
                assert await conn.execute("SET", "a", "1") == "OK"
            finally:
                await conn.close()

    @pytest.mark.asyncio
    async def test_error_reply_verbatim(self):
        async with fake_redis() as (addr, _):
            conn = await redis_connection_factory(addr)()
            try:
                with pytest.raises(ReplyError) as exc_info:
                    await conn.execute("NOPE")
                assert exc_info.value.message.startswith("ERR unknown command 'NOPE'")
            finally:
                await conn.close()

    @pytest.mark.asyncio
    async def test_pipeline_with_invalid_utf8_runs_every_command(self):
        async with fake_redis() as (addr, received):
            dispatcher = Dispatcher(TOKEN, redis_connection_factory(addr))

            async def read_body() -> bytes:
                return b'[["GET", "bin"], ["SET", "a", "1"]]'

            reply = await dispatcher.dispatch(
                RestRequest(
                    "POST", "/pipeline", "", {"authorization": f"Bearer {TOKEN}"}, read_body
                )
            )

        assert reply.status == 200
        assert reply.payload == [{"result": "\ufffd\ufffd"}, {"result": "OK"}]
        assert [b"SET", b"a", b"1"] in received
