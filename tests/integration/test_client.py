"""
Integration tests for the SDK client against the REST server.

The client talks to an in-process server over httpx.ASGITransport, backed
by the in-memory store.

Tests cover:
- Single command and pipeline execution
- Error reporting with pipeline indices and partial results
- Destination handling
- Issued tokens
"""

from typing import Any

import httpx
import pytest

from dbaas.restdis_server.api import create_app
from dbaas.restdis_server.backend.memory import MemoryStore
from dbaas.restdis_server.config import Settings
from sdk.restdis_sdk import (
    CommandError,
    EmptyCommandError,
    NoCommandError,
    RestClient,
    ResultDecodeError,
    TooManyDestinationsError,
    TransportError,
)

TOKEN = "_token_"
BASE_URL = "http://restdis"


def make_client(store: MemoryStore | None = None, token: str = TOKEN) -> RestClient:
    store = store or MemoryStore()
    app = create_app(Settings(api_token=TOKEN, redis_addr="memory"), store.connect)
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE_URL)
    return RestClient(BASE_URL, token, http_client=http)


class UserKey:
    def __init__(self, n: int) -> None:
        self.n = n

    def redis_arg(self) -> str:
        return f"user:{self.n}"


class TestExecOne:
    """Tests for Request.exec_one."""

    @pytest.mark.asyncio
    async def test_echo(self):
        client = make_client()
        assert await client.new_request().exec_one(str, "ECHO", "a") == "a"

    @pytest.mark.asyncio
    async def test_ignore_reply(self):
        client = make_client()
        assert await client.new_request().exec_one(None, "SET", "k", "v") is None

    @pytest.mark.asyncio
    async def test_error_index_zero(self):
        client = make_client()
        with pytest.raises(CommandError) as exc_info:
            await client.new_request().exec_one(None, "NOPE")
        assert exc_info.value.pipeline_index == 0
        assert exc_info.value.kind == "ERR"

    @pytest.mark.asyncio
    async def test_error_index_zero_after_queued(self):
        """Queued commands run first but the failure is still reported at 0."""
        store = MemoryStore()
        client = make_client(store)
        req = client.new_request().send("SET", "a", "1").send("NOPE")
        with pytest.raises(CommandError) as exc_info:
            await req.exec_one(None, "HGET", "a", "f")
        assert exc_info.value.pipeline_index == 0
        assert exc_info.value.kind == "WRONGTYPE"
        assert store.get("a") == "1"

    @pytest.mark.asyncio
    async def test_decode_error(self):
        client = make_client()
        with pytest.raises(ResultDecodeError):
            await client.new_request().exec_one(int, "ECHO", "abc")


class TestExec:
    """Tests for Request.exec."""

    @pytest.mark.asyncio
    async def test_single_command(self):
        client = make_client()
        assert await client.new_request().send("PING").exec(str) == ["PONG"]

    @pytest.mark.asyncio
    async def test_pipeline(self):
        client = make_client()
        req = client.new_request()
        req.send("SET", "n", 1).send("INCRBY", "n", 41).send("GET", "n")
        assert len(req) == 3
        assert await req.exec(None, int, int) == [None, 42, 42]
        assert len(req) == 0

    @pytest.mark.asyncio
    async def test_failed_index_with_partial_results(self):
        client = make_client()
        req = client.new_request()
        req.send("SET", "s", "v").send("ECHO", "a").send("INCR", "s").send("GET", "s")
        with pytest.raises(CommandError) as exc_info:
            await req.exec(str, str, int, str)
        err = exc_info.value
        assert err.pipeline_index == 2
        assert err.message == "ERR value is not an integer or out of range"
        assert err.results == ["OK", "a", None, "v"]

    @pytest.mark.asyncio
    async def test_first_failure_reported(self):
        client = make_client()
        req = client.new_request()
        req.send("PING").send("NOPE").send("GET")
        with pytest.raises(CommandError) as exc_info:
            await req.exec(str, str, str)
        assert exc_info.value.pipeline_index == 1

    @pytest.mark.asyncio
    async def test_fewer_destinations(self):
        client = make_client()
        req = client.new_request().send("ECHO", "a").send("ECHO", "b").send("NOPE")
        assert await req.exec(str) == ["a"]

    @pytest.mark.asyncio
    async def test_too_many_destinations(self):
        client = make_client()
        with pytest.raises(TooManyDestinationsError):
            await client.new_request().send("PING").exec(str, str)

    @pytest.mark.asyncio
    async def test_structured_destination(self):
        client = make_client()
        req = client.new_request()
        req.send("HSET", "h", "a", "1").send("HGETALL", "h").send("MGET", "h", "x")
        assert await req.exec(None, list[str], list[Any]) == [None, ["a", "1"], [None, None]]

    @pytest.mark.asyncio
    async def test_no_command(self):
        client = make_client()
        with pytest.raises(NoCommandError):
            await client.new_request().exec()

    def test_empty_command(self):
        client = make_client()
        with pytest.raises(EmptyCommandError):
            client.new_request().send("")


class TestExecRaw:
    """Tests for Request.exec_raw."""

    @pytest.mark.asyncio
    async def test_every_result_returned(self):
        client = make_client()
        req = client.new_request().send("PING").send("NOPE").send("GET")
        results = await req.exec_raw()
        assert [r.failed for r in results] == [False, True, True]
        assert results[0].result == "PONG"


class TestArguments:
    """Tests for argument encoding through the server."""

    @pytest.mark.asyncio
    async def test_encoded_values(self):
        store = MemoryStore()
        client = make_client(store)
        req = client.new_request()
        req.send("SET", UserKey(1), b"bytes")
        req.send("SET", "flag", True)
        req.send("SET", "num", 2.5)
        req.send("SET", "nil", None)
        await req.exec()
        assert store.get("user:1") == "bytes"
        assert store.get("flag") == "1"
        assert store.get("num") == "2.5"
        assert store.get("nil") == ""


class TestTokens:
    """Tests for authentication from the client."""

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        client = make_client(token="wrong")
        with pytest.raises(CommandError) as exc_info:
            await client.new_request().exec_one(str, "PING")
        assert exc_info.value.message == "Unauthorized"
        assert exc_info.value.kind == ""

    @pytest.mark.asyncio
    async def test_unauthorized_pipeline_not_attributed(self):
        client = make_client(token="wrong")
        with pytest.raises(CommandError) as exc_info:
            await client.new_request().send("PING").send("PING").exec()
        assert exc_info.value.pipeline_index == -1

    @pytest.mark.asyncio
    async def test_issued_token(self):
        store = MemoryStore()
        store.add_user("user", "pwd", key_patterns=["user:*"])
        client = make_client(store)

        issued = await client.new_request().exec_one(str, "ACL", "RESTTOKEN", "user", "pwd")
        req = client.new_request_with_token(issued)
        assert await req.exec_one(str, "ACL", "WHOAMI") == "user"

        with pytest.raises(CommandError) as exc_info:
            await req.exec_one(None, "SET", "other", "v")
        assert exc_info.value.kind == "NOPERM"


class TestTransport:
    """Tests for transport failures."""

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        client = RestClient(BASE_URL, TOKEN, http_client=http)
        with pytest.raises(TransportError) as exc_info:
            await client.new_request().exec_one(str, "PING")
        assert exc_info.value.pipeline_index == -1

    @pytest.mark.asyncio
    async def test_status_without_payload(self):
        def fail(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="down")

        http = httpx.AsyncClient(transport=httpx.MockTransport(fail))
        client = RestClient(BASE_URL, TOKEN, http_client=http)
        with pytest.raises(TransportError) as exc_info:
            await client.new_request().exec_one(str, "PING")
        assert exc_info.value.status_code == 503
        assert str(exc_info.value) == "[503]: down"

    @pytest.mark.asyncio
    async def test_pipeline_url(self):
        seen = []

        def record(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"result": "PONG"}, {"result": "PONG"}])

        http = httpx.AsyncClient(transport=httpx.MockTransport(record))
        client = RestClient("http://restdis/api/", TOKEN, http_client=http)
        await client.new_request().send("PING").send("PING").exec()
        assert seen[0].url.path == "/api/pipeline"
        assert seen[0].headers["authorization"] == f"Bearer {TOKEN}"


class TestRoundTrip:
    """Tests that values come back as sent through ECHO."""

    @pytest.mark.asyncio
    async def test_echo_decodes_to_original_types(self):
        client = make_client()
        req = client.new_request()
        req.send("ECHO", "text").send("ECHO", 42).send("ECHO", 2.5)
        req.send("ECHO", True).send("ECHO", False).send("ECHO", b"raw")
        assert await req.exec(str, int, float, bool, bool, bytes) == [
            "text",
            42,
            2.5,
            True,
            False,
            b"raw",
        ]

    @pytest.mark.asyncio
    async def test_non_finite_float_rejected_before_sending(self):
        sent = []

        def record(request: httpx.Request) -> httpx.Response:
            sent.append(request)
            return httpx.Response(200, json={"result": "OK"})

        http = httpx.AsyncClient(transport=httpx.MockTransport(record))
        client = RestClient(BASE_URL, TOKEN, http_client=http)
        req = client.new_request().send("SET", "k", float("nan"))
        with pytest.raises(TransportError) as exc_info:
            await req.exec()
        assert "failed to encode request" in str(exc_info.value)
        assert sent == []
        assert len(req) == 0
