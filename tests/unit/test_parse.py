"""
Unit tests for REST command parsing.

Tests cover:
- Root path JSON command bodies
- Pipeline bodies
- Path commands with body and query arguments
- Argument normalization of JSON values
"""

import pytest

from dbaas.restdis_server.api.parse import (
    ERR_EMPTY_COMMAND,
    ERR_EMPTY_PIPELINE,
    ERR_PARSE_COMMAND,
    ERR_PARSE_PIPELINE,
    CommandParseError,
    command_name,
    normalize_path,
    parse_path_command,
    parse_pipeline,
    parse_single,
    query_args,
)
from dbaas.restdis_server.backend.base import normalize_arg


def _parse_error(fn, *args) -> str:
    with pytest.raises(CommandParseError) as exc_info:
        fn(*args)
    return exc_info.value.message


class TestParseSingle:
    """Tests for root path bodies."""

    def test_command_and_args(self):
        assert parse_single(b'["SET", "k", 1]') == ("SET", ["k", 1])

    def test_numeric_command_name(self):
        assert parse_single(b"[1.0]") == ("1", [])

    def test_invalid_json(self):
        assert _parse_error(parse_single, b"[") == ERR_PARSE_COMMAND

    def test_not_an_array(self):
        assert _parse_error(parse_single, b'{"a": 1}') == ERR_PARSE_COMMAND
        assert _parse_error(parse_single, b'"GET"') == ERR_PARSE_COMMAND

    def test_empty_array(self):
        assert _parse_error(parse_single, b"[]") == ERR_EMPTY_COMMAND

    def test_null_is_empty(self):
        assert _parse_error(parse_single, b"null") == ERR_EMPTY_COMMAND


class TestParsePipeline:
    """Tests for /pipeline bodies."""

    def test_commands(self):
        assert parse_pipeline(b'[["SET", "a", 1], ["GET", "a"]]') == [
            ["SET", "a", 1],
            ["GET", "a"],
        ]

    def test_inner_null_is_empty_command(self):
        assert parse_pipeline(b'[["PING"], null, []]') == [["PING"], [], []]

    def test_invalid_json(self):
        assert _parse_error(parse_pipeline, b"[[") == ERR_PARSE_PIPELINE

    def test_not_array_of_arrays(self):
        assert _parse_error(parse_pipeline, b'["GET", "a"]') == ERR_PARSE_PIPELINE
        assert _parse_error(parse_pipeline, b'{"a": []}') == ERR_PARSE_PIPELINE

    def test_empty(self):
        assert _parse_error(parse_pipeline, b"[]") == ERR_EMPTY_PIPELINE
        assert _parse_error(parse_pipeline, b"null") == ERR_EMPTY_PIPELINE


class TestPathCommand:
    """Tests for path, body and query command assembly."""

    def test_path_segments(self):
        assert parse_path_command("/echo/a", b"", "") == ("echo", ["a"])

    def test_trailing_slash_ignored(self):
        assert parse_path_command("/echo/a/", b"", "") == ("echo", ["a"])

    def test_body_appended(self):
        assert parse_path_command("/set/k", b"some value", "") == ("set", ["k", "some value"])

    def test_query_appended_after_body(self):
        assert parse_path_command("/set/k", b"v", "EX=10&NX") == (
            "set",
            ["k", "v", "EX", "10", "NX"],
        )

    def test_token_not_an_argument(self):
        assert parse_path_command("/get/k", b"", "_token=abc") == ("get", ["k"])

    def test_query_decoded(self):
        assert query_args("a%20b=c%2Fd&&x") == ["a b", "c/d", "x"]

    def test_normalize_path(self):
        assert normalize_path("/") == ""
        assert normalize_path("/pipeline/") == "/pipeline"
        assert normalize_path("/get/k") == "/get/k"


class TestNormalization:
    """Tests for JSON value conversion to command arguments."""

    def test_integral_float(self):
        assert normalize_arg(3.0) == "3"
        assert normalize_arg(2.5) == 2.5

    def test_bool_and_null(self):
        assert normalize_arg(True) == "1"
        assert normalize_arg(False) == "0"
        assert normalize_arg(None) == ""

    def test_compound_values(self):
        assert normalize_arg([1, "a"]) == '[1,"a"]'
        assert normalize_arg({"a": 1}) == '{"a":1}'

    def test_command_name(self):
        assert command_name("GET") == "GET"
        assert command_name(True) == "true"
        assert command_name(7) == "7"
        assert command_name(["x"]) == '["x"]'
