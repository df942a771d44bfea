"""Tests for JSON-RPC message parsing and serialization."""

import json

import pytest

from shellbridge.errors import InvalidMessageError, ParseError
from shellbridge.rpc.protocol import (
    ErrorCode,
    RPCRequest,
    RPCResponse,
    parse_message,
)


class TestParseMessage:
    def test_request(self):
        message = parse_message(b'{"jsonrpc":"2.0","id":1,"method":"ping"}')
        assert isinstance(message, RPCRequest)
        assert message.method == "ping"
        assert message.id == 1
        assert message.params is None
        assert not message.is_notification

    def test_notification_has_no_id(self):
        message = parse_message(
            '{"jsonrpc":"2.0","method":"notifications/initialized","params":{}}'
        )
        assert isinstance(message, RPCRequest)
        assert message.is_notification
        assert message.params == {}

    def test_success_response(self):
        message = parse_message(b'{"jsonrpc":"2.0","id":"a","result":{"ok":true}}')
        assert isinstance(message, RPCResponse)
        assert message.id == "a"
        assert message.result == {"ok": True}
        assert not message.is_error

    def test_error_response_with_null_id(self):
        message = parse_message(
            b'{"jsonrpc":"2.0","id":null,"error":{"code":-32700,"message":"bad"}}'
        )
        assert isinstance(message, RPCResponse)
        assert message.id is None
        assert message.error is not None
        assert message.error.code == ErrorCode.PARSE_ERROR

    def test_result_null_is_still_a_result(self):
        message = parse_message(b'{"jsonrpc":"2.0","id":3,"result":null}')
        assert isinstance(message, RPCResponse)
        assert message.result is None
        assert not message.is_error

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "{",
            "not json",
            b"\xff\xfe",
        ],
    )
    def test_undecodable_input_is_parse_error(self, raw):
        with pytest.raises(ParseError) as exc_info:
            parse_message(raw)
        assert not isinstance(exc_info.value, InvalidMessageError)

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            "ping",
            {"id": 1, "method": "ping"},
            {"jsonrpc": "1.0", "id": 1, "method": "ping"},
            {"jsonrpc": "2.0", "id": 1},
            {"jsonrpc": "2.0", "id": 1, "method": "ping", "result": {}},
            {"jsonrpc": "2.0", "id": 1, "result": {}, "error": {"code": 1, "message": "x"}},
            {"jsonrpc": "2.0", "id": 1, "method": "ping", "extra": True},
            {"jsonrpc": "2.0", "id": 1, "method": ""},
            {"jsonrpc": "2.0", "id": 1, "method": 5},
            {"jsonrpc": "2.0", "id": 1, "method": "ping", "params": "x"},
            {"jsonrpc": "2.0", "id": True, "method": "ping"},
            {"jsonrpc": "2.0", "id": 1.5, "method": "ping"},
            {"jsonrpc": "2.0", "id": None, "method": "ping"},
            {"jsonrpc": "2.0", "result": {}},
            {"jsonrpc": "2.0", "id": None, "result": {}},
            {"jsonrpc": "2.0", "id": 1, "result": {}, "params": {}},
            {"jsonrpc": "2.0", "id": 1, "error": "boom"},
            {"jsonrpc": "2.0", "id": 1, "error": {"code": "x", "message": "m"}},
            {"jsonrpc": "2.0", "id": 1, "error": {"code": 1}},
            {"jsonrpc": "2.0", "id": 1, "error": {"code": 1, "message": "m", "x": 1}},
        ],
    )
    def test_ambiguous_or_malformed_shapes_are_rejected(self, payload):
        with pytest.raises(InvalidMessageError):
            parse_message(json.dumps(payload))


class TestSerialization:
    def test_request_roundtrip_is_byte_identical(self):
        line = b'{"jsonrpc":"2.0","id":1,"method":"ping"}\n'
        assert parse_message(line.rstrip(b"\n")).to_bytes() == line

    def test_response_roundtrip_is_byte_identical(self):
        line = b'{"jsonrpc":"2.0","id":1,"result":{"ok":true}}\n'
        assert parse_message(line.rstrip(b"\n")).to_bytes() == line

    def test_notification_omits_id(self):
        data = RPCRequest(method="notifications/message", params={"level": "info"})
        assert json.loads(data.to_bytes()) == {
            "jsonrpc": "2.0",
            "method": "notifications/message",
            "params": {"level": "info"},
        }

    def test_error_response_omits_empty_data(self):
        response = RPCResponse.error_response(7, ErrorCode.METHOD_NOT_FOUND, "nope")
        assert response.to_bytes() == (
            b'{"jsonrpc":"2.0","id":7,"error":{"code":-32601,"message":"nope"}}\n'
        )

    def test_non_ascii_is_written_verbatim(self):
        response = RPCResponse.success(1, {"text": "héllo"})
        assert "héllo".encode() in response.to_bytes()

    def test_records_are_single_lines(self):
        response = RPCResponse.success(1, {"text": "a\nb"})
        data = response.to_bytes()
        assert data.count(b"\n") == 1
        assert data.endswith(b"\n")
