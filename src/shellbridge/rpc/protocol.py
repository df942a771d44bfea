"""JSON-RPC 2.0 protocol implementation.

Messages travel as one compact JSON object per line. Every record read from a
stream goes through parse_message() once; downstream code only ever sees the
typed variants below.
"""

import json
from dataclasses import dataclass
from typing import Any

from shellbridge.errors import InvalidMessageError, ParseError

JSONRPC_VERSION = "2.0"

_ALLOWED_KEYS = frozenset({"jsonrpc", "id", "method", "params", "result", "error"})
_KIND_KEYS = ("method", "result", "error")


# JSON-RPC 2.0 error codes
class ErrorCode:
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


RequestId = int | str


def _dumps(payload: dict[str, Any]) -> bytes:
    return (json.dumps(payload, separators=(",", ":"), ensure_ascii=False) + "\n").encode()


@dataclass
class RPCRequest:
    """JSON-RPC 2.0 request, or a notification when id is None."""

    method: str
    params: dict[str, Any] | list[Any] | None = None
    id: RequestId | None = None
    jsonrpc: str = JSONRPC_VERSION

    @property
    def is_notification(self) -> bool:
        return self.id is None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id is not None:
            d["id"] = self.id
        d["method"] = self.method
        if self.params is not None:
            d["params"] = self.params
        return d

    def to_bytes(self) -> bytes:
        """Serialize to a newline-terminated record."""
        return _dumps(self.to_dict())


@dataclass
class RPCError:
    """JSON-RPC 2.0 error."""

    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            d["data"] = self.data
        return d


@dataclass
class RPCResponse:
    """JSON-RPC 2.0 response carrying either a result or an error."""

    id: RequestId | None
    result: Any = None
    error: RPCError | None = None
    jsonrpc: str = JSONRPC_VERSION

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            d["error"] = self.error.to_dict()
        else:
            d["result"] = self.result
        return d

    def to_bytes(self) -> bytes:
        """Serialize to a newline-terminated record."""
        return _dumps(self.to_dict())

    @classmethod
    def success(cls, id: RequestId | None, result: Any) -> "RPCResponse":
        return cls(id=id, result=result)

    @classmethod
    def error_response(
        cls, id: RequestId | None, code: int, message: str, data: Any = None
    ) -> "RPCResponse":
        return cls(id=id, error=RPCError(code=code, message=message, data=data))


RPCMessage = RPCRequest | RPCResponse


def _is_valid_id(value: Any) -> bool:
    # bool is an int subclass but never a valid id
    return isinstance(value, (int, str)) and not isinstance(value, bool)


def _parse_error_object(raw: Any) -> RPCError:
    if not isinstance(raw, dict):
        raise InvalidMessageError("error must be an object")
    code = raw.get("code")
    message = raw.get("message")
    if not isinstance(code, int) or isinstance(code, bool):
        raise InvalidMessageError("error.code must be an integer")
    if not isinstance(message, str):
        raise InvalidMessageError("error.message must be a string")
    extra = set(raw) - {"code", "message", "data"}
    if extra:
        raise InvalidMessageError(f"Unexpected error fields: {sorted(extra)}")
    return RPCError(code=code, message=message, data=raw.get("data"))


def message_from_dict(data: Any) -> RPCMessage:
    """Validate a decoded JSON value as exactly one message variant.

    Raises:
        InvalidMessageError: If the value is not a well-formed message.
    """
    if not isinstance(data, dict):
        raise InvalidMessageError("Message must be a JSON object")

    extra = set(data) - _ALLOWED_KEYS
    if extra:
        raise InvalidMessageError(f"Unexpected message fields: {sorted(extra)}")

    if data.get("jsonrpc") != JSONRPC_VERSION:
        raise InvalidMessageError("Invalid JSON-RPC version")

    kinds = [key for key in _KIND_KEYS if key in data]
    if len(kinds) != 1:
        raise InvalidMessageError(
            "Message must contain exactly one of method, result, error"
        )
    kind = kinds[0]

    if kind == "method":
        method = data["method"]
        if not isinstance(method, str) or not method:
            raise InvalidMessageError("method must be a non-empty string")
        params = data.get("params")
        if "params" in data and not isinstance(params, (dict, list)):
            raise InvalidMessageError("params must be an object or array")
        request_id = data.get("id")
        if "id" in data and not _is_valid_id(request_id):
            raise InvalidMessageError("Request id must be a string or integer")
        return RPCRequest(method=method, params=params, id=request_id)

    if "params" in data:
        raise InvalidMessageError("Responses cannot carry params")
    if "id" not in data:
        raise InvalidMessageError("Responses must carry an id")

    response_id = data["id"]
    if kind == "result":
        if not _is_valid_id(response_id):
            raise InvalidMessageError("Response id must be a string or integer")
        return RPCResponse.success(response_id, data["result"])

    if response_id is not None and not _is_valid_id(response_id):
        raise InvalidMessageError("Response id must be a string, integer or null")
    return RPCResponse(id=response_id, error=_parse_error_object(data["error"]))


def parse_message(line: bytes | str) -> RPCMessage:
    """Parse one framed record.

    Raises:
        ParseError: If the record is not valid UTF-8 JSON.
        InvalidMessageError: If the JSON is not a valid message.
    """
    try:
        if isinstance(line, bytes):
            line = line.decode("utf-8")
        payload = json.loads(line)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"Parse error: {e}") from e
    return message_from_dict(payload)
