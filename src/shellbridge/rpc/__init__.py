"""JSON-RPC messages, framing and per-session dispatch.

Protocol:
- RPCRequest, RPCResponse: the two message variants, validated by parse_message
- ReadBuffer: newline-delimited framing over a byte stream

Sessions:
- RPCDispatcher: default per-session handler
- dispatcher_factory: builds one dispatcher per accepted connection
"""

from shellbridge.rpc.dispatcher import RPCDispatcher, SessionHandler, dispatcher_factory
from shellbridge.rpc.framing import ReadBuffer
from shellbridge.rpc.protocol import (
    ErrorCode,
    RPCError,
    RPCMessage,
    RPCRequest,
    RPCResponse,
    parse_message,
)

__all__ = [
    # Protocol
    "ErrorCode",
    "RPCError",
    "RPCMessage",
    "RPCRequest",
    "RPCResponse",
    "parse_message",
    # Framing
    "ReadBuffer",
    # Dispatch
    "RPCDispatcher",
    "SessionHandler",
    "dispatcher_factory",
]
