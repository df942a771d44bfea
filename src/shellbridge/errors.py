"""Error taxonomy for the bridge.

Transient conditions reuse the builtin exceptions so callers can match on
them directly:

- FileNotFoundError: socket path absent, retried until the readiness deadline
- ConnectionRefusedError: backend not accepting, retried until the connect deadline

Everything else derives from BridgeError.
"""


class BridgeError(Exception):
    """Base class for bridge failures."""


class SocketSecurityError(BridgeError):
    """Socket path failed the type, mode or ownership check.

    Never retried: a path that exists but is unsafe will not become safe
    by waiting.
    """

    def __init__(self, path: str, reason: str):
        super().__init__(f"{reason}: {path}")
        self.path = path
        self.reason = reason


class SocketTimeoutError(BridgeError, TimeoutError):
    """A readiness or connect deadline elapsed."""


class SocketConflictError(BridgeError, FileExistsError):
    """A non-socket file already occupies the listener path."""


class ParseError(BridgeError, ValueError):
    """A framed record is not valid JSON."""


class InvalidMessageError(ParseError):
    """A framed record is JSON but not a valid JSON-RPC 2.0 message."""


class MessageTooLargeError(ParseError):
    """A framed record exceeded the configured maximum line size."""


class TransportError(BridgeError):
    """I/O failure on an established socket transport."""


class DaemonDiscoveryError(BridgeError):
    """The daemon did not report a usable socket path."""
