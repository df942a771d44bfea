"""Per-session JSON-RPC method dispatch."""

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, Protocol

from shellbridge.rpc.protocol import (
    ErrorCode,
    RPCMessage,
    RPCRequest,
    RPCResponse,
)

logger = logging.getLogger(__name__)

# Type for RPC method handlers
RPCHandler = Callable[[Any], Awaitable[Any]]

# Sends a server-initiated message to the connected client
Notifier = Callable[[RPCMessage], Awaitable[None]]


class SessionHandler(Protocol):
    """Backend handler bound to exactly one session."""

    async def handle(self, message: RPCMessage) -> RPCResponse | None: ...

    async def close(self) -> None: ...


async def _ping(params: Any) -> dict[str, Any]:
    return {}


class RPCDispatcher:
    """Routes requests to registered handlers for a single session.

    Each accepted connection gets its own dispatcher; only the handlers
    themselves (and whatever runtime they close over) are shared.
    """

    def __init__(
        self,
        disabled_methods: Iterable[str] = (),
        notifier: Notifier | None = None,
    ):
        self._methods: dict[str, RPCHandler] = {"ping": _ping}
        self._disabled = frozenset(disabled_methods)
        self._notifier = notifier
        self._closed = False

    def register(self, method: str, handler: RPCHandler) -> None:
        """Register an RPC method handler.

        Args:
            method: Method name (e.g., "tools/list").
            handler: Async function that takes params and returns the result.
        """
        self._methods[method] = handler

    @property
    def methods(self) -> list[str]:
        """Names of the methods this session will serve."""
        return sorted(m for m in self._methods if m not in self._disabled)

    async def handle(self, message: RPCMessage) -> RPCResponse | None:
        if isinstance(message, RPCResponse):
            # Replies to server-initiated requests; nothing waits on them here
            logger.debug("Ignoring client response", extra={"id": message.id})
            return None

        response = await self._dispatch(message)
        if message.is_notification:
            return None
        return response

    async def _dispatch(self, request: RPCRequest) -> RPCResponse:
        if request.method in self._disabled:
            return RPCResponse.error_response(
                request.id,
                ErrorCode.METHOD_NOT_FOUND,
                f"Method {request.method} is disabled",
            )

        handler = self._methods.get(request.method)
        if handler is None:
            return RPCResponse.error_response(
                request.id,
                ErrorCode.METHOD_NOT_FOUND,
                f"Method not found: {request.method}",
            )

        try:
            result = await handler(request.params if request.params is not None else {})
            return RPCResponse.success(request.id, result)
        except TypeError as e:
            return RPCResponse.error_response(
                request.id, ErrorCode.INVALID_PARAMS, f"Invalid params: {e}"
            )
        except Exception as e:
            logger.exception("RPC method error", extra={"method": request.method})
            return RPCResponse.error_response(
                request.id, ErrorCode.INTERNAL_ERROR, str(e)
            )

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification to the client of this session."""
        if self._notifier is None or self._closed:
            logger.debug("Dropping notification", extra={"method": method})
            return
        await self._notifier(RPCRequest(method=method, params=params))

    async def close(self) -> None:
        self._closed = True


def dispatcher_factory(
    methods: Mapping[str, RPCHandler] | None = None,
    disabled_methods: Iterable[str] = (),
) -> Callable[[Any], RPCDispatcher]:
    """Build a session factory that gives every session a fresh dispatcher.

    The returned callable takes the Session and wires the dispatcher's
    notifications to that session's writer.
    """
    registered = dict(methods or {})
    disabled = tuple(disabled_methods)

    def _create(session: Any) -> RPCDispatcher:
        dispatcher = RPCDispatcher(disabled_methods=disabled, notifier=session.send)
        for name, handler in registered.items():
            dispatcher.register(name, handler)
        return dispatcher

    return _create
