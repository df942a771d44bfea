"""Explicit start/shutdown coordination for long-running components.

Termination requests are injected through request_shutdown(); nothing here
installs process-wide signal handlers. Entry points wire OS signals to
request_shutdown() themselves (see bind_signals).
"""

import asyncio
import logging
import signal
from collections.abc import Callable, Iterable
from typing import Protocol

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Service(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...


class Lifecycle:
    """Runs a service from start() until a termination request arrives."""

    def __init__(self, service: Service):
        self._service = service
        self._shutdown_requested = asyncio.Event()
        self._started = False
        self._stopped = False

    async def start(self) -> None:
        await self._service.start()
        self._started = True

    def request_shutdown(self) -> None:
        """Ask the service to stop. Safe to call from a signal handler."""
        if not self._shutdown_requested.is_set():
            logger.info("Shutdown requested")
        self._shutdown_requested.set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested.is_set()

    async def wait(self) -> None:
        await self._shutdown_requested.wait()

    async def shutdown(self) -> None:
        """Stop the service once; later calls are no-ops."""
        if self._stopped or not self._started:
            return
        self._stopped = True
        await self._service.stop()

    async def run(self) -> None:
        """Start, wait for a termination request, then shut down."""
        await self.start()
        try:
            await self.wait()
        finally:
            await self.shutdown()


def bind_signals(
    callback: Callable[[], None],
    signals: Iterable[signal.Signals] = TERMINATION_SIGNALS,
) -> Callable[[], None]:
    """Route termination signals on the running loop to ``callback``.

    Returns a function that removes the handlers again.
    """
    loop = asyncio.get_running_loop()
    bound = list(signals)
    for sig in bound:
        loop.add_signal_handler(sig, callback)

    def _unbind() -> None:
        for sig in bound:
            loop.remove_signal_handler(sig)

    return _unbind
