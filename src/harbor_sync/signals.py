"""
Interrupt handling for a running sync.

An interrupted sync must not delete anything: the deletion set is only correct
once every upload of the run has landed. `GracefulShutdown` therefore turns the
first SIGINT or SIGTERM into a stop request that upload workers check before
taking their next file, and the pipeline raises `SyncInterruptedError` instead
of moving on to deletion and the cache write. A repeated signal aborts the
process at once.
"""

import asyncio
import logging
import os
import signal
from typing import Any, Dict, Optional, Sequence

logger: logging.Logger = logging.getLogger(__name__)

_HANDLED_SIGNALS: Sequence[signal.Signals] = (signal.SIGINT, signal.SIGTERM)


class GracefulShutdown:
    """
    Async context manager exposing interrupts as an `asyncio.Event`.

    Handlers are registered on the running loop on entry, and the handlers
    that were in place before are put back on exit.

    Attributes:
        received (signal.Signals, optional): The signal that requested the
            stop, if any.
    """

    def __init__(self, signals: Sequence[signal.Signals] = _HANDLED_SIGNALS) -> None:
        self._signals: Sequence[signal.Signals] = signals
        self._event: asyncio.Event = asyncio.Event()
        self._previous: Dict[signal.Signals, Any] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.received: Optional[signal.Signals] = None

    def _on_signal(self, sig: signal.Signals) -> None:
        if self.received is not None:
            logger.critical(
                f"{sig.name} received again; aborting without waiting for "
                "in-flight uploads."
            )
            os._exit(128 + sig.value)
        self.received = sig
        logger.warning(
            f"{sig.name} received; finishing in-flight uploads, then stopping. "
            "Stale files will not be deleted and the file list cache is left "
            f"as is. Send {sig.name} again to abort immediately."
        )
        self._event.set()

    async def __aenter__(self) -> asyncio.Event:
        """
        Registers the handlers.

        Returns:
            asyncio.Event: Set when the first handled signal arrives.
        """
        self._loop = asyncio.get_running_loop()
        for sig in self._signals:
            previous: Any = signal.getsignal(sig)
            try:
                self._loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # No loop signal support here (non-main thread or Windows).
                logger.warning(
                    f"{sig.name} will not stop the sync between uploads: {e}"
                )
                continue
            self._previous[sig] = previous
        return self._event

    async def __aexit__(self, *args: Any) -> None:
        """Removes the handlers and reinstates the previous ones."""
        if self._loop is None:
            return
        for sig, previous in self._previous.items():
            self._loop.remove_signal_handler(sig)
            if previous is not None:
                signal.signal(sig, previous)
        self._previous.clear()
