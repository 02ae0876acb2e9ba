"""Unit tests for interrupt handling."""

import asyncio
import signal
from unittest.mock import MagicMock, patch

import pytest

from harbor_sync.signals import GracefulShutdown


@pytest.mark.asyncio
async def test_first_signal_sets_event_and_handlers_are_restored() -> None:
    """
    Tests the shutdown context manager.

    Arrange:
        - Record the current SIGTERM handler.
    Act:
        - Raise SIGTERM inside the context.
    Assert:
        - The stop is requested and attributed to SIGTERM, and the old
          handler is back afterwards.
    """
    previous = signal.getsignal(signal.SIGTERM)
    guard: GracefulShutdown = GracefulShutdown()

    async with guard as shutdown_event:
        assert not shutdown_event.is_set()
        signal.raise_signal(signal.SIGTERM)
        await asyncio.sleep(0.01)
        assert shutdown_event.is_set()

    assert guard.received is signal.SIGTERM
    assert signal.getsignal(signal.SIGTERM) == previous


def test_second_signal_aborts_immediately() -> None:
    """Tests that a repeated signal exits without waiting for uploads."""
    guard: GracefulShutdown = GracefulShutdown()
    exit_mock: MagicMock = MagicMock()

    with patch("harbor_sync.signals.os._exit", exit_mock):
        guard._on_signal(signal.SIGINT)
        exit_mock.assert_not_called()
        guard._on_signal(signal.SIGINT)

    exit_mock.assert_called_once_with(128 + signal.SIGINT.value)
