"""Cancellation token and signal handlers for a run."""

from __future__ import annotations

import signal
import threading
from typing import Callable

from clonezilla_usb.logging import get_logger
from clonezilla_usb.storage.exceptions import OperationCancelled


log = get_logger(source="signal")

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationToken:
    """Shared flag set once a run has been asked to stop."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = "Operation canceled by user"
        self.shielded = False

    def shield(self) -> None:
        """Ignore further signals; set once cleanup starts."""
        self.shielded = True

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason)

    def wait(self, seconds: float) -> None:
        """Sleep for ``seconds``, returning early and raising if cancelled."""
        if self._event.wait(seconds):
            raise OperationCancelled(self.reason)


def install_signal_handlers(token: CancellationToken) -> Callable[[], None]:
    """Route SIGINT and SIGTERM into ``token``.

    The handlers set the token and raise OperationCancelled in the main
    thread, so a blocking call unwinds through the workflow's finally blocks.

    Returns:
        A callable that restores the previous handlers
    """
    previous = {}

    def _handler(signum, _frame):
        name = signal.Signals(signum).name
        if token.cancelled or token.shielded:
            # Ignored while cleanup unwinds
            log.warning(f"Received {name}, still cleaning up")
            return
        log.warning(f"Received {name}, cancelling")
        reason = (
            "Operation canceled by user"
            if signum == signal.SIGINT
            else f"Terminated by {name}"
        )
        token.cancel(reason)
        raise OperationCancelled(reason)

    for signum in HANDLED_SIGNALS:
        previous[signum] = signal.getsignal(signum)
        signal.signal(signum, _handler)

    def restore() -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    return restore
