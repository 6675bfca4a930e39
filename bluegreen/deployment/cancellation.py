"""Cooperative cancellation for orchestration runs."""

import threading
import time
from typing import Callable, Optional


class CancellationToken:
    """Flag checked by long-running steps between units of work."""

    def __init__(self):
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        return self._event.wait(max(0.0, seconds))


def pause(
    seconds: float,
    cancel_token: Optional[CancellationToken] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> bool:
    """Wait ``seconds`` and report whether ``cancel_token`` fired.

    An injected ``sleep`` (a test clock, usually) always wins; otherwise
    the wait wakes as soon as the token is cancelled.
    """
    if sleep is None and cancel_token is not None:
        return cancel_token.wait(seconds)
    (sleep or time.sleep)(max(0.0, seconds))
    return cancel_token is not None and cancel_token.cancelled
