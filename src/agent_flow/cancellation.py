"""Cancellation tokens for cooperative orchestration shutdown.

This module provides a CancellationToken that routers, parallel stages and
orchestrations check at the start of every public entry point and between
steps.

Key design:
- Token wraps a threading.Event, so it can be flipped from any thread
- Cooperative cancellation: work already inside a runnable unit is never
  interrupted; the next entry point or step boundary observes the flag
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable


class CancelledError(Exception):
    """Canonical cancellation exception for agent-flow.

    Raised when a router, parallel stage or orchestration is invoked after
    cancel() was requested. Distinct from asyncio.CancelledError, which
    signals task cancellation by the event loop.
    """

    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)
        self.message = message


@dataclass
class CancellationToken:
    """Mutable token for cooperative cancellation.

    Usage:
        token = CancellationToken()

        # At an entry point:
        token.raise_if_cancelled()

        # To cancel:
        token.cancel()
    """

    _event: threading.Event = field(default_factory=threading.Event, init=False)
    _callbacks: list[Callable[[], Any]] = field(default_factory=list, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation (idempotent).

        Triggers all registered callbacks on the first call only.
        """
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
        for cb in callbacks:
            cb()

    def reset(self) -> None:
        """Clear the flag so the owner can be invoked again."""
        self._event.clear()

    def on_cancel(self, callback: Callable[[], Any]) -> None:
        """Register callback for cancellation.

        Callback is invoked immediately if already cancelled.
        """
        with self._lock:
            self._callbacks.append(callback)
            already = self._event.is_set()
        if already:
            callback()

    def raise_if_cancelled(self, message: str = "Operation was cancelled") -> None:
        """Raise CancelledError if cancelled.

        Raises:
            CancelledError: If cancellation was requested.
        """
        if self._event.is_set():
            raise CancelledError(message)


__all__ = ["CancellationToken", "CancelledError"]
