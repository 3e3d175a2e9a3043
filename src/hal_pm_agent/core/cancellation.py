from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from .exceptions import OperationCancelled
from .logging_utils import log_event

logger = logging.getLogger(__name__)

CancelListener = Callable[[Any], None]


class CancellationToken:
    """Cancellation signal shared by every request of one agent turn.

    Listeners are one-shot: each fires at most once, with the reason passed to
    the first `cancel()` call.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Any = None
        self._listeners: list[CancelListener] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Any:
        return self._reason

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def cancel(self, reason: Any = None) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            self._notify(listener)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled(self._reason)

    @contextmanager
    def subscribe(self, listener: CancelListener) -> Iterator[None]:
        """Register `listener` for the duration of the block.

        The listener is removed on every exit path. If the token has already
        fired, the listener runs immediately.
        """
        if self._cancelled:
            self._notify(listener)
            yield
            return
        self._listeners.append(listener)
        try:
            yield
        finally:
            try:
                self._listeners.remove(listener)
            except ValueError:
                # Already consumed by cancel().
                pass

    def cancel_after(
        self, seconds: float, reason: Any = None
    ) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        if reason is None:
            reason = f"Turn time budget of {seconds:g}s exhausted"
        return loop.call_later(max(0.0, seconds), self.cancel, reason)

    def _notify(self, listener: CancelListener) -> None:
        try:
            listener(self._reason)
        except Exception as exc:
            log_event(
                logger,
                logging.WARNING,
                "cancellation.listener_failed",
                listener=getattr(listener, "__qualname__", repr(listener)),
                exc=exc,
            )


__all__ = ["CancelListener", "CancellationToken"]
