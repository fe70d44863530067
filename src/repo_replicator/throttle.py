"""Pacing for GitHub write calls.

The gate hands out one permit at a time, in request order, with a minimum spacing between
grants. Repository creation holds a permit for the whole API call.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class ThrottleGate:
    """FIFO, one-at-a-time permit with a minimum interval between grants.

    Callers take a ticket on entry; tickets are served strictly in order. A permit is
    granted once the previous holder has released and at least `interval_seconds` have
    passed since the previous grant.

    `close()` turns the gate off: every waiter (current and future) returns without a
    permit. The gate itself never raises.
    """

    def __init__(
        self,
        interval_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        self._interval = interval_seconds
        self._clock = clock
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._serving = 0
        self._held = False
        self._last_grant: float | None = None
        self._closed = False
        self._grants = 0

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    @property
    def grants(self) -> int:
        """Number of permits granted so far."""

        with self._cond:
            return self._grants

    def acquire(self) -> bool:
        """Block until this caller's turn; return False if the gate was closed meanwhile."""

        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1

            while not self._closed:
                if self._serving == ticket and not self._held:
                    delay = 0.0
                    if self._last_grant is not None:
                        delay = self._last_grant + self._interval - self._clock()
                    if delay <= 0:
                        self._held = True
                        self._last_grant = self._clock()
                        self._grants += 1
                        return True
                    self._cond.wait(timeout=delay)
                else:
                    self._cond.wait()
            return False

    def release(self) -> None:
        with self._cond:
            if not self._held:
                raise RuntimeError("release() called without a held permit")
            self._held = False
            self._serving += 1
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()
        logger.info("Throttle gate closed; pending callers will not be granted permits")

    @contextmanager
    def permit(self) -> Iterator[bool]:
        """Context manager form: yields whether a permit was granted and always releases it."""

        granted = self.acquire()
        try:
            yield granted
        finally:
            if granted:
                self.release()
