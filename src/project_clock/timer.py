"""A single re-armable countdown used by the recorder."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Countdown(Protocol):
    def arm(self, delay: timedelta) -> int: ...

    def cancel(self) -> None: ...


class RearmableTimer:
    """Calls ``callback(token)`` once, ``delay`` after the most recent ``arm``.

    ``arm`` returns the token its firing will carry. Arming again replaces any
    pending countdown and a cancelled countdown never fires. A firing that has
    already started when it is replaced still reaches the callback with its
    old token, so the callback must compare it with the latest one.
    """

    def __init__(self, callback: Callable[[int], None]) -> None:
        self._callback = callback
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0

    def arm(self, delay: timedelta) -> int:
        with self._lock:
            self._cancel_locked()
            generation = self._generation
            timer = threading.Timer(delay.total_seconds(), self._fire, args=(generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()
        logger.debug("Timer armed for %s", delay)
        return generation

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    @property
    def armed(self) -> bool:
        with self._lock:
            return bool(self._timer and self._timer.is_alive())

    def _cancel_locked(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        try:
            self._callback(generation)
        except Exception:
            logger.exception("Timer callback failed.")
