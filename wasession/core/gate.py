"""One-shot latch guarding single emission of a token per request."""

from __future__ import annotations

import threading

PENDING = "pending"
FIRED = "fired"


class OneShotGate:
    def __init__(self) -> None:
        self._state = PENDING
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state

    @property
    def fired(self) -> bool:
        return self._state == FIRED

    def fire(self) -> bool:
        """Move to ``fired``. Only the first caller gets ``True``."""
        with self._lock:
            if self._state == FIRED:
                return False
            self._state = FIRED
            return True

    def __repr__(self) -> str:
        return f"OneShotGate(state={self._state!r})"
