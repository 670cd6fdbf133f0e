# src/stakepool/runtime/clock.py
from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SystemClock:
    """Wall clock in milliseconds, clamped so it never runs backwards."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        t = int(time.time() * 1000)
        with self._lock:
            if t < self._last:
                t = self._last
            self._last = t
            return t


class FixedClock:
    """Manually advanced clock for tests and replays."""

    def __init__(self, start_ms: int = 0) -> None:
        self._now = int(start_ms)

    def now_ms(self) -> int:
        return self._now

    def set_seconds(self, seconds: int) -> None:
        ms = int(seconds) * 1000
        if ms < self._now:
            raise ValueError("clock must not run backwards")
        self._now = ms

    def advance(self, seconds: int) -> None:
        self.set_seconds(self._now // 1000 + int(seconds))


__all__ = ["Clock", "FixedClock", "SystemClock"]
