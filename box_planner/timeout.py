from __future__ import annotations

import time
from typing import Optional, Protocol

from box_planner.errors import PackingTimeoutError


class TimeoutChecker(Protocol):
    def start(self, start_time: Optional[float] = None) -> None: ...

    def throw_on_timeout(self, message: str = "Exceeded the timeout") -> None: ...


class DefaultTimeoutChecker:
    """Wall-clock budget for one packing run, checked cooperatively."""

    def __init__(self, timeout: float, clock=time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self._start_time: Optional[float] = None

    def start(self, start_time: Optional[float] = None) -> None:
        self._start_time = self._clock() if start_time is None else start_time

    @property
    def spent_time(self) -> float:
        if self._start_time is None:
            return 0.0
        return self._clock() - self._start_time

    def throw_on_timeout(self, message: str = "Exceeded the timeout") -> None:
        if self._start_time is None:
            self.start()
        spent = self.spent_time
        if spent >= self.timeout:
            raise PackingTimeoutError(message, spent, self.timeout)
