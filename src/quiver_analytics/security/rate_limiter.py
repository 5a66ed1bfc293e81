"""Fixed-window admission control for analytics events."""
from __future__ import annotations

import time
from typing import Callable


class RateLimiter:
    """Hard ceiling on the number of events admitted per window.

    Contains runaway event generation; it does not smooth traffic.
    """

    def __init__(
        self,
        *,
        max_requests: int,
        window_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self.window_start = clock()
        self.count_in_window = 0

    def try_admit(self) -> bool:
        now = self._clock()
        if now - self.window_start > self.window_seconds:
            self.window_start = now
            self.count_in_window = 0
        self.count_in_window += 1
        return self.count_in_window <= self.max_requests
