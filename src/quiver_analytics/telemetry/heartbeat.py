"""Periodic synthetic quit events.

Some platforms (mobile, web) give no reliable notice when the player leaves,
so quit events are sent periodically with the session id and reconciled by
the server. The first one fires early to catch immediate bounces; the
interval then grows by a fixed step up to a ceiling.
"""
from __future__ import annotations

import logging
from typing import Callable

from ..core.timers import LoopTimer, TimerFactory

logger = logging.getLogger("quiver.heartbeat")


class QuitHeartbeat:
    def __init__(
        self,
        on_beat: Callable[[], None],
        *,
        timer_factory: TimerFactory = LoopTimer,
        initial_interval_seconds: float = 10.0,
        step_seconds: float = 10.0,
        max_interval_seconds: float = 60.0,
    ) -> None:
        self._on_beat = on_beat
        self._timer = timer_factory(self._fire)
        self.interval_seconds = initial_interval_seconds
        self.step_seconds = step_seconds
        self.max_interval_seconds = max_interval_seconds
        self._stopped = False

    @property
    def is_running(self) -> bool:
        return self._timer.is_running

    def start(self) -> None:
        if self._stopped:
            return
        self._timer.start(self.interval_seconds)

    def stop(self) -> None:
        """Stop for good; later calls to :meth:`start` are ignored."""

        self._stopped = True
        self._timer.stop()

    def _fire(self) -> None:
        if self._stopped:
            return
        self._on_beat()
        self.interval_seconds = min(self.interval_seconds + self.step_seconds, self.max_interval_seconds)
        logger.debug("Next quit event in %ss", self.interval_seconds)
        self._timer.start(self.interval_seconds)
