"""One-shot timers scheduled on the running asyncio event loop."""
from __future__ import annotations

import asyncio
from typing import Callable, Optional, Protocol


class Timer(Protocol):
    @property
    def is_running(self) -> bool:
        ...

    def start(self, seconds: float) -> None:
        ...

    def stop(self) -> None:
        ...


TimerFactory = Callable[[Callable[[], None]], Timer]


class LoopTimer:
    """Fires ``callback`` once, ``seconds`` after :meth:`start`.

    Restarting a running timer replaces the pending fire.
    """

    def __init__(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    def start(self, seconds: float) -> None:
        self.stop()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(seconds, self._fire)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()
