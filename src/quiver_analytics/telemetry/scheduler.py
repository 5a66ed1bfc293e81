"""Delivery of queued events, one request at a time.

All work runs on the host's event loop: sends are asyncio tasks and pacing
uses loop timers. After every success the scheduler waits
``current_backoff_seconds`` before the next send; transient failures double
that delay up to ``max_backoff_seconds``.

Once draining starts, pacing is skipped and events are sent back to back.
The first failure while draining writes the remaining queue to disk.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Callable, List, Optional

from ..core.http import PendingRequest, Transport, TransportError
from ..core.timers import LoopTimer, TimerFactory
from .events import EventRecord
from .queue import EventQueue

logger = logging.getLogger("quiver.scheduler")

RequestFactory = Callable[[EventRecord], PendingRequest]


class DeliveryState(str, enum.Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    COOLING_DOWN = "cooling_down"
    BACKOFF = "backoff"
    DRAINING = "draining"
    DRAINED = "drained"


def is_client_error(status_code: Optional[int]) -> bool:
    return status_code is not None and 400 <= status_code <= 499


class DeliveryScheduler:
    """Sends the front of an :class:`EventQueue` with at most one request in flight."""

    def __init__(
        self,
        queue: EventQueue,
        transport: Transport,
        *,
        request_factory: RequestFactory,
        timer_factory: TimerFactory = LoopTimer,
        min_backoff_seconds: float = 2.0,
        max_backoff_seconds: float = 120.0,
    ) -> None:
        self.queue = queue
        self.transport = transport
        self.min_backoff_seconds = min_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.current_backoff_seconds = min_backoff_seconds
        self.exit_handled = asyncio.Event()
        self._request_factory = request_factory
        self._retry_timer = timer_factory(self._on_retry_timer)
        self._pacing: Optional[DeliveryState] = None
        self._in_flight: Optional[asyncio.Task[None]] = None
        self._draining = False
        self._drained = False
        self._exit_listeners: List[Callable[[], None]] = []

    @property
    def state(self) -> DeliveryState:
        if self._drained:
            return DeliveryState.DRAINED
        if self._in_flight is not None:
            return DeliveryState.IN_FLIGHT
        if self._draining:
            return DeliveryState.DRAINING
        if self._pacing is not None and self._retry_timer.is_running:
            return self._pacing
        return DeliveryState.IDLE

    @property
    def draining(self) -> bool:
        return self._draining

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    def add_exit_listener(self, callback: Callable[[], None]) -> None:
        self._exit_listeners.append(callback)

    def begin_drain(self) -> None:
        """Switch to draining. There is no way back."""

        if self._draining:
            return
        logger.info("Draining %s queued events", len(self.queue))
        self._draining = True
        self._pacing = None
        self._retry_timer.stop()

    def process_requests(self) -> None:
        """Send the front event unless a request is in flight or pacing is pending."""

        while self._in_flight is None and not self._is_pacing():
            record = self.queue.peek_front()
            if record is None:
                break
            try:
                request = self._request_factory(record)
            except (TypeError, ValueError) as exc:
                logger.error("Event '%s' was dropped because it could not be serialized: %s", record.name, exc)
                self.queue.pop_front()
                continue
            self._in_flight = asyncio.get_running_loop().create_task(self._deliver(record, request))
        if self._draining and not self._drained and self._in_flight is None and not self.queue:
            self._drained = True
            asyncio.get_running_loop().call_soon(self._emit_exit_handled)

    def persist_queue(self) -> bool:
        """Write pending events to disk and forget them in memory."""

        if not self.queue:
            return False
        saved = self.queue.save_to_disk()
        self.queue.clear()
        return saved

    async def wait_idle(self) -> None:
        while self._in_flight is not None:
            await asyncio.wait({self._in_flight})

    async def close(self) -> None:
        self._retry_timer.stop()
        self._pacing = None
        task = self._in_flight
        if task is not None:
            task.cancel()
            await asyncio.wait({task})
            self._in_flight = None

    async def _deliver(self, record: EventRecord, request: PendingRequest) -> None:
        logger.debug("Sending event '%s'", record.name)
        try:
            response = await self.transport.send(request)
        except TransportError as exc:
            logger.warning("Failed to send event '%s': %s", record.name, exc)
            self._in_flight = None
            self._handle_failure(record, None)
            return
        except Exception:
            logger.exception("Unexpected error while sending event '%s'", record.name)
            self._in_flight = None
            self._handle_failure(record, None)
            return
        self._in_flight = None
        if response.is_success:
            self._handle_success(record)
        else:
            self._handle_failure(record, response.status_code)

    def _pop_if_front(self, record: EventRecord) -> None:
        if self.queue.peek_front() is record:
            self.queue.pop_front()

    def _handle_success(self, record: EventRecord) -> None:
        self._pop_if_front(record)
        self.current_backoff_seconds = self.min_backoff_seconds
        if self._draining:
            self.process_requests()
        else:
            self._start_pacing(DeliveryState.COOLING_DOWN)

    def _handle_failure(self, record: EventRecord, status_code: Optional[int]) -> None:
        if is_client_error(status_code):
            self._pop_if_front(record)
            logger.warning(
                "Event '%s' was dropped because the server could not process it (status %s)",
                record.name,
                status_code,
            )
        elif status_code is not None:
            logger.warning("Event delivery failed with status %s; it will be retried", status_code)
        if not self._draining:
            self._start_pacing(DeliveryState.BACKOFF)
            self.current_backoff_seconds = min(self.current_backoff_seconds * 2, self.max_backoff_seconds)
        else:
            self.persist_queue()
            self.process_requests()

    def _start_pacing(self, state: DeliveryState) -> None:
        self._pacing = state
        self._retry_timer.start(self.current_backoff_seconds)

    def _is_pacing(self) -> bool:
        return self._pacing is not None and self._retry_timer.is_running

    def _on_retry_timer(self) -> None:
        self._pacing = None
        self.process_requests()

    def _emit_exit_handled(self) -> None:
        logger.info("Exit handled")
        self.exit_handled.set()
        for callback in list(self._exit_listeners):
            try:
                callback()
            except Exception:
                logger.exception("Exit listener %r failed", callback)
