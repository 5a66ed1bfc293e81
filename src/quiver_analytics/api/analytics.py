"""Public entry point for sending analytics events to Quiver.

Build one :class:`Analytics` per process, ``await start()`` it on the host's
event loop, and call :meth:`Analytics.add_event` from anywhere on that loop.
Call :meth:`Analytics.handle_exit` (or ``await stop()``) when the player
quits so pending events get a chance to be delivered or saved to disk.

Delivery favors performance over accuracy: events may be dropped rather
than slow down the host application.
"""
from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
from typing import Any, Callable, Mapping, Optional

from ..core.config import Settings, get_settings
from ..core.http import HttpTransport, PendingRequest, Transport
from ..core.logging import setup_logging
from ..core.timers import LoopTimer, TimerFactory
from ..security.consent import ConsentGate, ConsentStore
from ..security.rate_limiter import RateLimiter
from ..telemetry.events import EventRecord, build_request, create_event, default_properties
from ..telemetry.heartbeat import QuitHeartbeat
from ..telemetry.queue import EventQueue
from ..telemetry.scheduler import DeliveryScheduler, DeliveryState

logger = logging.getLogger("quiver.api")

LAUNCH_EVENT_NAME = "Launched game"
QUIT_EVENT_NAME = "Quit game"


class Analytics:
    """Queues events and delivers them to the Quiver server."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[Transport] = None,
        timer_factory: TimerFactory = LoopTimer,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session_id = secrets.randbits(64)
        self.consent = ConsentGate(
            ConsentStore(self.settings.config_file_path),
            auth_token=self.settings.auth_token,
            consent_required=self.settings.consent_required,
        )
        self.rate_limiter = RateLimiter(
            max_requests=self.settings.max_events_per_window,
            window_seconds=self.settings.rate_window_seconds,
            clock=clock or time.monotonic,
        )
        self.queue = EventQueue(self.settings.queue_file_path, max_saved=self.settings.max_queue_size_on_disk)
        self.transport = transport or HttpTransport.from_settings(self.settings)
        self.scheduler = DeliveryScheduler(
            self.queue,
            self.transport,
            request_factory=self._build_request,
            timer_factory=timer_factory,
            min_backoff_seconds=self.settings.min_retry_seconds,
            max_backoff_seconds=self.settings.max_retry_seconds,
        )
        self.heartbeat = QuitHeartbeat(
            self._on_heartbeat,
            timer_factory=timer_factory,
            initial_interval_seconds=self.settings.initial_quit_event_interval_seconds,
            step_seconds=self.settings.quit_event_interval_step_seconds,
            max_interval_seconds=self.settings.max_quit_event_interval_seconds,
        )
        self._defaults = default_properties(
            session_id=self.session_id,
            debug_build=self.settings.debug_build,
            export_template=self.settings.export_template,
        )
        self._started = False

    @property
    def player_id(self) -> int:
        return self.consent.player_id

    @property
    def state(self) -> DeliveryState:
        return self.scheduler.state

    async def start(self) -> None:
        """Load persisted state and begin delivering events."""

        if self._started:
            return
        self._started = True
        if self.settings.configure_logging:
            setup_logging(self.settings.log_level)
        self.consent.load()
        logger.info(
            "Quiver Analytics started (collection %s)",
            "enabled" if self.consent.is_collection_enabled() else "disabled",
        )
        if self.settings.queue_file_path.exists():
            self.queue.load_from_disk()
            self.queue.remove_snapshot()
            self.scheduler.process_requests()
        if self.settings.auto_add_event_on_launch:
            self.add_event(LAUNCH_EVENT_NAME)
        if self.settings.auto_add_event_on_quit:
            self.heartbeat.start()

    async def stop(self, timeout: Optional[float] = 5.0) -> bool:
        """Handle exit, wait for the queue to drain, then release the transport.

        Events still queued when ``timeout`` expires are saved to disk.
        Returns whether draining finished in time.
        """

        self.handle_exit()
        drained = await self.wait_exit_handled(timeout)
        if not drained:
            logger.warning("Timed out draining analytics events; saving the rest to disk")
            await self.scheduler.close()
            self.scheduler.persist_queue()
        else:
            await self.scheduler.close()
        await self.transport.aclose()
        return drained

    # Consent

    def should_show_consent_dialog(self) -> bool:
        return self.consent.should_prompt_user()

    def approve_data_collection(self) -> None:
        self.consent.approve()

    def deny_data_collection(self) -> None:
        self.consent.deny()

    # Events

    def add_event(self, name: str, properties: Optional[Mapping[str, Any]] = None) -> bool:
        """Queue an event for delivery. Names must be 50 characters or less.

        Returns whether the event was admitted to the queue.
        """

        if not self.consent.is_collection_enabled():
            self.scheduler.process_requests()
            return False
        if len(name) > self.settings.max_event_name_length:
            logger.error(
                "Event name '%s' is too long. Must be %s characters or less.",
                name,
                self.settings.max_event_name_length,
            )
            self.scheduler.process_requests()
            return False
        if not self.rate_limiter.try_admit():
            logger.warning("Event '%s' was dropped because the max event rate was exceeded", name)
            return False
        try:
            json.dumps(dict(properties or {}))
        except (TypeError, ValueError) as exc:
            logger.error("Event '%s' has properties that are not JSON serializable: %s", name, exc)
            self.scheduler.process_requests()
            return False
        record = create_event(
            name,
            player_id=self.player_id,
            defaults=self._defaults,
            properties=properties,
        )
        self.queue.enqueue(record)
        self.scheduler.process_requests()
        return True

    def handle_exit(self) -> None:
        """Drain the queue as fast as possible, saving leftovers to disk on failure."""

        self.heartbeat.stop()
        self.scheduler.begin_drain()
        if self.settings.auto_add_event_on_quit:
            self.add_event(QUIT_EVENT_NAME)
        self.scheduler.process_requests()

    def persist_queue(self) -> bool:
        """Save pending events to disk now; they are delivered on the next start."""

        return self.scheduler.persist_queue()

    def on_exit_handled(self, callback: Callable[[], None]) -> None:
        self.scheduler.add_exit_listener(callback)

    async def wait_exit_handled(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self.scheduler.exit_handled.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def _build_request(self, record: EventRecord) -> PendingRequest:
        return build_request(record, url=self.settings.add_event_url, auth_token=self.settings.auth_token)

    def _on_heartbeat(self) -> None:
        self.add_event(QUIT_EVENT_NAME)
