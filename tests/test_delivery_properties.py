"""Property-based tests for delivery ordering.

Properties tested:
1. Successful delivery order equals admission order
2. Transient failures delay delivery but never reorder it
3. No more than one request is ever in flight
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Sequence

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from fakes import ImmediateTimer, ScriptedTransport
from quiver_analytics.telemetry.events import EventRecord, build_request
from quiver_analytics.telemetry.queue import EventQueue
from quiver_analytics.telemetry.scheduler import DeliveryScheduler

event_names = st.lists(st.text(min_size=1, max_size=12), max_size=30)
transient_statuses = st.lists(st.sampled_from([200, 500, 502, 503]), max_size=40)


async def _deliver(names: Sequence[str], outcomes: Sequence[int]) -> ScriptedTransport:
    transport = ScriptedTransport(outcomes)
    queue = EventQueue(Path("unused-queue.json"))
    scheduler = DeliveryScheduler(
        queue,
        transport,
        request_factory=lambda record: build_request(record, url="https://quiver.test/add/", auth_token="t"),
        timer_factory=ImmediateTimer,
    )
    for index, name in enumerate(names):
        queue.enqueue(EventRecord(name=name, player_id=index, timestamp=float(index)))
        scheduler.process_requests()

    async def until_empty() -> None:
        while len(queue) or scheduler.in_flight:
            await asyncio.sleep(0)

    await asyncio.wait_for(until_empty(), timeout=5)
    await scheduler.close()
    return transport


@settings(max_examples=50, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(names=event_names)
def test_delivery_order_matches_admission_order(names: List[str]):
    transport = asyncio.run(_deliver(names, []))

    assert transport.delivered == names
    assert transport.max_in_flight <= 1


@settings(max_examples=50, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(names=event_names, outcomes=transient_statuses)
def test_transient_failures_never_reorder(names: List[str], outcomes: List[int]):
    transport = asyncio.run(_deliver(names, outcomes))

    assert transport.delivered == names
    assert transport.max_in_flight <= 1
