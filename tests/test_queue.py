"""Unit tests for the event queue and its disk snapshot."""
import json
import logging

from quiver_analytics.telemetry.events import EventRecord
from quiver_analytics.telemetry.queue import EventQueue


def record(name: str) -> EventRecord:
    return EventRecord(name=name, player_id=7, properties={"level": 3}, timestamp=1700000000.5)


def test_fifo_operations(tmp_path):
    queue = EventQueue(tmp_path / "queue.json")
    assert queue.peek_front() is None
    assert queue.pop_front() is None

    first, second = record("a"), record("b")
    queue.enqueue(first)
    queue.enqueue(second)

    assert len(queue) == 2
    assert queue.peek_front() is first
    assert queue.pop_front() is first
    assert queue.peek_front() is second


def test_truncate_keeps_most_recent(tmp_path):
    queue = EventQueue(tmp_path / "queue.json")
    for index in range(5):
        queue.enqueue(record(f"e{index}"))

    dropped = queue.truncate_to_most_recent(2)

    assert dropped == 3
    assert [item.name for item in queue] == ["e3", "e4"]
    assert queue.truncate_to_most_recent(10) == 0


def test_save_caps_snapshot_and_warns(tmp_path, caplog):
    path = tmp_path / "queue.json"
    queue = EventQueue(path, max_saved=200)
    for index in range(250):
        queue.enqueue(record(f"e{index}"))

    with caplog.at_level(logging.WARNING, logger="quiver.queue"):
        assert queue.save_to_disk()

    stored = json.loads(path.read_text())
    assert len(stored) == 200
    assert stored[0]["name"] == "e50"
    assert stored[-1]["name"] == "e249"
    assert "dropped" in caplog.text


def test_load_restores_order_and_fields(tmp_path):
    path = tmp_path / "queue.json"
    original = EventQueue(path)
    original.enqueue(record("first"))
    original.enqueue(record("second"))
    original.save_to_disk()

    restored = EventQueue(path)
    assert restored.load_from_disk() == 2

    assert list(restored) == [record("first"), record("second")]


def test_load_appends_after_existing_records(tmp_path):
    path = tmp_path / "queue.json"
    path.write_text(json.dumps([record("saved").to_dict()]))
    queue = EventQueue(path)
    queue.enqueue(record("live"))

    queue.load_from_disk()

    assert [item.name for item in queue] == ["live", "saved"]


def test_load_missing_snapshot(tmp_path):
    assert EventQueue(tmp_path / "absent.json").load_from_disk() == 0


def test_corrupt_snapshot_is_ignored(tmp_path):
    path = tmp_path / "queue.json"
    path.write_text(json.dumps({"name": "not a list"}))
    queue = EventQueue(path)

    assert queue.load_from_disk() == 0
    assert len(queue) == 0


def test_remove_snapshot(tmp_path):
    path = tmp_path / "queue.json"
    path.write_text("[]")
    queue = EventQueue(path)

    queue.remove_snapshot()
    queue.remove_snapshot()

    assert not path.exists()


def test_save_failure_is_reported(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    queue = EventQueue(blocker / "queue.json")
    queue.enqueue(record("a"))

    assert queue.save_to_disk() is False


def test_save_keeps_events_from_earlier_snapshot(tmp_path):
    path = tmp_path / "queue.json"
    first = EventQueue(path)
    for index in range(3):
        first.enqueue(record(f"e{index}"))
    first.save_to_disk()

    second = EventQueue(path)
    second.enqueue(record("late"))
    assert second.save_to_disk()

    stored = json.loads(path.read_text())
    assert [item["name"] for item in stored] == ["e0", "e1", "e2", "late"]


def test_merged_save_is_capped_to_most_recent(tmp_path, caplog):
    path = tmp_path / "queue.json"
    earlier = EventQueue(path, max_saved=3)
    for index in range(3):
        earlier.enqueue(record(f"old{index}"))
    earlier.save_to_disk()

    later = EventQueue(path, max_saved=3)
    later.enqueue(record("new0"))
    later.enqueue(record("new1"))
    with caplog.at_level(logging.WARNING, logger="quiver.queue"):
        later.save_to_disk()

    stored = json.loads(path.read_text())
    assert [item["name"] for item in stored] == ["old2", "new0", "new1"]
    assert "2 events were dropped" in caplog.text


def test_save_overwrites_corrupt_snapshot(tmp_path):
    path = tmp_path / "queue.json"
    path.write_text("garbage")
    queue = EventQueue(path)
    queue.enqueue(record("a"))

    assert queue.save_to_disk()

    assert [item["name"] for item in json.loads(path.read_text())] == ["a"]
