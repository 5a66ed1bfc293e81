"""In-memory FIFO of pending events with a one-shot disk snapshot.

The snapshot is not a durable log. It is written when events could not be
delivered before exit, read once on the next start, and then removed.
"""
from __future__ import annotations

from collections import deque
import json
import logging
from pathlib import Path
from typing import Deque, Iterator, List, Optional

from .events import EventRecord

logger = logging.getLogger("quiver.queue")


class EventQueue:
    """Ordered buffer of events awaiting delivery.

    Records are appended at the back and only ever removed from the front.
    """

    def __init__(self, snapshot_path: Path, *, max_saved: int = 200) -> None:
        if max_saved < 1:
            raise ValueError(f"max_saved must be >= 1, got {max_saved}")
        self.snapshot_path = Path(snapshot_path)
        self.max_saved = max_saved
        self._records: Deque[EventRecord] = deque()

    def enqueue(self, record: EventRecord) -> None:
        self._records.append(record)

    def peek_front(self) -> Optional[EventRecord]:
        return self._records[0] if self._records else None

    def pop_front(self) -> Optional[EventRecord]:
        return self._records.popleft() if self._records else None

    def truncate_to_most_recent(self, count: int) -> int:
        """Discard the oldest records so at most ``count`` remain.

        Returns the number of records discarded.
        """

        dropped = 0
        while len(self._records) > max(count, 0):
            self._records.popleft()
            dropped += 1
        return dropped

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[EventRecord]:
        return iter(self._records)

    def save_to_disk(self) -> bool:
        """Write the queue to the snapshot file, favoring the most recent events.

        Events already in an unconsumed snapshot are kept ahead of the queue.
        """

        stored = self._read_snapshot()
        if stored:
            self._records.extendleft(reversed(stored))
        dropped = self.truncate_to_most_recent(self.max_saved)
        if dropped:
            logger.warning("Request queue overloaded; %s events were dropped", dropped)
        payload = json.dumps([record.to_dict() for record in self._records])
        try:
            self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            self.snapshot_path.write_text(payload, encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to save event queue to %s: %s", self.snapshot_path, exc)
            return False
        logger.info("Saved %s undelivered events to %s", len(self._records), self.snapshot_path)
        return True

    def load_from_disk(self) -> int:
        """Append the events stored in the snapshot file, if any.

        Returns the number of events loaded. A corrupt snapshot is discarded.
        """

        records = self._read_snapshot()
        self._records.extend(records)
        if records:
            logger.info("Loaded %s undelivered events from %s", len(records), self.snapshot_path)
        return len(records)

    def remove_snapshot(self) -> None:
        try:
            self.snapshot_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Failed to remove event queue snapshot %s: %s", self.snapshot_path, exc)

    def _read_snapshot(self) -> List[EventRecord]:
        if not self.snapshot_path.exists():
            return []
        try:
            raw = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError("snapshot is not a list of events")
            return [EventRecord.from_dict(item) for item in raw]
        except (OSError, ValueError, TypeError, KeyError) as exc:
            logger.warning("Ignoring unreadable event queue snapshot %s: %s", self.snapshot_path, exc)
            return []
