"""
Audit journal.

Fans committed audit events out to subscribers (JSONL file, SQLite store,
control-plane status) and keeps a bounded in-memory tail.
"""

import logging
import threading
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import orjson

from .types import AuditEvent

logger = logging.getLogger(__name__)

EventSink = Callable[[AuditEvent], None]


class EventJournal:
    """
    Publishes audit events to registered sinks.

    A failing sink is logged and skipped; publishing never raises, so a
    committed state change is never reported as failed because of audit I/O.
    """

    def __init__(self, tail_size: int = 1000):
        self._sinks: list[EventSink] = []
        self._tail: deque[AuditEvent] = deque(maxlen=tail_size)
        self._lock = threading.Lock()
        self._published = 0

    def subscribe(self, sink: EventSink) -> None:
        """Register a sink called for every published event."""
        self._sinks.append(sink)

    def publish(self, event: AuditEvent) -> None:
        """Publish one event to every sink."""
        with self._lock:
            self._tail.append(event)
            self._published += 1

        for sink in self._sinks:
            try:
                sink(event)
            except Exception as e:
                logger.error(f"Audit sink failed for {event.event_type}: {e}")

    def publish_all(self, events: list[AuditEvent]) -> None:
        for event in events:
            self.publish(event)

    @property
    def published_count(self) -> int:
        return self._published

    def recent(self, limit: Optional[int] = None) -> list[AuditEvent]:
        """Most recent events, oldest first."""
        with self._lock:
            events = list(self._tail)
        if limit is not None:
            events = events[-limit:]
        return events


class JsonlEventLog:
    """
    Appends audit events to a JSONL file.

    Each event is one orjson-encoded line. Large integers are written as
    strings so uint256 amounts survive any JSON reader.
    """

    def __init__(self, output_dir: str = "audit"):
        """
        Initialize the event log.

        Args:
            output_dir: Directory to store audit logs
        """
        self._output_dir = Path(output_dir)
        self._output_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self._filepath = self._output_dir / f"audit_{timestamp}.jsonl"
        self._file = None

        try:
            self._file = open(self._filepath, "ab")
            logger.info(f"Audit log: {self._filepath}")
        except OSError as e:
            logger.error(f"Failed to open audit log: {e}")

    @property
    def filepath(self) -> Path:
        return self._filepath

    def __call__(self, event: AuditEvent) -> None:
        self.write(event)

    def write(self, event: AuditEvent) -> None:
        """Append one event."""
        if not self._file:
            return

        record = event.to_dict()
        record["time"] = datetime.fromtimestamp(event.ts).isoformat()
        for key, value in record.items():
            if isinstance(value, int) and not isinstance(value, bool) and key != "ts":
                record[key] = str(value)

        try:
            self._file.write(orjson.dumps(record) + b"\n")
            self._file.flush()
        except OSError as e:
            logger.error(f"Failed to write audit event: {e}")

    def close(self) -> None:
        """Close the audit log file."""
        if self._file:
            try:
                self._file.close()
                logger.info(f"Audit log closed: {self._filepath}")
            except OSError as e:
                logger.error(f"Failed to close audit log: {e}")
            finally:
                self._file = None
