"""
Structured client events, written as JSONL.

Every event passes through mask_secrets on its way in, so no sink ever
sees a password, passphrase or key, even if a caller forgot to mask.

Event types:
- CONNECT: connect() opened a transport (with its generation)
- AUTH: authenticate sent, auth_result, keyboard-interactive challenge
- STATE_CHANGE: ConnectionStatus moved
- PROMPT: prompt shown, queued, dismissed, dropped or rejected
- RATE_LIMIT: prompt rate limit hit or circuit breaker tripped
- SFTP: file operation or transfer started, finished, failed or cancelled
- DISCONNECT: session ended, with its classified reason and UI action
- ERROR: a WebSSHError, serialised with to_dict()

Each line of a JSONL log is {"event_type", "timestamp" (Unix ms), "data"}.
"""
from __future__ import annotations

import json
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Any, Iterator, Protocol

from webssh_client.redaction import mask_secrets

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    CONNECT = "CONNECT"
    AUTH = "AUTH"
    STATE_CHANGE = "STATE_CHANGE"
    PROMPT = "PROMPT"
    RATE_LIMIT = "RATE_LIMIT"
    SFTP = "SFTP"
    DISCONNECT = "DISCONNECT"
    ERROR = "ERROR"


_EVENT_TYPES = frozenset(e.value for e in EventType)


@dataclass
class Event:
    """One observed client event. data is already masked."""
    event_type: str
    timestamp: float = field(default_factory=lambda: time.time() * 1000)
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        assert self.event_type in _EVENT_TYPES, \
            f"Invalid event_type '{self.event_type}'. Must be one of: {sorted(_EVENT_TYPES)}"
        assert self.timestamp > 0, f"Timestamp must be positive, got {self.timestamp}"

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)

    @classmethod
    def from_json(cls, line: str) -> "Event":
        """
        Parse one JSONL line.

        Raises:
            ValueError: If the line is not a JSON event object
        """
        record = json.loads(line)
        if not isinstance(record, dict):
            raise ValueError("event line must be a JSON object")
        event_type = record.get("event_type")
        if event_type not in _EVENT_TYPES:
            raise ValueError(f"unknown event_type: {str(event_type)[:30]!r}")
        timestamp = record.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)) or timestamp <= 0:
            raise ValueError("event timestamp must be a positive number")
        data = record.get("data") or {}
        if not isinstance(data, dict):
            raise ValueError("event data must be an object")
        return cls(event_type=event_type, timestamp=timestamp, data=data)


class EventSink(Protocol):
    def emit(self, event: Event) -> None: ...


class EventCollector:
    """
    Keeps events in memory for tests and the CLI's --events dump.

    With max_events set, the oldest events are discarded once full and
    counted in dropped.
    """

    def __init__(self, max_events: int | None = None) -> None:
        assert max_events is None or max_events > 0, f"max_events must be positive, got {max_events}"
        self._events: deque[Event] = deque(maxlen=max_events)
        self.dropped = 0

    def emit(self, event: Event) -> None:
        assert isinstance(event, Event), f"Expected Event, got {type(event)}"
        if self._events.maxlen is not None and len(self._events) == self._events.maxlen:
            self.dropped += 1
        self._events.append(event)

    @property
    def events(self) -> list[Event]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()
        self.dropped = 0

    def get_by_type(self, event_type: str | EventType) -> list[Event]:
        wanted = EventType(event_type).value
        return [e for e in self._events if e.event_type == wanted]

    def last(self, event_type: str | EventType | None = None) -> Event | None:
        """Most recent event, optionally of one type."""
        events = self.get_by_type(event_type) if event_type is not None else self._events
        return events[-1] if events else None


class JSONLEventWriter:
    """Appends events to a JSONL file, flushing after every line."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._file: IO[str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self._path, "a", encoding="utf-8")

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None

    def emit(self, event: Event) -> None:
        assert self._file is not None, "Writer not opened. Call open() first."
        self._file.write(event.to_json() + "\n")
        self._file.flush()

    def __enter__(self) -> "JSONLEventWriter":
        self.open()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class EventEmitter:
    """
    Masks event data and fans it out to a collector, a JSONL file and any
    extra sinks.

    Args:
        collector: In-memory collector
        jsonl_path: JSONL log file, opened for append immediately
        sinks: Further sinks, called after the collector and the file
    """

    def __init__(
        self,
        collector: EventCollector | None = None,
        jsonl_path: Path | str | None = None,
        sinks: tuple[EventSink, ...] = (),
    ) -> None:
        self._collector = collector
        self._writer: JSONLEventWriter | None = None
        self._sinks: list[EventSink] = []

        if collector is not None:
            self._sinks.append(collector)
        if jsonl_path:
            self._writer = JSONLEventWriter(jsonl_path)
            self._writer.open()
            self._sinks.append(self._writer)
        self._sinks.extend(sinks)

    @property
    def collector(self) -> EventCollector | None:
        return self._collector

    def emit(self, event_type: str | EventType, **data: Any) -> Event:
        """Build an event from masked data and deliver it to every sink."""
        event = Event(event_type=EventType(event_type).value, data=mask_secrets(data))
        logger.debug("event %s %s", event.event_type, event.data)
        for sink in self._sinks:
            sink.emit(event)
        return event

    def close(self) -> None:
        if self._writer:
            self._writer.close()


def iter_jsonl_events(path: Path | str) -> Iterator[Event]:
    """
    Yield events from a JSONL log, skipping lines that do not parse.

    A log shared by several sessions can end in a half-written line, so a
    bad line is logged and skipped rather than ending the read.
    """
    path = Path(path)
    assert path.exists(), f"JSONL file not found: {path}"

    with open(path, "r", encoding="utf-8") as f:
        for number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield Event.from_json(line)
            except ValueError as e:
                logger.warning("%s:%d: skipping bad event line: %s", path, number, e)


def read_jsonl_events(path: Path | str) -> list[Event]:
    return list(iter_jsonl_events(path))
