"""Event store: parses raw log records into immutable, ordered events.

Malformed rows (missing activity, missing or unparsable timestamp, duplicate
identifier) are skipped and counted rather than coerced. Rows matching a
configured filter are dropped before they become events. Rows without an
identifier are named by their row number unless an explicit id already uses
it. Once ingestion
completes the store is frozen and may be shared freely between threads.
"""

from __future__ import annotations

import csv
import dataclasses
import logging
import threading
from collections import Counter
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ekg.core.models import Event
from ekg.core.pipeline_config import ColumnMapping, Condition

logger = logging.getLogger(__name__)

# Only the first few malformed rows are logged at WARNING; the rest go to DEBUG.
_MAX_WARNED_ROWS = 5


class IngestionError(RuntimeError):
    """Raised when a log cannot be ingested at all.

    Attributes:
        report: The ingest report gathered before the failure, if any.
    """

    def __init__(self, message: str, report: IngestReport | None = None) -> None:
        self.report = report
        super().__init__(message)


class MalformedRecordError(ValueError):
    """A single raw record cannot be turned into an event."""


@dataclass
class RowError:
    """Why one raw row was skipped."""

    row: int
    reason: str


@dataclass
class IngestReport:
    """Summary of an ingestion run."""

    total_rows: int = 0
    accepted: int = 0
    skipped: int = 0
    filtered: int = 0
    errors: list[RowError] = field(default_factory=list)

    @property
    def skip_reasons(self) -> dict[str, int]:
        return dict(Counter(err.reason for err in self.errors))

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "accepted": self.accepted,
            "skipped": self.skipped,
            "filtered": self.filtered,
            "skip_reasons": self.skip_reasons,
        }


def parse_timestamp(ts: str | datetime) -> datetime:
    """Parse an ISO 8601 timestamp string or return a datetime as-is.

    Naive values are taken to be UTC.

    Raises:
        MalformedRecordError: If the value is missing or not ISO 8601.
    """
    if isinstance(ts, datetime):
        parsed = ts
    elif isinstance(ts, str) and ts.strip():
        text = ts.strip()
        # Handle Z suffix
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise MalformedRecordError(f"unparsable timestamp {ts!r}") from exc
    else:
        raise MalformedRecordError("missing timestamp")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def read_csv_records(path: str | Path, encoding: str = "utf-8") -> Iterator[dict[str, str]]:
    """Yield the rows of a CSV event log as dicts keyed by header."""
    with open(path, newline="", encoding=encoding) as f:
        yield from csv.DictReader(f)


class EventStore:
    """Holds the immutable events of one log.

    Args:
        columns: Raw columns holding the event id, timestamp and activity.
        filters: Rows matching any of these conditions are excluded.
    """

    def __init__(
        self,
        columns: ColumnMapping | None = None,
        filters: Sequence[Condition] = (),
    ) -> None:
        self._columns = columns or ColumnMapping()
        self._filters = tuple(filters)
        self._events: list[Event] = []
        self._by_id: dict[str, Event] = {}
        self._frozen = False
        self._indexes: dict[str, dict[str, list[Event]]] = {}
        self._index_lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def ingest(self, records: Iterable[Mapping[str, Any]]) -> IngestReport:
        """Parse raw records into events and freeze the store.

        Returns:
            IngestReport with accepted, skipped and filtered counts.

        Raises:
            IngestionError: If the store is already frozen, the input is empty,
                or no record could be accepted.
        """
        if self._frozen:
            raise IngestionError("Event store is frozen; ingest may only run once")

        report = IngestReport()
        unidentified: list[int] = []
        for row_number, raw in enumerate(records):
            report.total_rows += 1
            try:
                event, has_id = self._parse_record(row_number, raw)
            except MalformedRecordError as exc:
                report.skipped += 1
                report.errors.append(RowError(row=row_number, reason=str(exc)))
                log = logger.warning if report.skipped <= _MAX_WARNED_ROWS else logger.debug
                log("Skipping malformed row %d: %s", row_number, exc)
                continue

            if any(cond.matches(event) for cond in self._filters):
                report.filtered += 1
                continue

            if has_id:
                self._by_id[event.event_id] = event
            else:
                unidentified.append(len(self._events))
            self._events.append(event)
            report.accepted += 1

        self._assign_fallback_ids(unidentified)

        if report.total_rows == 0:
            raise IngestionError("Event log is empty", report)
        if report.accepted == 0:
            raise IngestionError(
                f"No events accepted from {report.total_rows} rows "
                f"({report.skipped} malformed, {report.filtered} filtered)",
                report,
            )

        self._frozen = True
        logger.info(
            "Ingested %d events from %d rows (%d malformed, %d filtered)",
            report.accepted,
            report.total_rows,
            report.skipped,
            report.filtered,
        )
        return report

    def _parse_record(self, row_number: int, raw: Mapping[str, Any]) -> tuple[Event, bool]:
        """Return the parsed event and whether the row carried its own identifier."""
        if not isinstance(raw, Mapping):
            raise MalformedRecordError("record is not a mapping")

        activity = raw.get(self._columns.activity)
        if activity is None or not str(activity).strip():
            raise MalformedRecordError("missing activity")

        timestamp = parse_timestamp(raw.get(self._columns.timestamp))

        raw_id = raw.get(self._columns.event_id)
        has_id = raw_id is not None and bool(str(raw_id).strip())
        # Rows without an id get a provisional one, settled once every explicit id is known
        event_id = str(raw_id).strip() if has_id else str(row_number)
        if has_id and event_id in self._by_id:
            raise MalformedRecordError(f"duplicate event id {event_id!r}")

        event = Event(
            event_id=event_id,
            timestamp=timestamp,
            activity=str(activity).strip(),
            index=len(self._events),
            attributes=dict(raw),
        )
        return event, has_id

    def _assign_fallback_ids(self, positions: list[int]) -> None:
        """Name rows that had no identifier without taking an explicit one.

        The row number is kept when it is free; otherwise ``row-<n>`` is used,
        with a numeric suffix if even that is taken.
        """
        for position in positions:
            event = self._events[position]
            row = event.event_id
            event_id = row
            attempt = 0
            while event_id in self._by_id:
                attempt += 1
                event_id = f"row-{row}" if attempt == 1 else f"row-{row}-{attempt}"
            if event_id != row:
                logger.debug("Row %s has no id and its row number is taken; using %s", row, event_id)
                event = dataclasses.replace(event, event_id=event_id)
                self._events[position] = event
            self._by_id[event_id] = event

    # -----------------------------------------------------------------
    # Read access
    # -----------------------------------------------------------------

    def all(self) -> tuple[Event, ...]:
        """Return every event in ingestion order."""
        return tuple(self._events)

    def get(self, event_id: str) -> Event | None:
        return self._by_id.get(event_id)

    def events_of(self, attribute: str, key: str) -> Iterator[Event]:
        """Lazily yield the events whose ``attribute`` equals ``key``."""
        yield from self._index_for(attribute).get(str(key), ())

    def _index_for(self, attribute: str) -> dict[str, list[Event]]:
        with self._index_lock:
            index = self._indexes.get(attribute)
            if index is None:
                index = {}
                for event in self._events:
                    value = event.get(attribute)
                    if value is not None:
                        index.setdefault(str(value), []).append(event)
                if self._frozen:
                    self._indexes[attribute] = index
            return index

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)
