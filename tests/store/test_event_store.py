"""Tests for the event store: parsing, skipping, filtering and lookups."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest

from ekg.core.pipeline_config import ColumnMapping, Condition
from ekg.store.event_store import (
    EventStore,
    IngestionError,
    MalformedRecordError,
    parse_timestamp,
    read_csv_records,
)


class TestParseTimestamp:
    def test_z_suffix(self):
        assert parse_timestamp("2026-01-05T09:00:00Z") == datetime(2026, 1, 5, 9, 0, tzinfo=UTC)

    def test_naive_is_utc(self):
        assert parse_timestamp("2026-01-05 09:00:00").tzinfo is UTC

    def test_offset_preserved(self):
        ts = parse_timestamp("2026-01-05T10:00:00+01:00")
        assert ts.utcoffset() == timedelta(hours=1)
        assert ts == datetime(2026, 1, 5, 9, 0, tzinfo=UTC)

    def test_datetime_passthrough(self):
        ts = datetime(2026, 1, 5, 9, 0, tzinfo=timezone(timedelta(hours=2)))
        assert parse_timestamp(ts) is ts

    @pytest.mark.parametrize("value", [None, "", "   ", "yesterday", 42])
    def test_malformed(self, value):
        with pytest.raises(MalformedRecordError):
            parse_timestamp(value)


class TestIngest:
    def test_accepts_well_formed_rows(self, example_records):
        store = EventStore()
        report = store.ingest(example_records)

        assert report.total_rows == 3
        assert report.accepted == 3
        assert report.skipped == 0
        assert store.frozen
        assert [e.event_id for e in store] == ["E1", "E2", "E3"]
        assert [e.index for e in store.all()] == [0, 1, 2]

    def test_skips_malformed_rows_with_reasons(self):
        records = [
            {"id": "E1", "timestamp": "2026-01-05T09:00:00Z", "activity": "Submit"},
            {"id": "E2", "timestamp": "2026-01-05T09:01:00Z", "activity": ""},
            {"id": "E3", "timestamp": "not a date", "activity": "Decide"},
            {"id": "E4", "activity": "Decide"},
            {"id": "E1", "timestamp": "2026-01-05T09:02:00Z", "activity": "Decide"},
        ]
        store = EventStore()
        report = store.ingest(records)

        assert report.accepted == 1
        assert report.skipped == 4
        assert report.skip_reasons == {
            "missing activity": 1,
            "unparsable timestamp 'not a date'": 1,
            "missing timestamp": 1,
            "duplicate event id 'E1'": 1,
        }
        assert [err.row for err in report.errors] == [1, 2, 3, 4]
        assert len(store) == 1

    def test_missing_id_falls_back_to_row_number(self):
        store = EventStore()
        store.ingest([{"timestamp": "2026-01-05T09:00:00Z", "activity": "Submit"}])
        assert store.get("0").activity == "Submit"

    def test_fallback_id_never_displaces_an_explicit_id(self):
        records = [
            {"timestamp": "2026-01-05T09:00:00Z", "activity": "Submit"},
            {"id": "0", "timestamp": "2026-01-05T09:01:00Z", "activity": "Decide"},
        ]
        store = EventStore()
        report = store.ingest(records)

        assert report.accepted == 2
        assert report.skipped == 0
        assert store.get("0").activity == "Decide"
        assert store.get("row-0").activity == "Submit"
        assert [e.event_id for e in store] == ["row-0", "0"]

    def test_fallback_id_suffixed_when_namespace_taken(self):
        records = [
            {"timestamp": "2026-01-05T09:00:00Z", "activity": "Submit"},
            {"id": "0", "timestamp": "2026-01-05T09:01:00Z", "activity": "Review"},
            {"id": "row-0", "timestamp": "2026-01-05T09:02:00Z", "activity": "Decide"},
        ]
        store = EventStore()
        store.ingest(records)

        assert store.get("row-0-2").activity == "Submit"
        assert len({e.event_id for e in store}) == 3

    def test_filters_drop_rows(self):
        records = [
            {"id": "1", "timestamp": "2026-01-05T09:00:00Z", "activity": "W_Call", "lifecycle": "start"},
            {"id": "2", "timestamp": "2026-01-05T09:01:00Z", "activity": "W_Call", "lifecycle": "suspend"},
        ]
        store = EventStore(filters=[Condition(attribute="lifecycle", values=["suspend"])])
        report = store.ingest(records)

        assert report.accepted == 1
        assert report.filtered == 1
        assert store.get("2") is None

    def test_custom_columns(self):
        store = EventStore(columns=ColumnMapping(event_id="idx", timestamp="time", activity="Activity"))
        store.ingest([{"idx": "7", "time": "2026-01-05T09:00:00", "Activity": "A_Create", "case": "A1"}])
        event = store.get("7")
        assert event.activity == "A_Create"
        assert event.get("activity") == "A_Create"
        assert event.get("Activity") == "A_Create"
        assert event.get("case") == "A1"

    def test_empty_log_raises(self):
        with pytest.raises(IngestionError, match="empty"):
            EventStore().ingest([])

    def test_all_rows_rejected_raises_with_report(self):
        with pytest.raises(IngestionError) as excinfo:
            EventStore().ingest([{"id": "1", "activity": "x"}])
        assert excinfo.value.report.skipped == 1

    def test_ingest_runs_once(self, example_records):
        store = EventStore()
        store.ingest(example_records)
        with pytest.raises(IngestionError, match="frozen"):
            store.ingest(example_records)

    def test_events_are_immutable_after_ingest(self, example_records):
        raw = dict(example_records[0])
        store = EventStore()
        store.ingest([raw])
        raw["app"] = "changed"
        assert store.get("E1").get("app") == "A1"


class TestLookups:
    def test_events_of_attribute(self, loan_records):
        store = EventStore()
        store.ingest(loan_records)

        offers = [e.event_id for e in store.events_of("offer", "O1")]
        assert offers == ["L2", "L4", "L8", "L12"]
        assert list(store.events_of("offer", "missing")) == []

    def test_empty_values_not_indexed(self, loan_records):
        store = EventStore()
        store.ingest(loan_records)
        assert list(store.events_of("resource", "")) == []

    def test_concurrent_index_build(self, loan_records):
        store = EventStore()
        store.ingest(loan_records)
        results: list[list[str]] = []

        def _read() -> None:
            results.append([e.event_id for e in store.events_of("app", "A2")])

        threads = [threading.Thread(target=_read) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == [["L5", "L6", "L9", "L10"]] * 8


class TestReadCsvRecords:
    def test_reads_rows_as_dicts(self, tmp_path: Path):
        path = tmp_path / "log.csv"
        path.write_text("id,timestamp,activity,case\n1,2026-01-05T09:00:00,Submit,A1\n")
        assert list(read_csv_records(path)) == [
            {"id": "1", "timestamp": "2026-01-05T09:00:00", "activity": "Submit", "case": "A1"}
        ]
