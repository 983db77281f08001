"""Event store: ingestion and read access to immutable events."""

from ekg.store.event_store import EventStore, IngestionError, IngestReport, read_csv_records

__all__ = ["EventStore", "IngestReport", "IngestionError", "read_csv_records"]
