"""Shared test fixtures for the EKG test suite.

Provides pipeline configurations, small event logs and a factory for
construction contexts over an ingested store.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from ekg.core.pipeline_config import (
    ClassifierSpec,
    EntityTypeSpec,
    PipelineConfig,
    ReificationSpec,
)
from ekg.graph.context import GraphContext
from ekg.store.event_store import EventStore

BASE_TIME = datetime(2026, 1, 5, 9, 0, 0, tzinfo=UTC)


def _ts(minutes: int) -> str:
    return (BASE_TIME + timedelta(minutes=minutes)).isoformat()


def _record(event_id: str, minutes: int, activity: str, **attrs: Any) -> dict[str, Any]:
    return {"id": event_id, "timestamp": _ts(minutes), "activity": activity, **attrs}


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    """Application / Offer / Resource perspectives, AO reified, two dimensions."""
    return PipelineConfig(
        entity_types=[
            EntityTypeSpec(name="Application", attribute="app"),
            EntityTypeSpec(name="Offer", attribute="offer"),
            EntityTypeSpec(name="Resource", attribute="resource"),
        ],
        reifications=[ReificationSpec(name="AO", constituents=("Application", "Offer"))],
        classifiers=[
            ClassifierSpec(name="Activity", attributes=("activity",)),
            ClassifierSpec(name="Resource", attributes=("resource",)),
        ],
    )


@pytest.fixture
def example_records() -> list[dict[str, Any]]:
    """Three events of one application over two offers; E3 has no resource."""
    return [
        _record("E1", 1, "Submit", app="A1", offer="O1", resource="R1"),
        _record("E2", 2, "Submit", app="A1", offer="O1", resource="R2"),
        _record("E3", 3, "Decide", app="A1", offer="O2", resource=None),
    ]


@pytest.fixture
def loan_records() -> list[dict[str, Any]]:
    """Two interleaved applications with offers, shared resources and timestamp ties."""
    return [
        _record("L1", 0, "A_Create", app="A1", resource="R1"),
        _record("L2", 1, "O_Create", app="A1", offer="O1", resource="R1"),
        _record("L3", 1, "O_Create", app="A1", offer="O2", resource="R2"),
        _record("L4", 2, "O_Sent", app="A1", offer="O1", resource="R2"),
        _record("L5", 3, "A_Create", app="A2", resource="R1"),
        _record("L6", 3, "O_Create", app="A2", offer="O3", resource="R1"),
        _record("L7", 4, "O_Sent", app="A1", offer="O2", resource=""),
        _record("L8", 5, "O_Accepted", app="A1", offer="O1", resource="R2"),
        _record("L9", 6, "O_Sent", app="A2", offer="O3", resource="R3"),
        _record("L10", 7, "A_Complete", app="A2", resource="R3"),
        _record("L11", 7, "A_Complete", app="A1", resource="R1"),
        _record("L12", 8, "O_Create", app="A1", offer="O1", resource="R1"),
    ]


@pytest.fixture
def make_context() -> Callable[..., GraphContext]:
    """Return a factory building a GraphContext over ingested records."""

    def _make(records: list[dict[str, Any]], config: PipelineConfig) -> GraphContext:
        store = EventStore(columns=config.columns, filters=config.filters)
        store.ingest(records)
        return GraphContext(store, log_id="test-log")

    return _make
