"""Entity correlation: links each event to the base entities it refers to.

Every configured entity type has an extractor (event -> optional key). A
non-null key upserts the base entity ``(type, key)`` and records a CORR edge;
a null key simply leaves the event out of that perspective.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ekg.core.models import Entity, EntityKind, Event
from ekg.core.pipeline_config import EntityTypeSpec
from ekg.graph.context import GraphContext
from ekg.graph.parallel import run_partitioned

logger = logging.getLogger(__name__)


class EntityCorrelator:
    """Correlates events to base entities within a construction context."""

    def __init__(
        self,
        context: GraphContext,
        entity_types: Sequence[EntityTypeSpec],
        workers: int = 1,
    ) -> None:
        self._context = context
        self._entity_types = tuple(entity_types)
        self._workers = workers

    @property
    def entity_types(self) -> list[str]:
        return [spec.name for spec in self._entity_types]

    def correlate(self) -> int:
        """Correlate every event in the store.

        Returns:
            Number of CORR edges created (0 when re-run on the same context).
        """
        events = self._context.store.all()
        created = sum(run_partitioned(self._correlate_partition, events, self._workers))
        logger.info(
            "Correlated %d events to %d base entities (%d new CORR edges)",
            len(events),
            sum(1 for e in self._context.entities if e.kind is EntityKind.BASE),
            created,
        )
        return created

    def _correlate_partition(self, events: Sequence[Event]) -> int:
        return sum(self.correlate_event(event) for event in events)

    def correlate_event(self, event: Event) -> int:
        created = 0
        for spec in self._entity_types:
            key = spec.extract(event)
            if key is None:
                continue
            entity = self._context.upsert_entity(spec.name, (key,))
            if self._context.correlate(event, entity):
                created += 1
        return created

    def entities_correlated_to(self, event: Event) -> frozenset[Entity]:
        """Base entities the event is correlated to."""
        return self._context.correlated_entities(event, kind=EntityKind.BASE)
