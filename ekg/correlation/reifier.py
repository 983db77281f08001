"""Entity reification: compound entities for co-occurring base entities.

A reification names an ordered tuple of base entity types, e.g.
``("Application", "Offer") -> "AO"``. Whenever an event is correlated to one
entity of every constituent type, the reified entity keyed by the ordered
constituent keys is upserted, each constituent gets a REL edge to it, and the
event is correlated to it. Reification only reads existing base correlations.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ekg.core.models import Entity, EntityKind, Event
from ekg.core.pipeline_config import ReificationSpec
from ekg.graph.context import GraphContext
from ekg.graph.parallel import run_partitioned

logger = logging.getLogger(__name__)


class EntityReifier:
    """Derives reified entities within a construction context."""

    def __init__(
        self,
        context: GraphContext,
        specs: Sequence[ReificationSpec],
        workers: int = 1,
    ) -> None:
        self._context = context
        self._specs = tuple(specs)
        self._workers = workers

    def reify(self) -> int:
        """Reify every event in the store.

        Returns:
            Number of CORR edges to reified entities created.
        """
        if not self._specs:
            return 0
        events = self._context.store.all()
        created = sum(run_partitioned(self._reify_partition, events, self._workers))
        logger.info(
            "Reified %d compound entities across %d types (%d new CORR edges)",
            sum(1 for e in self._context.entities if e.kind is EntityKind.REIFIED),
            len(self._specs),
            created,
        )
        return created

    def _reify_partition(self, events: Sequence[Event]) -> int:
        return sum(self.reify_event(event) for event in events)

    def reify_event(self, event: Event) -> int:
        base = {
            entity.entity_type: entity
            for entity in self._context.correlated_entities(event, kind=EntityKind.BASE)
        }
        created = 0
        for spec in self._specs:
            constituents = [base.get(entity_type) for entity_type in spec.constituents]
            if any(c is None for c in constituents):
                continue
            reified = self._context.upsert_entity(
                spec.name,
                tuple(c.key[0] for c in constituents),
                kind=EntityKind.REIFIED,
                constituents=spec.constituents,
            )
            for constituent in constituents:
                self._context.relate(constituent, reified)
            if self._context.correlate(event, reified):
                created += 1
        return created

    def constituents_of(self, entity: Entity) -> list[Entity]:
        """Base entities a reified entity was derived from, in constituent order."""
        if entity.kind is not EntityKind.REIFIED:
            return []
        found = []
        for entity_type, key in zip(entity.constituents, entity.key, strict=True):
            base = self._context.entities.get((entity_type, (key,)))
            if base is not None:
                found.append(base)
        return found
