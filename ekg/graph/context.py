"""Caller-owned construction context for one graph build.

The context holds the frozen event store and every registry and edge set the
pipeline stages derive from it. Each write is an idempotent upsert keyed by
the natural identity of the node or edge, guarded by a lock so stages may
process partitions concurrently. ``freeze()`` hands back an immutable
ProcessGraph.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping

from ekg.core.models import (
    AggregatedDFEdge,
    CorrelationEdge,
    DirectlyFollowsEdge,
    Entity,
    EntityKind,
    Event,
    EventClass,
    ObservationEdge,
    ReifiedRelation,
)
from ekg.graph.process_graph import ProcessGraph
from ekg.graph.registry import Registry
from ekg.store.event_store import EventStore

logger = logging.getLogger(__name__)


class GraphContext:
    """Mutable state of one construction run.

    Args:
        store: Event store; must already be frozen.
        log_id: Identifier of the Log node the events belong to.
    """

    def __init__(self, store: EventStore, log_id: str = "log") -> None:
        if not store.frozen:
            raise ValueError("GraphContext requires an ingested (frozen) event store")
        self.store = store
        self.log_id = log_id
        self.entities: Registry[tuple[str, tuple[str, ...]], Entity] = Registry()
        self.classes: Registry[tuple[str, str], EventClass] = Registry()

        self._lock = threading.Lock()
        self._correlations: dict[str, set[Entity]] = {}
        self._entity_events: dict[Entity, list[str]] = {}
        self._relations: set[ReifiedRelation] = set()
        self._df: dict[tuple[str, str, str], DirectlyFollowsEdge] = {}
        self._observations: dict[str, dict[str, EventClass]] = {}
        self._dfc: dict[tuple[EventClass, EventClass, str], int] = {}

    # -----------------------------------------------------------------
    # Entities and correlation
    # -----------------------------------------------------------------

    def upsert_entity(
        self,
        entity_type: str,
        key: tuple[str, ...],
        kind: EntityKind = EntityKind.BASE,
        constituents: tuple[str, ...] = (),
    ) -> Entity:
        entity, created = self.entities.upsert(
            (entity_type, key),
            lambda: Entity(entity_type=entity_type, key=key, kind=kind, constituents=constituents),
        )
        if created:
            logger.debug("Created %s entity %s", kind.value, entity.uid)
        return entity

    def correlate(self, event: Event, entity: Entity) -> bool:
        """Record CORR(event, entity). Returns False if it already existed."""
        with self._lock:
            linked = self._correlations.setdefault(event.event_id, set())
            if entity in linked:
                return False
            linked.add(entity)
            self._entity_events.setdefault(entity, []).append(event.event_id)
            return True

    def correlated_entities(self, event: Event, kind: EntityKind | None = None) -> frozenset[Entity]:
        with self._lock:
            linked = tuple(self._correlations.get(event.event_id, ()))
        return frozenset(e for e in linked if kind is None or e.kind is kind)

    def correlated_events(self, entity: Entity) -> list[Event]:
        """Events correlated to ``entity`` in ingestion order."""
        with self._lock:
            event_ids = list(self._entity_events.get(entity, ()))
        events = [self.store.get(event_id) for event_id in event_ids]
        return sorted((e for e in events if e is not None), key=lambda e: e.index)

    def correlated_entity_instances(self) -> list[Entity]:
        """Every entity with at least one correlated event."""
        with self._lock:
            return list(self._entity_events.keys())

    def relate(self, source: Entity, target: Entity) -> bool:
        """Record REL(source, target) tagged Reified. Returns False if it already existed."""
        relation = ReifiedRelation(source=source, target=target)
        with self._lock:
            if relation in self._relations:
                return False
            self._relations.add(relation)
            return True

    # -----------------------------------------------------------------
    # Directly-follows
    # -----------------------------------------------------------------

    def upsert_df(self, edge: DirectlyFollowsEdge) -> bool:
        key = (edge.source_id, edge.target_id, edge.entity_type)
        with self._lock:
            if key in self._df:
                return False
            self._df[key] = edge
            return True

    def remove_df(self, edge: DirectlyFollowsEdge) -> bool:
        with self._lock:
            return self._df.pop((edge.source_id, edge.target_id, edge.entity_type), None) is not None

    def df_edges(self) -> list[DirectlyFollowsEdge]:
        with self._lock:
            return list(self._df.values())

    # -----------------------------------------------------------------
    # Classification and aggregation
    # -----------------------------------------------------------------

    def upsert_class(self, dimension: str, key: str) -> EventClass:
        event_class, _ = self.classes.upsert((dimension, key), lambda: EventClass(dimension=dimension, key=key))
        return event_class

    def observe(self, event: Event, event_class: EventClass) -> bool:
        """Record OBSERVED(event, class); one class per event and dimension."""
        with self._lock:
            by_dimension = self._observations.setdefault(event.event_id, {})
            existing = by_dimension.get(event_class.dimension)
            if existing is not None:
                if existing != event_class:
                    raise ValueError(
                        f"Event {event.event_id} already observes {existing.uid} "
                        f"in dimension {event_class.dimension}"
                    )
                return False
            by_dimension[event_class.dimension] = event_class
            return True

    def observations_of(self, event_id: str) -> Mapping[str, EventClass]:
        with self._lock:
            return dict(self._observations.get(event_id, {}))

    def replace_dfc(self, counts: Mapping[tuple[EventClass, EventClass, str], int]) -> None:
        """Swap in a freshly computed set of DF_C counters."""
        with self._lock:
            self._dfc = {key: count for key, count in counts.items() if count > 0}

    def dfc_counts(self) -> dict[tuple[EventClass, EventClass, str], int]:
        with self._lock:
            return dict(self._dfc)

    # -----------------------------------------------------------------
    # Result
    # -----------------------------------------------------------------

    def freeze(self) -> ProcessGraph:
        """Return an immutable snapshot of the graph built so far."""
        events = self.store.all()
        index = {e.event_id: e.index for e in events}

        with self._lock:
            correlations = [
                CorrelationEdge(event_id=event_id, entity=entity)
                for event_id, linked in self._correlations.items()
                for entity in linked
            ]
            relations = list(self._relations)
            df = list(self._df.values())
            observations = [
                ObservationEdge(event_id=event_id, event_class=event_class)
                for event_id, by_dimension in self._observations.items()
                for event_class in by_dimension.values()
            ]
            dfc = [
                AggregatedDFEdge(source=source, target=target, entity_type=entity_type, count=count)
                for (source, target, entity_type), count in self._dfc.items()
            ]

        return ProcessGraph(
            log_id=self.log_id,
            events=events,
            entities=tuple(sorted(self.entities.values(), key=_entity_order)),
            classes=tuple(sorted(self.classes.values(), key=lambda c: (c.dimension, c.key))),
            correlations=tuple(sorted(correlations, key=lambda c: (index[c.event_id], _entity_order(c.entity)))),
            relations=tuple(sorted(relations, key=lambda r: (_entity_order(r.target), _entity_order(r.source)))),
            df=tuple(sorted(df, key=lambda d: (d.entity_type, index[d.source_id], index[d.target_id]))),
            observations=tuple(
                sorted(observations, key=lambda o: (index[o.event_id], o.event_class.dimension))
            ),
            dfc=tuple(
                sorted(
                    dfc,
                    key=lambda d: (d.dimension, d.entity_type, d.source.key, d.target.key),
                )
            ),
        )


def _entity_order(entity: Entity) -> tuple[str, str, tuple[str, ...]]:
    return (entity.kind.value, entity.entity_type, entity.key)
