"""Immutable multi-perspective process graph.

A ProcessGraph is the frozen result of one construction run. It exposes typed
accessors for each node and edge kind, plus a generic property-graph view
(``nodes(kind)`` / ``edges(kind)``) used by exporters and downstream tooling.
"""

from __future__ import annotations

import functools
import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any

from ekg.core.models import (
    AggregatedDFEdge,
    CorrelationEdge,
    DirectlyFollowsEdge,
    EdgeKind,
    Entity,
    EntityKind,
    Event,
    EventClass,
    NodeKind,
    ObservationEdge,
    ReifiedRelation,
)
from ekg.ontology.loader import GraphSchemaError, validate_endpoints

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraphNode:
    """A node in the property-graph view.

    Attributes:
        id: Node identifier, unique across kinds.
        label: Node kind (Log, Event, Entity, Class).
        properties: Node attributes.
    """

    id: str
    label: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class GraphRelationship:
    """An edge in the property-graph view.

    Attributes:
        from_id: Source node ID.
        to_id: Target node ID.
        relationship_type: Edge kind (HAS, CORR, REL, DF, OBSERVED, DF_C).
        properties: Edge attributes (entity_type, count, ...).
    """

    from_id: str
    to_id: str
    relationship_type: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass
class GraphStats:
    """Node and edge counts of a process graph."""

    node_count: int = 0
    relationship_count: int = 0
    nodes_by_label: dict[str, int] = field(default_factory=dict)
    relationships_by_type: dict[str, int] = field(default_factory=dict)
    entities_by_type: dict[str, int] = field(default_factory=dict)
    df_by_entity_type: dict[str, int] = field(default_factory=dict)


def log_node_id(log_id: str) -> str:
    return f"Log:{log_id}"


def event_node_id(event_id: str) -> str:
    return f"Event:{event_id}"


def entity_node_id(entity: Entity) -> str:
    return f"Entity:{entity.uid}"


def class_node_id(event_class: EventClass) -> str:
    return f"Class:{event_class.uid}"


@dataclass(frozen=True)
class ProcessGraph:
    """Frozen output of a construction run."""

    log_id: str
    events: tuple[Event, ...] = ()
    entities: tuple[Entity, ...] = ()
    classes: tuple[EventClass, ...] = ()
    correlations: tuple[CorrelationEdge, ...] = ()
    relations: tuple[ReifiedRelation, ...] = ()
    df: tuple[DirectlyFollowsEdge, ...] = ()
    observations: tuple[ObservationEdge, ...] = ()
    dfc: tuple[AggregatedDFEdge, ...] = ()

    # -----------------------------------------------------------------
    # Typed accessors
    # -----------------------------------------------------------------

    @functools.cached_property
    def _events_by_id(self) -> dict[str, Event]:
        return {e.event_id: e for e in self.events}

    @functools.cached_property
    def _entities_by_key(self) -> dict[tuple[str, tuple[str, ...]], Entity]:
        return {(e.entity_type, e.key): e for e in self.entities}

    @functools.cached_property
    def _events_by_entity(self) -> dict[Entity, tuple[Event, ...]]:
        grouped: dict[Entity, list[Event]] = defaultdict(list)
        for c in self.correlations:
            grouped[c.entity].append(self._events_by_id[c.event_id])
        return {entity: tuple(sorted(events, key=lambda e: e.sort_key)) for entity, events in grouped.items()}

    @functools.cached_property
    def _dfc_by_key(self) -> dict[tuple[str, str, str, str], int]:
        return {(d.dimension, d.entity_type, d.source.key, d.target.key): d.count for d in self.dfc}

    def event(self, event_id: str) -> Event | None:
        return self._events_by_id.get(event_id)

    def entities_of(self, entity_type: str | None = None, kind: EntityKind | None = None) -> list[Entity]:
        return [
            e
            for e in self.entities
            if (entity_type is None or e.entity_type == entity_type) and (kind is None or e.kind is kind)
        ]

    def entity(self, entity_type: str, *key: str) -> Entity | None:
        return self._entities_by_key.get((entity_type, tuple(key)))

    def events_of_entity(self, entity: Entity) -> list[Event]:
        """Events correlated to ``entity``, ordered by (timestamp, ingestion index)."""
        return list(self._events_by_entity.get(entity, ()))

    def df_edges(self, entity_type: str | None = None) -> list[DirectlyFollowsEdge]:
        return [d for d in self.df if entity_type is None or d.entity_type == entity_type]

    def dfc_edges(self, dimension: str | None = None, entity_type: str | None = None) -> list[AggregatedDFEdge]:
        return [
            d
            for d in self.dfc
            if (dimension is None or d.dimension == dimension)
            and (entity_type is None or d.entity_type == entity_type)
        ]

    def dfc_count(self, dimension: str, source: str, target: str, entity_type: str) -> int:
        """Count of DF_C(source -> target) for a perspective, 0 if absent."""
        return self._dfc_by_key.get((dimension, entity_type, source, target), 0)

    # -----------------------------------------------------------------
    # Property-graph view
    # -----------------------------------------------------------------

    def nodes(self, kind: NodeKind | str) -> list[GraphNode]:
        """Enumerate nodes of one kind with their attributes."""
        kind = NodeKind(kind)
        if kind is NodeKind.LOG:
            return [GraphNode(id=log_node_id(self.log_id), label=kind.value, properties={"log_id": self.log_id})]
        if kind is NodeKind.EVENT:
            return [
                GraphNode(
                    id=event_node_id(e.event_id),
                    label=kind.value,
                    properties={
                        **dict(e.attributes),
                        "event_id": e.event_id,
                        "activity": e.activity,
                        "timestamp": e.timestamp.isoformat(),
                        "index": e.index,
                    },
                )
                for e in self.events
            ]
        if kind is NodeKind.ENTITY:
            return [GraphNode(id=entity_node_id(e), label=kind.value, properties=e.to_dict()) for e in self.entities]
        return [GraphNode(id=class_node_id(c), label=kind.value, properties=c.to_dict()) for c in self.classes]

    def edges(self, kind: EdgeKind | str) -> list[GraphRelationship]:
        """Enumerate edges of one kind with their attributes.

        Raises:
            GraphSchemaError: If an edge kind is not in the ontology.
        """
        kind = EdgeKind(kind)
        if kind is EdgeKind.HAS:
            rels = [
                _relationship(kind, NodeKind.LOG, NodeKind.EVENT, log_node_id(self.log_id), event_node_id(e.event_id))
                for e in self.events
            ]
        elif kind is EdgeKind.CORR:
            rels = [
                _relationship(
                    kind,
                    NodeKind.EVENT,
                    NodeKind.ENTITY,
                    event_node_id(c.event_id),
                    entity_node_id(c.entity),
                    {"entity_type": c.entity.entity_type},
                )
                for c in self.correlations
            ]
        elif kind is EdgeKind.REL:
            rels = [
                _relationship(
                    kind,
                    NodeKind.ENTITY,
                    NodeKind.ENTITY,
                    entity_node_id(r.source),
                    entity_node_id(r.target),
                    {"tag": r.tag},
                )
                for r in self.relations
            ]
        elif kind is EdgeKind.DF:
            rels = [
                _relationship(
                    kind,
                    NodeKind.EVENT,
                    NodeKind.EVENT,
                    event_node_id(d.source_id),
                    event_node_id(d.target_id),
                    {"entity_type": d.entity_type, "entity": d.entity_uid},
                )
                for d in self.df
            ]
        elif kind is EdgeKind.OBSERVED:
            rels = [
                _relationship(
                    kind,
                    NodeKind.EVENT,
                    NodeKind.CLASS,
                    event_node_id(o.event_id),
                    class_node_id(o.event_class),
                    {"dimension": o.event_class.dimension},
                )
                for o in self.observations
            ]
        else:
            rels = [
                _relationship(
                    kind,
                    NodeKind.CLASS,
                    NodeKind.CLASS,
                    class_node_id(d.source),
                    class_node_id(d.target),
                    {"entity_type": d.entity_type, "dimension": d.dimension, "count": d.count},
                )
                for d in self.dfc
            ]
        return rels

    def stats(self) -> GraphStats:
        nodes_by_label = {kind.value: len(self.nodes(kind)) for kind in NodeKind}
        rels_by_type = {kind.value: len(self._edge_source(kind)) for kind in EdgeKind}
        return GraphStats(
            node_count=sum(nodes_by_label.values()),
            relationship_count=sum(rels_by_type.values()),
            nodes_by_label=nodes_by_label,
            relationships_by_type=rels_by_type,
            entities_by_type=dict(Counter(e.entity_type for e in self.entities)),
            df_by_entity_type=dict(Counter(d.entity_type for d in self.df)),
        )

    def _edge_source(self, kind: EdgeKind) -> tuple[Any, ...]:
        return {
            EdgeKind.HAS: self.events,
            EdgeKind.CORR: self.correlations,
            EdgeKind.REL: self.relations,
            EdgeKind.DF: self.df,
            EdgeKind.OBSERVED: self.observations,
            EdgeKind.DF_C: self.dfc,
        }[kind]


def _relationship(
    kind: EdgeKind,
    source_label: NodeKind,
    target_label: NodeKind,
    from_id: str,
    to_id: str,
    properties: dict[str, Any] | None = None,
) -> GraphRelationship:
    try:
        validate_endpoints(kind.value, source_label.value, target_label.value)
    except GraphSchemaError:
        logger.error("Ontology rejects %s edge %s -> %s", kind, from_id, to_id)
        raise
    return GraphRelationship(
        from_id=from_id,
        to_id=to_id,
        relationship_type=kind.value,
        properties=properties or {},
    )
