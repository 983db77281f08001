"""Core data model for the event knowledge graph.

Events are immutable once ingested. Entities and classes are value objects
identified by their natural keys, so upserting them into a keyed registry is
idempotent. Every edge type is a frozen dataclass whose equality is its
upsert key.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any


class NodeKind(enum.StrEnum):
    """Node labels of the graph (see ekg_ontology.yaml)."""

    LOG = "Log"
    EVENT = "Event"
    ENTITY = "Entity"
    CLASS = "Class"


class EdgeKind(enum.StrEnum):
    """Relationship types of the graph (see ekg_ontology.yaml)."""

    HAS = "HAS"
    CORR = "CORR"
    REL = "REL"
    DF = "DF"
    OBSERVED = "OBSERVED"
    DF_C = "DF_C"


class EntityKind(enum.StrEnum):
    BASE = "base"
    REIFIED = "reified"


REIFIED_TAG = "Reified"


def _escape(part: str, separator: str) -> str:
    """Escape backslashes and ``separator`` so joined identifiers stay unambiguous."""
    return part.replace("\\", "\\\\").replace(separator, "\\" + separator)


def _normalize(value: Any) -> Any:
    """Treat empty strings as missing values."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


@dataclass(frozen=True)
class Event:
    """An immutable, timestamped occurrence of an activity.

    Attributes:
        event_id: Unique identifier within the log.
        timestamp: Timezone-aware occurrence time.
        activity: Activity label.
        index: Position among accepted events; breaks timestamp ties.
        attributes: Read-only raw attributes (correlation fields, lifecycle, ...).
    """

    event_id: str
    timestamp: datetime
    activity: str
    index: int
    attributes: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, hash=False
    )

    def __post_init__(self) -> None:
        if not isinstance(self.attributes, MappingProxyType):
            object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.timestamp, self.index)

    def get(self, name: str) -> Any:
        """Return a raw attribute value, or None when absent or empty.

        ``activity`` and ``event_id`` resolve to the parsed fields when the raw
        record used a different column name for them.
        """
        if name in self.attributes:
            return _normalize(self.attributes[name])
        if name == "activity":
            return self.activity
        if name == "event_id":
            return self.event_id
        return None


@dataclass(frozen=True)
class Entity:
    """A base or reified entity, identified by (entity_type, key).

    Base entities carry a one-element key; reified entities carry the ordered
    keys of their constituents and the constituent entity types.
    """

    entity_type: str
    key: tuple[str, ...]
    kind: EntityKind = EntityKind.BASE
    constituents: tuple[str, ...] = ()

    @property
    def natural_key(self) -> str | tuple[str, ...]:
        return self.key[0] if self.kind is EntityKind.BASE else self.key

    @property
    def uid(self) -> str:
        """Type and key parts joined with ``_``; underscores inside a part are escaped."""
        return "_".join(_escape(part, "_") for part in (self.entity_type, *self.key))

    def to_dict(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "entity_type": self.entity_type,
            "kind": self.kind.value,
            "key": list(self.key),
            "constituents": list(self.constituents),
        }


@dataclass(frozen=True)
class EventClass:
    """A class of events along one classification dimension."""

    dimension: str
    key: str

    @property
    def uid(self) -> str:
        return f"{_escape(self.dimension, ':')}:{_escape(self.key, ':')}"

    def to_dict(self) -> dict[str, Any]:
        return {"uid": self.uid, "dimension": self.dimension, "key": self.key}


@dataclass(frozen=True)
class CorrelationEdge:
    """CORR: the event refers to the entity."""

    event_id: str
    entity: Entity


@dataclass(frozen=True)
class ReifiedRelation:
    """REL: a base entity is a constituent of a reified entity."""

    source: Entity
    target: Entity
    tag: str = REIFIED_TAG


@dataclass(frozen=True)
class DirectlyFollowsEdge:
    """DF: ``target_id`` directly follows ``source_id`` for one entity instance.

    The upsert key is (source_id, target_id, entity_type); ``entity_uid``
    records which instance produced the edge.
    """

    source_id: str
    target_id: str
    entity_type: str
    entity_uid: str = field(default="", compare=False, hash=False)


@dataclass(frozen=True)
class ObservationEdge:
    """OBSERVED: the event is an observation of the class."""

    event_id: str
    event_class: EventClass


@dataclass(frozen=True)
class AggregatedDFEdge:
    """DF_C: class-level directly-follows relation with an occurrence count."""

    source: EventClass
    target: EventClass
    entity_type: str
    count: int

    @property
    def dimension(self) -> str:
        return self.source.dimension

    @property
    def key(self) -> tuple[EventClass, EventClass, str]:
        return (self.source, self.target, self.entity_type)
