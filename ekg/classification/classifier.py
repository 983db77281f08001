"""Event classification along independent dimensions.

Each dimension maps an event to a class key (activity, activity+lifecycle,
resource, ...). The class ``(dimension, key)`` is upserted and an OBSERVED
edge recorded. Events without a key for a dimension are not classified
under it; dimensions never influence each other.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ekg.core.models import Event, EventClass
from ekg.core.pipeline_config import ClassifierSpec
from ekg.graph.context import GraphContext

logger = logging.getLogger(__name__)


class EventClassifier:
    """Classifies every event of a context along the configured dimensions."""

    def __init__(self, context: GraphContext, dimensions: Sequence[ClassifierSpec]) -> None:
        self._context = context
        self._dimensions = tuple(dimensions)

    @property
    def dimensions(self) -> list[str]:
        return [spec.name for spec in self._dimensions]

    def classify(self) -> dict[str, int]:
        """Classify all events.

        Returns:
            Number of OBSERVED edges created per dimension.
        """
        created = {spec.name: 0 for spec in self._dimensions}
        for event in self._context.store.all():
            for spec, event_class in self.classes_of(event):
                if self._context.observe(event, event_class):
                    created[spec.name] += 1

        for spec in self._dimensions:
            logger.info(
                "Dimension %s: %d classes, %d new observations",
                spec.name,
                sum(1 for c in self._context.classes if c.dimension == spec.name),
                created[spec.name],
            )
        return created

    def classes_of(self, event: Event) -> list[tuple[ClassifierSpec, EventClass]]:
        """Upsert and return the classes ``event`` belongs to, one per applicable dimension."""
        result = []
        for spec in self._dimensions:
            key = spec.class_key(event)
            if key is None:
                continue
            result.append((spec, self._context.upsert_class(spec.name, key)))
        return result
