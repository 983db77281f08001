"""Directly-follows construction per entity instance.

For every entity (base or reified) with correlated events, the events are
ordered by timestamp, ties broken by ingestion index, and one DF edge tagged
with the entity type is emitted per consecutive pair. An event therefore sits
on one chain per perspective it is correlated to. Edges are upserted on
(source, target, entity_type), so rebuilding never duplicates them.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from itertools import pairwise

from ekg.core.models import DirectlyFollowsEdge, Entity, Event
from ekg.core.pipeline_config import ReificationSpec
from ekg.graph.context import GraphContext
from ekg.graph.parallel import run_partitioned

logger = logging.getLogger(__name__)


def build_chain(entity: Entity, events: Sequence[Event]) -> list[DirectlyFollowsEdge]:
    """Return the DF edges of one entity instance, in chain order."""
    ordered = sorted(events, key=lambda e: e.sort_key)
    return [
        DirectlyFollowsEdge(
            source_id=first.event_id,
            target_id=second.event_id,
            entity_type=entity.entity_type,
            entity_uid=entity.uid,
        )
        for first, second in pairwise(ordered)
    ]


class DirectlyFollowsBuilder:
    """Builds the event-level DF relation for every perspective.

    Args:
        context: Construction context with correlations already recorded.
        reifications: Reification specs; those with ``prune_parallel`` drop DF
            edges that run in parallel with a DF edge of a constituent type.
        workers: Number of threads computing chains.
    """

    def __init__(
        self,
        context: GraphContext,
        reifications: Sequence[ReificationSpec] = (),
        workers: int = 1,
    ) -> None:
        self._context = context
        self._reifications = tuple(reifications)
        self._workers = workers

    def build(self) -> dict[str, int]:
        """Compute and upsert all DF edges.

        Returns:
            Summary dict with entity, created and pruned counts.
        """
        instances = sorted(
            self._context.correlated_entity_instances(),
            key=lambda e: (e.entity_type, e.key),
        )
        partials = run_partitioned(self._chains_for, instances, self._workers)

        created = 0
        for edges in partials:
            for edge in edges:
                if self._context.upsert_df(edge):
                    created += 1

        pruned = self._prune_parallel()
        summary = {"entities": len(instances), "df_created": created, "df_pruned": pruned}
        logger.info("Directly-follows build complete: %s", summary)
        return summary

    def _chains_for(self, instances: Sequence[Entity]) -> list[DirectlyFollowsEdge]:
        edges: list[DirectlyFollowsEdge] = []
        for entity in instances:
            edges.extend(build_chain(entity, self._context.correlated_events(entity)))
        return edges

    def _prune_parallel(self) -> int:
        """Drop reified DF edges that duplicate a constituent's DF edge."""
        specs = [spec for spec in self._reifications if spec.prune_parallel]
        if not specs:
            return 0

        existing = {(d.source_id, d.target_id, d.entity_type) for d in self._context.df_edges()}
        pruned = 0
        for spec in specs:
            for edge in self._context.df_edges():
                if edge.entity_type != spec.name:
                    continue
                if any((edge.source_id, edge.target_id, c) in existing for c in spec.constituents):
                    self._context.remove_df(edge)
                    pruned += 1
        if pruned:
            logger.info("Pruned %d reified DF edges parallel to base DF edges", pruned)
        return pruned
