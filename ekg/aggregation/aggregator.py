"""Class-level aggregation of the directly-follows relation (DF_C).

Every DF edge (e1 -> e2, T) contributes one to DF_C(c1 -> c2, T) for each
dimension D under which both e1 and e2 are classified (c1, c2 in D).
Counters are kept per (dimension, perspective) and never mix edges from
different perspectives or classes from different dimensions. Perspectives
are counted independently and the partial counts merged, so aggregation can
run on several threads without lost updates.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence

from ekg.core.models import AggregatedDFEdge, DirectlyFollowsEdge, EventClass
from ekg.core.pipeline_config import ClassifierSpec
from ekg.graph.context import GraphContext
from ekg.graph.parallel import run_partitioned

logger = logging.getLogger(__name__)

DFCKey = tuple[EventClass, EventClass, str]


class ClassAggregator:
    """Folds event-level DF edges into DF_C counters."""

    def __init__(
        self,
        context: GraphContext,
        dimensions: Sequence[ClassifierSpec],
        workers: int = 1,
    ) -> None:
        self._context = context
        self._dimensions = tuple(dimensions)
        self._workers = workers

    def aggregate(self) -> dict[str, int]:
        """Recompute every DF_C counter from the current DF edges.

        Returns:
            Summary dict with the number of DF_C edges and aggregated DF edges.
        """
        by_perspective: dict[str, list[DirectlyFollowsEdge]] = defaultdict(list)
        for edge in self._context.df_edges():
            by_perspective[edge.entity_type].append(edge)

        groups = sorted(by_perspective.items())
        totals: Counter[DFCKey] = Counter()
        for partial in run_partitioned(self._count, groups, self._workers):
            totals.update(partial)

        self._context.replace_dfc(totals)
        summary = {"dfc_edges": len(totals), "df_aggregated": sum(totals.values())}
        logger.info("Class aggregation complete: %s", summary)
        return summary

    def _count(self, groups: Sequence[tuple[str, list[DirectlyFollowsEdge]]]) -> Counter[DFCKey]:
        counts: Counter[DFCKey] = Counter()
        for entity_type, edges in groups:
            dimensions = [spec.name for spec in self._dimensions if spec.applies_to(entity_type)]
            if not dimensions:
                continue
            for edge in edges:
                source_classes = self._context.observations_of(edge.source_id)
                target_classes = self._context.observations_of(edge.target_id)
                for dimension in dimensions:
                    c1 = source_classes.get(dimension)
                    c2 = target_classes.get(dimension)
                    if c1 is not None and c2 is not None:
                        counts[(c1, c2, entity_type)] += 1
        return counts


def filter_dfc(
    edges: Iterable[AggregatedDFEdge],
    min_count: int = 0,
    relative_ratio: float | None = None,
) -> list[AggregatedDFEdge]:
    """Return the DF_C edges that pass frequency thresholds.

    Keeps an edge when ``count > min_count`` and, if ``relative_ratio`` is
    given, when ``count * relative_ratio`` exceeds the count of the reverse
    edge (same dimension and perspective). The input is not modified.
    """
    edges = list(edges)
    counts = {edge.key: edge.count for edge in edges}
    kept = []
    for edge in edges:
        if edge.count <= min_count:
            continue
        if relative_ratio is not None:
            reverse = counts.get((edge.target, edge.source, edge.entity_type), 0)
            if edge.count * relative_ratio <= reverse:
                continue
        kept.append(edge)
    return kept
