"""Partition-then-merge helper for the batch stages.

Stages hand a list of independent work items and a function over one
partition; partitions run in a thread pool when more than one worker is
configured and results come back in partition order, so merging them is
deterministic regardless of scheduling.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


def partition(items: Sequence[T], parts: int) -> list[Sequence[T]]:
    """Split ``items`` into at most ``parts`` contiguous, non-empty slices."""
    if not items:
        return []
    parts = max(1, min(parts, len(items)))
    size, extra = divmod(len(items), parts)
    slices = []
    start = 0
    for i in range(parts):
        end = start + size + (1 if i < extra else 0)
        slices.append(items[start:end])
        start = end
    return slices


def run_partitioned(
    func: Callable[[Sequence[T]], R],
    items: Sequence[T],
    workers: int = 1,
) -> list[R]:
    """Apply ``func`` to each partition of ``items`` and return results in order."""
    chunks = partition(items, workers)
    if workers <= 1 or len(chunks) <= 1:
        return [func(chunk) for chunk in chunks]
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(func, chunks))
