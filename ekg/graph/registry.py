"""Thread-safe keyed registries with get-or-create semantics."""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Iterator
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class Registry(Generic[K, V]):
    """A keyed map whose only write is an atomic get-or-create.

    Values are never replaced or deleted, so repeated upserts of the same key
    always return the first value created for it.
    """

    def __init__(self) -> None:
        self._items: dict[K, V] = {}
        self._lock = threading.Lock()

    def upsert(self, key: K, factory: Callable[[], V]) -> tuple[V, bool]:
        """Return ``(value, created)`` for ``key``, creating it on first use."""
        with self._lock:
            existing = self._items.get(key)
            if existing is not None:
                return existing, False
            value = factory()
            self._items[key] = value
            return value, True

    def get(self, key: K) -> V | None:
        return self._items.get(key)

    def values(self) -> list[V]:
        with self._lock:
            return list(self._items.values())

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[V]:
        return iter(self.values())
