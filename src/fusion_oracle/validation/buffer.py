"""Bounded FIFO buffer keyed by id."""

from collections import OrderedDict
from typing import Generic, Iterator, Optional, TypeVar

T = TypeVar("T")


class RollingBuffer(Generic[T]):
    """Insertion-ordered buffer that evicts the oldest entry when full.

    Eviction is by insertion order only; reads never refresh an entry.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._items: "OrderedDict[str, T]" = OrderedDict()
        self.evicted_total = 0

    def add(self, key: str, item: T) -> list[T]:
        """Insert ``item`` and return whatever was evicted to make room."""
        if key in self._items:
            raise KeyError(f"duplicate key: {key}")
        self._items[key] = item
        evicted = []
        while len(self._items) > self.capacity:
            _, old = self._items.popitem(last=False)
            evicted.append(old)
        self.evicted_total += len(evicted)
        return evicted

    def get(self, key: str) -> Optional[T]:
        return self._items.get(key)

    def pop(self, key: str) -> Optional[T]:
        return self._items.pop(key, None)

    def values(self) -> list[T]:
        return list(self._items.values())

    def recent(self, count: int) -> list[T]:
        if count <= 0:
            return []
        return list(self._items.values())[-count:]

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items.values()))
