"""Bounded FIFO buffer used for every in-memory event kind."""

from collections import deque
from collections.abc import Iterable, Iterator
from typing import Generic, TypeVar

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Fixed-capacity FIFO that evicts its oldest item when full.

    Args:
        max_size: Maximum number of items to keep.
    """

    def __init__(self, max_size: int) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._buffer: deque[T] = deque(maxlen=max_size)

    @property
    def max_size(self) -> int:
        # maxlen is always set for this deque
        return self._buffer.maxlen or 0

    def append(self, item: T) -> None:
        self._buffer.append(item)

    def snapshot(self) -> tuple[T, ...]:
        """Return the current items, oldest first."""
        return tuple(self._buffer)

    def discard(self, items: Iterable[T]) -> None:
        """Remove exactly the given item objects, keeping order of the rest.

        Matching is by identity, so equal-valued items recorded later
        survive.
        """
        drop = {id(item) for item in items}
        if not drop:
            return
        kept = [item for item in self._buffer if id(item) not in drop]
        self._buffer = deque(kept, maxlen=self._buffer.maxlen)

    def resize(self, max_size: int) -> None:
        """Change capacity, keeping the most recent items."""
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._buffer = deque(self._buffer, maxlen=max_size)

    def clear(self) -> None:
        self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)

    def __iter__(self) -> Iterator[T]:
        return iter(tuple(self._buffer))
