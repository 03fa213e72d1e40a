from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass

# DynamoDB accepts at most 25 items per BatchWriteItem; batch reads use the same chunk size.
BATCH_LIMIT = 25


@dataclass(frozen=True)
class IdxRange:
    low: int
    high: int


class Partitioner(Iterator[IdxRange]):
    """Hands out consecutive half-open ranges over ``[0, collection_len)``.

    Several threads may iterate the same instance; each range is handed out
    exactly once.
    """

    def __init__(self, collection_len: int, partition_size: int) -> None:
        self._len = max(collection_len, 0)
        self._size = partition_size
        self._next_low = 0
        self._lock = threading.Lock()

    @property
    def total(self) -> int:
        if self._size <= 0 or self._len == 0:
            return 0
        return -(-self._len // self._size)

    def __iter__(self) -> Partitioner:
        return self

    def __next__(self) -> IdxRange:
        if self._size <= 0:
            raise StopIteration

        with self._lock:
            low = self._next_low
            if low >= self._len:
                raise StopIteration
            high = min(low + self._size, self._len)
            self._next_low = high

        return IdxRange(low=low, high=high)


def partition(collection_len: int, partition_size: int) -> Partitioner:
    return Partitioner(collection_len, partition_size)
