from __future__ import annotations

import itertools
from collections.abc import Callable

from .mocks import ANY, FakeDynamoDBClient


def sequential_ids(prefix: str = "id") -> Callable[[], str]:
    """Deterministic replacement for the handler's random key generator."""
    counter = itertools.count(1)

    def new_id() -> str:
        return f"{prefix}-{next(counter)}"

    return new_id


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "sequential_ids",
]
