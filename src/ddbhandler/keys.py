from __future__ import annotations

from dataclasses import dataclass
from typing import NewType

KeyValue = NewType("KeyValue", str)
KeyName = NewType("KeyName", str)
IndexName = NewType("IndexName", str)


@dataclass(frozen=True)
class PSKeyValues:
    """Partition and optional sort key values of one record, for a table or an index."""

    partition_key: KeyValue
    sort_key: KeyValue | None = None
