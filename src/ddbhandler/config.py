from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from .keys import IndexName, KeyName


@dataclass(frozen=True)
class KeyNames:
    partition_key: KeyName
    sort_key: KeyName | None = None

    def is_valid(self) -> bool:
        return bool(self.partition_key)


@dataclass(frozen=True)
class TableInfo:
    table_name: str
    key_names: KeyNames

    @property
    def partition_key(self) -> KeyName:
        return self.key_names.partition_key

    @property
    def sort_key(self) -> KeyName | None:
        return self.key_names.sort_key

    def is_valid(self) -> bool:
        return bool(self.table_name) and self.key_names.is_valid()


@dataclass(frozen=True)
class Config:
    """Table and secondary-index key layout.

    Read-only once built, so one instance can be shared by every handler and
    worker thread working on the table.
    """

    table_info: TableInfo
    indexes: Mapping[IndexName, KeyNames] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "indexes", MappingProxyType(dict(self.indexes)))

    @classmethod
    def create(
        cls,
        *,
        table_name: str,
        partition_key: str,
        sort_key: str | None = None,
        indexes: Mapping[str, KeyNames] | None = None,
    ) -> Config:
        return cls(
            table_info=TableInfo(
                table_name=table_name,
                key_names=KeyNames(
                    partition_key=KeyName(partition_key),
                    sort_key=KeyName(sort_key) if sort_key is not None else None,
                ),
            ),
            indexes={IndexName(name): keys for name, keys in (indexes or {}).items()},
        )

    def is_valid(self) -> bool:
        if not self.table_info.is_valid():
            return False
        return all(keys.is_valid() for keys in self.indexes.values())

    def key_names_for(self, index_name: str | None) -> KeyNames:
        if index_name is not None:
            keys = self.indexes.get(IndexName(index_name))
            if keys is not None:
                return keys
        return self.table_info.key_names

    def has_index(self, index_name: str | None) -> bool:
        return index_name is not None and IndexName(index_name) in self.indexes
