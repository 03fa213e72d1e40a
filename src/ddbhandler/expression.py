from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from .errors import ValidationError
from .query import (
    FilterCondition,
    FilterExpression,
    FilterGroup,
    LogicalOp,
    combine,
    decode_cursor,
    leaves,
)
from .record import to_attribute_value

logger = logging.getLogger(__name__)


class Operator(IntEnum):
    EQUAL = 1
    LESS_THAN = 2
    LESS_OR_EQUAL = 3
    GREATER_THAN = 4
    GREATER_OR_EQUAL = 5
    BETWEEN = 6

    LT = 2
    LE = 3
    GT = 4
    GE = 5


_COMPARATORS: dict[Operator, str] = {
    Operator.EQUAL: "=",
    Operator.LESS_THAN: "<",
    Operator.LESS_OR_EQUAL: "<=",
    Operator.GREATER_THAN: ">",
    Operator.GREATER_OR_EQUAL: ">=",
}


@dataclass(frozen=True)
class FromToDate:
    """Epoch bounds for a date range condition."""

    from_date: int
    to_date: int


def _resolve_operator(operator: Operator | int) -> Operator | None:
    try:
        return Operator(operator)
    except ValueError:
        return None


def _range_condition(name: str, value: Any, op: Operator) -> FilterCondition:
    if isinstance(value, FromToDate):
        if op is Operator.BETWEEN:
            return FilterCondition(field=name, op="BETWEEN", values=(value.from_date, value.to_date))
        return FilterCondition(field=name, op=">=", values=(value.from_date,))

    if op is Operator.BETWEEN:
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return FilterCondition(field=name, op="BETWEEN", values=(value[0], value[1]))
        return FilterCondition(field=name, op="BETWEEN", values=(value,))

    return FilterCondition(field=name, op=_COMPARATORS[op], values=(value,))


def create_condition(name: str, value: Any, operator: Operator | int) -> FilterCondition:
    op = _resolve_operator(operator) or Operator.EQUAL
    return _range_condition(name, value, op)


def create_key_condition(name: str, value: Any, operator: Operator | int) -> FilterCondition:
    op = _resolve_operator(operator)
    if op is None:
        return FilterCondition(field=name, op=f"operator({operator!r})", values=(value,))
    return _range_condition(name, value, op)


class _Placeholders:
    def __init__(self) -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}
        self._refs: dict[str, str] = {}

    def name(self, path: str) -> str:
        parts: list[str] = []
        for segment in path.split("."):
            ref = self._refs.get(segment)
            if ref is None:
                ref = f"#n{len(self._refs)}"
                self._refs[segment] = ref
                self.names[ref] = segment
            parts.append(ref)
        return ".".join(parts)

    def value(self, value: Any) -> str:
        ref = f":v{len(self.values)}"
        try:
            self.values[ref] = to_attribute_value(value)
        except (TypeError, ValueError) as err:
            raise ValidationError(f"unsupported expression value: {value!r}") from err
        return ref

    def apply(self, req: dict[str, Any]) -> None:
        if self.names:
            req["ExpressionAttributeNames"] = dict(self.names)
        if self.values:
            req["ExpressionAttributeValues"] = dict(self.values)


def _render_condition(node: FilterExpression, ph: _Placeholders) -> str:
    if isinstance(node, FilterGroup):
        parts = [_render_condition(child, ph) for child in node.filters]
        return "(" + f" {node.op} ".join(parts) + ")"

    if node.op in {"=", "<", "<=", ">", ">="}:
        if len(node.values) != 1:
            raise ValidationError(f"{node.op} requires one value")
        name = ph.name(node.field)
        return f"{name} {node.op} {ph.value(node.values[0])}"

    if node.op == "BETWEEN":
        if len(node.values) != 2:
            raise ValidationError("BETWEEN requires two values")
        name = ph.name(node.field)
        low = ph.value(node.values[0])
        high = ph.value(node.values[1])
        return f"{name} BETWEEN {low} AND {high}"

    raise ValidationError(f"unsupported key condition operator: {node.op}")


def _render_key_condition(expr: FilterExpression, ph: _Placeholders) -> str:
    conds = leaves(expr)
    if len(conds) > 2:
        raise ValidationError("key condition supports a partition key and at most one sort key condition")
    for cond in conds:
        if cond.op not in {"=", "<", "<=", ">", ">=", "BETWEEN"}:
            raise ValidationError(f"unsupported key condition operator: {cond.op}")
    if conds[0].op != "=":
        raise ValidationError("partition key condition must use EQUAL")
    return " AND ".join(_render_condition(cond, ph) for cond in conds)


class ExpressionWrapper:
    """Accumulates key, filter, update, projection and paging state for one request.

    Mutators return the wrapper so calls can be chained; one of the ``build_*``
    methods then compiles the state into keyword arguments for the matching
    DynamoDB client call. A wrapper is meant to back a single logical operation.
    """

    def __init__(self, table_name: str) -> None:
        self._table_name = table_name
        self._index_name: str | None = None
        self._condition: FilterExpression | None = None
        self._key_condition: FilterExpression | None = None
        self._updates: dict[str, Any] = {}
        self._projection: tuple[str, ...] = ()
        self._partition_key_name = ""
        self._partition_key_value: dict[str, Any] | None = None
        self._sort_key_name = ""
        self._sort_key_value: dict[str, Any] | None = None
        self._exclusive_start_key: dict[str, Any] | None = None
        self._cursor: str | None = None
        self._scan_index_forward: bool | None = None
        self._consistent_read: bool | None = None
        self._limit: int | None = None

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def index_name(self) -> str | None:
        return self._index_name

    def with_index_name(self, index_name: str) -> ExpressionWrapper:
        self._index_name = index_name or None
        return self

    def with_projection(self, *fields: str) -> ExpressionWrapper:
        names = tuple(f for f in fields if f and f.strip())
        if names:
            self._projection = names
        return self

    def with_update_field(self, name: str, value: Any) -> ExpressionWrapper:
        self._updates[name] = value
        return self

    def with_limit(self, limit: int) -> ExpressionWrapper:
        self._limit = limit
        return self

    def with_condition(self, name: str, value: Any, operator: Operator | int) -> ExpressionWrapper:
        self._condition = create_condition(name, value, operator)
        return self

    def and_condition(self, name: str, value: Any, operator: Operator | int) -> ExpressionWrapper:
        return self._merge_condition(name, value, operator, "AND")

    def or_condition(self, name: str, value: Any, operator: Operator | int) -> ExpressionWrapper:
        return self._merge_condition(name, value, operator, "OR")

    def _merge_condition(
        self, name: str, value: Any, operator: Operator | int, op: LogicalOp
    ) -> ExpressionWrapper:
        if self._condition is None:
            return self.with_condition(name, value, operator)
        self._condition = combine(self._condition, create_condition(name, value, operator), op)
        return self

    def with_key_condition(self, name: str, value: Any, operator: Operator | int) -> ExpressionWrapper:
        self._key_condition = create_key_condition(name, value, operator)
        return self

    def and_key_condition(self, name: str, value: Any, operator: Operator | int) -> ExpressionWrapper:
        if self._key_condition is None:
            return self.with_key_condition(name, value, operator)
        self._key_condition = combine(self._key_condition, create_key_condition(name, value, operator), "AND")
        return self

    def with_partition_key(self, name: str, value: str) -> ExpressionWrapper:
        self._partition_key_name = name
        if value:
            self._partition_key_value = {"S": str(value)}
        return self

    def with_sorting_key(self, name: str, value: str) -> ExpressionWrapper:
        self._sort_key_name = name
        if value:
            self._sort_key_value = {"S": str(value)}
        return self

    def with_last_evaluated_key(
        self,
        pk_name: str,
        pk_value: str,
        sk_name: str | None = None,
        sk_value: str | None = None,
    ) -> ExpressionWrapper:
        key: dict[str, Any] = {pk_name: {"S": pk_value}}
        if sk_name is not None and sk_value is not None:
            key[sk_name] = {"S": sk_value}
        return self.with_exclusive_start_key(key)

    def with_exclusive_start_key(self, last_evaluated_key: Mapping[str, Any] | None) -> ExpressionWrapper:
        self._exclusive_start_key = dict(last_evaluated_key) if last_evaluated_key else None
        self._cursor = None
        return self

    def with_cursor(self, cursor: str | None) -> ExpressionWrapper:
        self._cursor = cursor or None
        self._exclusive_start_key = None
        return self

    def with_scan_index_forward(self, asc: bool) -> ExpressionWrapper:
        self._scan_index_forward = asc
        return self

    def with_consistent_read(self, consistent_read: bool) -> ExpressionWrapper:
        self._consistent_read = consistent_read
        return self

    def create_query_keys(self) -> dict[str, Any]:
        if not self._partition_key_name or self._partition_key_value is None:
            raise ValidationError("missing partition key")

        keys: dict[str, Any] = {self._partition_key_name: self._partition_key_value}
        if self._sort_key_name and self._sort_key_value is not None:
            keys[self._sort_key_name] = self._sort_key_value
        return keys

    def build_get_input(self) -> dict[str, Any]:
        if not self._table_name:
            raise ValidationError("missing table name")

        req: dict[str, Any] = {"TableName": self._table_name, "Key": self.create_query_keys()}
        if self._projection:
            ph = _Placeholders()
            req["ProjectionExpression"] = self._projection_expression(ph)
            ph.apply(req)
        if self._consistent_read is not None:
            req["ConsistentRead"] = self._consistent_read
        return req

    def build_delete_input(self) -> dict[str, Any]:
        if not self._table_name:
            raise ValidationError("missing table name")

        req: dict[str, Any] = {"TableName": self._table_name, "Key": self.create_query_keys()}
        if self._condition is not None:
            ph = _Placeholders()
            req["ConditionExpression"] = _render_condition(self._condition, ph)
            ph.apply(req)
        return req

    def build_update_input(self) -> dict[str, Any]:
        if not self._updates:
            raise ValidationError("nothing set to be updated, use with_update_field")
        if not self._table_name:
            raise ValidationError("missing table name")

        keys = self.create_query_keys()
        ph = _Placeholders()
        assignments = [f"{ph.name(name)} = {ph.value(value)}" for name, value in self._updates.items()]

        req: dict[str, Any] = {
            "TableName": self._table_name,
            "Key": keys,
            "UpdateExpression": "SET " + ", ".join(assignments),
        }
        ph.apply(req)
        return req

    def build_query_input(self) -> dict[str, Any]:
        req: dict[str, Any] = {"TableName": self._table_name}
        ph = _Placeholders()

        if self._key_condition is not None:
            req["KeyConditionExpression"] = _render_key_condition(self._key_condition, ph)
        if self._condition is not None:
            req["FilterExpression"] = _render_condition(self._condition, ph)
        if self._projection:
            req["ProjectionExpression"] = self._projection_expression(ph)
        ph.apply(req)

        if self._index_name:
            req["IndexName"] = self._index_name
        if self._scan_index_forward is not None:
            req["ScanIndexForward"] = self._scan_index_forward
        self._apply_paging(req, sort=self.sort_order)
        return req

    def build_scan_input(self) -> dict[str, Any]:
        if not self._table_name:
            raise ValidationError("missing table-name")

        req: dict[str, Any] = {"TableName": self._table_name}
        ph = _Placeholders()

        # a scan has no key condition; when one is set it takes the filter slot
        if self._key_condition is not None:
            if self._condition is not None:
                logger.warning(
                    "scan on %s: key condition replaces the filter condition", self._table_name
                )
            req["FilterExpression"] = _render_condition(self._key_condition, ph)
        elif self._condition is not None:
            req["FilterExpression"] = _render_condition(self._condition, ph)
        if self._projection:
            req["ProjectionExpression"] = self._projection_expression(ph)
        ph.apply(req)

        if self._index_name:
            req["IndexName"] = self._index_name
        self._apply_paging(req, sort=None)
        return req

    @property
    def sort_order(self) -> str:
        return "DESC" if self._scan_index_forward is False else "ASC"

    def _projection_expression(self, ph: _Placeholders) -> str:
        return ", ".join(ph.name(field) for field in self._projection)

    def _apply_paging(self, req: dict[str, Any], *, sort: str | None) -> None:
        if self._limit is not None and self._limit >= 1:
            req["Limit"] = self._limit

        if self._cursor is not None:
            try:
                decoded = decode_cursor(self._cursor)
            except ValueError as err:
                raise ValidationError("invalid cursor") from err
            if decoded.index is not None and decoded.index != self._index_name:
                raise ValidationError("cursor index does not match request")
            if sort is not None and decoded.sort is not None and decoded.sort != sort:
                raise ValidationError("cursor sort does not match request")
            req["ExclusiveStartKey"] = decoded.last_key
        elif self._exclusive_start_key:
            req["ExclusiveStartKey"] = dict(self._exclusive_start_key)

        if self._consistent_read is not None:
            req["ConsistentRead"] = self._consistent_read
