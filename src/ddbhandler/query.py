from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Literal

type LogicalOp = Literal["AND", "OR"]


@dataclass(frozen=True)
class FilterCondition:
    field: str
    op: str
    values: tuple[Any, ...] = ()


@dataclass(frozen=True)
class FilterGroup:
    op: LogicalOp
    filters: tuple[FilterExpression, ...]


type FilterExpression = FilterCondition | FilterGroup


def combine(existing: FilterExpression | None, new: FilterExpression, op: LogicalOp) -> FilterExpression:
    if existing is None:
        return new
    return FilterGroup(op=op, filters=(existing, new))


def leaves(expr: FilterExpression) -> list[FilterCondition]:
    if isinstance(expr, FilterCondition):
        return [expr]
    out: list[FilterCondition] = []
    for child in expr.filters:
        out.extend(leaves(child))
    return out


@dataclass(frozen=True)
class Page[T]:
    items: list[T]
    last_evaluated_key: dict[str, Any] | None = None
    next_cursor: str | None = field(default=None)


@dataclass(frozen=True)
class Cursor:
    last_key: dict[str, Any]
    index: str | None = None
    sort: str | None = None


def _single_key_map(value: Any) -> tuple[str, Any]:
    if not isinstance(value, dict) or len(value) != 1:
        raise ValueError("attribute value must be a single-key map")
    (key, inner), *_ = value.items()
    return str(key), inner


def _convert(av: Any, *, encode: bool) -> dict[str, Any]:
    """Translate one attribute value between its wire shape and its JSON-safe shape.

    Binary payloads are the only members that differ: raw bytes on the wire,
    base64 text inside a cursor.
    """
    kind, value = _single_key_map(av)
    raw_type: type | tuple[type, ...] = (bytes, bytearray) if encode else str

    def convert_binary(v: Any) -> Any:
        if encode:
            return base64.b64encode(bytes(v)).decode("ascii")
        return base64.b64decode(v)

    if kind in {"S", "N"}:
        if not isinstance(value, str):
            raise ValueError(f"{kind} value must be a string")
        return {kind: value}

    if kind == "B":
        if not isinstance(value, raw_type):
            raise ValueError("B value has the wrong type")
        return {"B": convert_binary(value)}

    if kind == "BOOL":
        if not isinstance(value, bool):
            raise ValueError("BOOL value must be a boolean")
        return {"BOOL": value}

    if kind == "NULL":
        if value is not True:
            raise ValueError("NULL value must be true")
        return {"NULL": True}

    if kind in {"SS", "NS"}:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"{kind} value must be a list of strings")
        return {kind: value}

    if kind == "BS":
        if not isinstance(value, list) or not all(isinstance(v, raw_type) for v in value):
            raise ValueError("BS value has the wrong member type")
        return {"BS": [convert_binary(v) for v in value]}

    if kind == "L":
        if not isinstance(value, list):
            raise ValueError("L value must be a list")
        return {"L": [_convert(v, encode=encode) for v in value]}

    if kind == "M":
        if not isinstance(value, dict):
            raise ValueError("M value must be a map")
        return {"M": {str(k): _convert(value[k], encode=encode) for k in sorted(value.keys())}}

    raise ValueError(f"unsupported attribute value type: {kind}")


def encode_cursor(last_key: Any, *, index: str | None = None, sort: str | None = None) -> str:
    if not last_key:
        return ""
    if not isinstance(last_key, dict):
        raise ValueError("last_key must be a map")

    payload: dict[str, Any] = {
        "lastKey": {str(k): _convert(last_key[k], encode=True) for k in sorted(last_key.keys())}
    }
    if index is not None:
        payload["index"] = index
    if sort is not None:
        payload["sort"] = sort

    data = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(data).decode("ascii")


def decode_cursor(cursor: str) -> Cursor:
    raw = str(cursor or "").strip()
    if not raw:
        raise ValueError("cursor is empty")

    padding = "=" * (-len(raw) % 4)
    parsed = json.loads(base64.urlsafe_b64decode(raw + padding).decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("cursor must decode to an object")

    last_key_raw = parsed.get("lastKey")
    if not isinstance(last_key_raw, dict):
        raise ValueError("cursor lastKey is invalid")

    index = parsed.get("index")
    sort = parsed.get("sort")
    return Cursor(
        last_key={str(k): _convert(last_key_raw[k], encode=False) for k in sorted(last_key_raw.keys())},
        index=index if isinstance(index, str) else None,
        sort=sort if sort in {"ASC", "DESC"} else None,
    )
