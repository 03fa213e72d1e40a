from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import MISSING, field, fields, is_dataclass
from decimal import Decimal
from types import UnionType
from typing import (
    Any,
    ClassVar,
    Protocol,
    Self,
    Union,
    cast,
    get_args,
    get_origin,
    get_type_hints,
    runtime_checkable,
)

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .errors import DecodeError, EncodeError
from .keys import KeyValue, PSKeyValues

type AttributeMap = dict[str, dict[str, Any]]


@runtime_checkable
class Record(Protocol):
    """Capabilities every stored record type provides to the handler."""

    @classmethod
    def identify(cls) -> str: ...

    def marshal(self) -> AttributeMap: ...

    @classmethod
    def unmarshal(cls, item: Mapping[str, Any]) -> Self: ...

    def extract_keys(self, index_name: str | None = None) -> PSKeyValues: ...


_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def record_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    omitempty: bool = False,
    default: Any = MISSING,
    default_factory: Any = MISSING,
) -> Any:
    """Declare a dataclass field of a :class:`DataclassRecord`.

    ``roles`` marks key fields: ``pk`` and ``sk`` for the table, and
    ``index_pk:<index>`` / ``index_sk:<index>`` for a secondary index.
    """
    if default is not MISSING and default_factory is not MISSING:
        raise ValueError("record_field: cannot set both default and default_factory")

    opts: dict[str, Any] = {"omitempty": omitempty, "roles": tuple(roles or ())}
    if name is not None:
        opts["name"] = name
    return field(default=default, default_factory=default_factory, metadata={"ddbhandler": opts})


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, bytearray, list, dict, set, tuple)) and len(value) == 0:
        return True
    return False


def _to_dynamodb(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, list):
        return [_to_dynamodb(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_dynamodb(v) for k, v in value.items()}
    return value


def to_attribute_value(value: Any) -> dict[str, Any]:
    return cast(dict[str, Any], _serializer.serialize(_to_dynamodb(value)))


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) not in (Union, UnionType):
        return annotation
    args = get_args(annotation)
    non_none = [a for a in args if a is not type(None)]  # noqa: E721
    if len(args) == 2 and len(non_none) == 1:
        return non_none[0]
    return annotation


def _coerce_value(value: Any, annotation: Any) -> Any:
    if value is None:
        return None

    annotation = _unwrap_optional(annotation)
    if annotation is int and isinstance(value, Decimal):
        return int(value)
    if annotation is float and isinstance(value, Decimal):
        return float(value)

    origin = get_origin(annotation)
    if origin is set and isinstance(value, set):
        (elem_type,) = get_args(annotation) or (Any,)
        return {_coerce_value(v, elem_type) for v in value}
    if origin is list and isinstance(value, list):
        (elem_type,) = get_args(annotation) or (Any,)
        return [_coerce_value(v, elem_type) for v in value]
    if origin is dict and isinstance(value, dict):
        _, val_type = get_args(annotation) or (Any, Any)
        return {k: _coerce_value(v, val_type) for k, v in value.items()}

    return value


def _field_options(dc_field: Any) -> dict[str, Any]:
    return cast(dict[str, Any], dc_field.metadata.get("ddbhandler", {}))


class DataclassRecord:
    """Record codec for dataclasses, driven by :func:`record_field` metadata."""

    model_name: ClassVar[str | None] = None

    @classmethod
    def identify(cls) -> str:
        return cls.model_name or cls.__name__

    @classmethod
    def _attribute_name(cls, dc_field: Any) -> str:
        return cast(str, _field_options(dc_field).get("name", dc_field.name))

    @classmethod
    def _field_with_role(cls, role: str) -> Any | None:
        for dc_field in fields(cast(Any, cls)):
            if role in _field_options(dc_field).get("roles", ()):
                return dc_field
        return None

    def marshal(self) -> AttributeMap:
        if not is_dataclass(self):
            raise EncodeError(f"{type(self).__name__} must be a dataclass")

        out: AttributeMap = {}
        for dc_field in fields(self):
            value = getattr(self, dc_field.name)
            if _field_options(dc_field).get("omitempty", False) and _is_empty(value):
                continue
            try:
                out[self._attribute_name(dc_field)] = to_attribute_value(value)
            except (TypeError, ValueError) as err:
                raise EncodeError(f"cannot marshal field {dc_field.name}: {err}") from err
        return out

    @classmethod
    def unmarshal(cls, item: Mapping[str, Any]) -> Self:
        hints = get_type_hints(cls)
        kwargs: dict[str, Any] = {}
        try:
            for dc_field in fields(cast(Any, cls)):
                attr_name = cls._attribute_name(dc_field)
                if attr_name not in item:
                    continue
                raw = _deserializer.deserialize(item[attr_name])
                kwargs[dc_field.name] = _coerce_value(raw, hints.get(dc_field.name, Any))
            return cls(**kwargs)
        except (AttributeError, TypeError, ValueError) as err:
            raise DecodeError(f"cannot unmarshal {cls.identify()}: {err}") from err

    def extract_keys(self, index_name: str | None = None) -> PSKeyValues:
        pk_role, sk_role = ("pk", "sk") if index_name is None else (f"index_pk:{index_name}", f"index_sk:{index_name}")

        pk_field = self._field_with_role(pk_role)
        sk_field = self._field_with_role(sk_role)

        pk_value = getattr(self, pk_field.name) if pk_field is not None else None
        sk_value = getattr(self, sk_field.name) if sk_field is not None else None
        return PSKeyValues(
            partition_key=KeyValue("" if pk_value is None else str(pk_value)),
            sort_key=None if sk_value is None or sk_value == "" else KeyValue(str(sk_value)),
        )


def encode_record(record: Record) -> AttributeMap:
    try:
        return record.marshal()
    except EncodeError:
        raise
    except (KeyError, TypeError, ValueError) as err:
        raise EncodeError(f"cannot marshal {record.identify()}: {err}") from err


def decode_record[R: Record](record_type: type[R], item: Mapping[str, Any]) -> R:
    try:
        return record_type.unmarshal(item)
    except DecodeError:
        raise
    except (KeyError, TypeError, ValueError) as err:
        raise DecodeError(f"cannot unmarshal {record_type.identify()}: {err}") from err
