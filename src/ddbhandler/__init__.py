from __future__ import annotations

import json
import re
from importlib.resources import files

from .bulk_read import BulkReader
from .config import Config, KeyNames, TableInfo
from .errors import (
    AwsError,
    BatchRetryExceededError,
    CancelledError,
    CodecError,
    ConditionFailedError,
    ConfigError,
    DecodeError,
    DynamoHandlerError,
    EncodeError,
    NotFoundError,
    ValidationError,
)
from .expression import ExpressionWrapper, FromToDate, Operator, create_condition, create_key_condition
from .handler import DynamoDBHandler
from .keys import IndexName, KeyName, KeyValue, PSKeyValues
from .partition import BATCH_LIMIT, IdxRange, Partitioner, partition
from .query import Cursor, FilterCondition, FilterGroup, Page, decode_cursor, encode_cursor
from .record import AttributeMap, DataclassRecord, Record, record_field, to_attribute_value
from .runtime import (
    AwsCallMetric,
    ClientSettings,
    create_boto3_config,
    get_dynamodb_client,
    instrument_boto3_client,
)


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


__all__ = [
    "AttributeMap",
    "AwsCallMetric",
    "AwsError",
    "BATCH_LIMIT",
    "BatchRetryExceededError",
    "BulkReader",
    "CancelledError",
    "ClientSettings",
    "CodecError",
    "ConditionFailedError",
    "Config",
    "ConfigError",
    "Cursor",
    "DataclassRecord",
    "DecodeError",
    "DynamoDBHandler",
    "DynamoHandlerError",
    "EncodeError",
    "ExpressionWrapper",
    "FilterCondition",
    "FilterGroup",
    "FromToDate",
    "IdxRange",
    "IndexName",
    "KeyName",
    "KeyNames",
    "KeyValue",
    "NotFoundError",
    "Operator",
    "PSKeyValues",
    "Page",
    "Partitioner",
    "Record",
    "TableInfo",
    "ValidationError",
    "__repo_version__",
    "__version__",
    "create_boto3_config",
    "create_condition",
    "create_key_condition",
    "decode_cursor",
    "encode_cursor",
    "get_dynamodb_client",
    "instrument_boto3_client",
    "partition",
    "record_field",
    "to_attribute_value",
]
