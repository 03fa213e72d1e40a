from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from botocore.exceptions import ClientError

from .aws_errors import map_client_error
from .bulk_read import BulkReader
from .config import Config
from .errors import CodecError, ConfigError, ValidationError
from .expression import ExpressionWrapper, Operator
from .keys import KeyValue, PSKeyValues
from .partition import BATCH_LIMIT
from .query import Page, encode_cursor
from .record import AttributeMap, Record, decode_record, encode_record
from .runtime import get_dynamodb_client

logger = logging.getLogger(__name__)


def _uuid4() -> str:
    return str(uuid.uuid4())


class DynamoDBHandler[R: Record]:
    """Typed CRUD, batch and query/scan access to one table for one record type.

    ``new_id`` supplies values for keys a record leaves empty when a create
    allows key generation. Provider-reported unprocessed items are returned as
    data, never raised.
    """

    def __init__(
        self,
        config: Config,
        record_type: type[R],
        *,
        client: Any | None = None,
        new_id: Callable[[], str] | None = None,
        max_workers: int | None = None,
    ) -> None:
        if not config.is_valid():
            raise ConfigError("invalid db config, missing mandatory keys")

        self._config = config
        self._record_type = record_type
        self._client: Any = client or get_dynamodb_client()
        self._new_id = new_id or _uuid4
        self._reader = BulkReader(self._client, config.table_info, record_type, max_workers=max_workers)

    @property
    def config(self) -> Config:
        return self._config

    @property
    def table_name(self) -> str:
        return self._config.table_info.table_name

    def expression(self) -> ExpressionWrapper:
        return ExpressionWrapper(self.table_name)

    def get_by_id(self, keys: PSKeyValues, index_name: str | None = None) -> R | None:
        if not keys.partition_key:
            raise ValidationError("invalid partition key")

        if self._config.has_index(index_name):
            return self._get_by_index(keys, index_name or "")

        key_names = self._config.table_info.key_names
        expr = self.expression().with_partition_key(key_names.partition_key, keys.partition_key)
        if key_names.sort_key and keys.sort_key:
            expr.with_sorting_key(key_names.sort_key, keys.sort_key)
        req = expr.build_get_input()

        try:
            resp = self._client.get_item(**req)
        except ClientError as err:
            raise map_client_error(err) from err

        item = resp.get("Item")
        if not item:
            return None
        return decode_record(self._record_type, item)

    def _get_by_index(self, keys: PSKeyValues, index_name: str) -> R | None:
        key_names = self._config.key_names_for(index_name)
        expr = (
            self.expression()
            .with_index_name(index_name)
            .with_key_condition(key_names.partition_key, keys.partition_key, Operator.EQUAL)
            .with_limit(1)
        )
        if key_names.sort_key and keys.sort_key:
            expr.and_key_condition(key_names.sort_key, keys.sort_key, Operator.EQUAL)
        req = expr.build_query_input()

        try:
            resp = self._client.query(**req)
        except ClientError as err:
            raise map_client_error(err) from err

        items = resp.get("Items") or []
        if not items:
            return None
        return decode_record(self._record_type, items[0])

    def get_by_ids(self, keys: Sequence[PSKeyValues], cancel: threading.Event | None = None) -> list[R]:
        """Load many records concurrently; result order is unspecified."""
        return self._reader.load(keys, cancel=cancel)

    def get_records_with_scan_filter(self, expr: ExpressionWrapper) -> Page[R]:
        req = expr.build_scan_input()
        try:
            resp = self._client.scan(**req)
        except ClientError as err:
            raise map_client_error(err) from err

        items = [decode_record(self._record_type, item) for item in resp.get("Items", [])]
        last = resp.get("LastEvaluatedKey")
        return Page(
            items=items,
            last_evaluated_key=last or None,
            next_cursor=encode_cursor(last, index=expr.index_name) if last else None,
        )

    def get_records_with_query_filter(self, expr: ExpressionWrapper) -> Page[R]:
        req = expr.build_query_input()
        try:
            resp = self._client.query(**req)
        except ClientError as err:
            raise map_client_error(err) from err

        items = [decode_record(self._record_type, item) for item in resp.get("Items", [])]
        last = resp.get("LastEvaluatedKey")
        return Page(
            items=items,
            last_evaluated_key=last or None,
            next_cursor=encode_cursor(last, index=expr.index_name, sort=expr.sort_order) if last else None,
        )

    def scan_all(self, expr: ExpressionWrapper) -> list[R]:
        return self._drain("scan", expr.build_scan_input())

    def query_all(self, expr: ExpressionWrapper) -> list[R]:
        return self._drain("query", expr.build_query_input())

    def _drain(self, operation: str, req: dict[str, Any]) -> list[R]:
        call = getattr(self._client, operation)
        out: list[R] = []
        while True:
            try:
                resp = call(**req)
            except ClientError as err:
                raise map_client_error(err) from err

            out.extend(decode_record(self._record_type, item) for item in resp.get("Items", []))
            last = resp.get("LastEvaluatedKey")
            if not last:
                return out
            req = dict(req, ExclusiveStartKey=last)

    def add_record(
        self,
        record: R,
        *,
        create_sort_key: bool = False,
        create_part_key: bool = True,
    ) -> PSKeyValues:
        """Create ``record``; fails with ConditionFailedError if its partition key already exists."""
        item, keys = self._prepare_item(record, create_part_key=create_part_key, create_sort_key=create_sort_key)

        req: dict[str, Any] = {
            "TableName": self.table_name,
            "Item": item,
            "ConditionExpression": "attribute_not_exists(#pk)",
            "ExpressionAttributeNames": {"#pk": self._config.table_info.partition_key},
        }
        try:
            self._client.put_item(**req)
        except ClientError as err:
            raise map_client_error(err) from err
        return keys

    def update_record_by_id(self, record: R, keys: PSKeyValues) -> None:
        table_info = self._config.table_info
        if not keys.partition_key:
            raise ValidationError("missing required partition key")
        if table_info.sort_key and not keys.sort_key:
            raise ValidationError("missing required sorting key")

        item = encode_record(record)
        item[table_info.partition_key] = {"S": str(keys.partition_key)}
        if table_info.sort_key:
            item[table_info.sort_key] = {"S": str(keys.sort_key)}

        try:
            self._client.put_item(TableName=self.table_name, Item=item)
        except ClientError as err:
            raise map_client_error(err) from err

    def update(self, partition_key: str, sort_key: str | None, fields: Mapping[str, Any]) -> None:
        """Set ``fields`` on an existing item; pass every field to replace the whole item."""
        table_info = self._config.table_info
        if not partition_key:
            raise ValidationError("missing required partition key")
        if table_info.sort_key and not sort_key:
            raise ValidationError("missing required sorting key")
        if not table_info.sort_key and sort_key is not None:
            raise ValidationError("table has no sort key")

        expr = self.expression().with_partition_key(table_info.partition_key, partition_key)
        if table_info.sort_key and sort_key:
            expr.with_sorting_key(table_info.sort_key, sort_key)
        for name, value in fields.items():
            expr.with_update_field(name, value)
        req = expr.build_update_input()

        try:
            self._client.update_item(**req)
        except ClientError as err:
            raise map_client_error(err) from err

    def delete_record_by_id(self, keys: PSKeyValues, condition: ExpressionWrapper | None = None) -> None:
        table_info = self._config.table_info
        if not keys.partition_key:
            raise ValidationError("missing required partition key")
        if table_info.sort_key and not keys.sort_key:
            raise ValidationError("missing required sort key")

        expr = condition if condition is not None else self.expression()
        expr.with_partition_key(table_info.partition_key, keys.partition_key)
        if table_info.sort_key and keys.sort_key:
            expr.with_sorting_key(table_info.sort_key, keys.sort_key)
        req = expr.build_delete_input()

        try:
            self._client.delete_item(**req)
        except ClientError as err:
            raise map_client_error(err) from err

    def bulk_add_records(self, records: Sequence[R], *, create_sort_key: bool = False) -> list[R]:
        """Write up to BATCH_LIMIT records; returns the records that were not written."""
        return self._batch_write(records, create_part_key=True, create_sort_key=create_sort_key)

    def bulk_update_records(self, records: Sequence[R]) -> list[R]:
        return self._batch_write(records, create_part_key=False, create_sort_key=False)

    def bulk_delete_records(self, keys: Sequence[PSKeyValues]) -> list[PSKeyValues]:
        table_info = self._config.table_info
        keys = list(keys)
        if not keys:
            return []

        requests: list[dict[str, Any]] = []
        for key in keys:
            expr = self.expression().with_partition_key(table_info.partition_key, key.partition_key)
            if table_info.sort_key:
                if not key.sort_key:
                    raise ValidationError("missing required sort key", unprocessed=keys)
                expr.with_sorting_key(table_info.sort_key, key.sort_key)
            try:
                requests.append({"DeleteRequest": {"Key": expr.create_query_keys()}})
            except ValidationError as err:
                raise ValidationError(str(err), unprocessed=keys) from err

        try:
            resp = self._client.batch_write_item(RequestItems={self.table_name: requests})
        except ClientError as err:
            raise map_client_error(err, unprocessed=keys) from err

        unprocessed: list[PSKeyValues] = []
        for req in resp.get("UnprocessedItems", {}).get(self.table_name, []):
            key = req.get("DeleteRequest", {}).get("Key", {})
            sort_value = key.get(table_info.sort_key, {}).get("S") if table_info.sort_key else None
            unprocessed.append(
                PSKeyValues(
                    partition_key=KeyValue(str(key.get(table_info.partition_key, {}).get("S", ""))),
                    sort_key=KeyValue(sort_value) if sort_value else None,
                )
            )

        if unprocessed:
            logger.debug("bulk delete on %s: %d keys unprocessed", self.table_name, len(unprocessed))
        return unprocessed

    def _batch_write(self, records: Sequence[R], *, create_part_key: bool, create_sort_key: bool) -> list[R]:
        records = list(records)
        if not records:
            return []

        unprocessed = records[BATCH_LIMIT:]
        try:
            requests = [
                {
                    "PutRequest": {
                        "Item": self._prepare_item(
                            record, create_part_key=create_part_key, create_sort_key=create_sort_key
                        )[0]
                    }
                }
                for record in records[:BATCH_LIMIT]
            ]
        except (ValidationError, CodecError) as err:
            err.unprocessed = list(records)
            raise

        try:
            resp = self._client.batch_write_item(RequestItems={self.table_name: requests})
        except ClientError as err:
            raise map_client_error(err, unprocessed=records) from err

        try:
            for req in resp.get("UnprocessedItems", {}).get(self.table_name, []):
                unprocessed.append(decode_record(self._record_type, req["PutRequest"]["Item"]))
        except CodecError as err:
            err.unprocessed = list(records)
            raise

        if unprocessed:
            logger.debug("batch write on %s: %d records unprocessed", self.table_name, len(unprocessed))
        return unprocessed

    def _prepare_item(
        self, record: R, *, create_part_key: bool, create_sort_key: bool
    ) -> tuple[AttributeMap, PSKeyValues]:
        item = encode_record(record)
        table_info = self._config.table_info
        record_keys = record.extract_keys()

        partition_key = record_keys.partition_key
        if not partition_key and not create_part_key:
            raise ValidationError("missing required partition key")
        if not partition_key:
            partition_key = KeyValue(self._new_id())
        item[table_info.partition_key] = {"S": str(partition_key)}

        sort_key = record_keys.sort_key
        if table_info.sort_key:
            if sort_key is None and not create_sort_key:
                raise ValidationError("missing required sorting key")
            if sort_key is None:
                sort_key = KeyValue(self._new_id())
            item[table_info.sort_key] = {"S": str(sort_key)}

        return item, PSKeyValues(partition_key=partition_key, sort_key=sort_key)
