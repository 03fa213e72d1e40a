from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

from botocore.exceptions import ClientError

from .aws_errors import map_client_error
from .config import TableInfo
from .errors import BatchRetryExceededError, CancelledError, ValidationError
from .expression import ExpressionWrapper
from .keys import PSKeyValues
from .partition import BATCH_LIMIT, partition
from .record import Record, decode_record

logger = logging.getLogger(__name__)

_DEFAULT_MAX_WORKERS = 32


class BulkReader[R: Record]:
    """Loads records by key with one BatchGetItem task per chunk of keys.

    Chunks run on a thread pool and their results are merged in completion
    order. The first failing chunk aborts the load: the remaining chunks stop
    before their next call and the error is raised to the caller.
    """

    def __init__(
        self,
        client: Any,
        table_info: TableInfo,
        record_type: type[R],
        *,
        max_workers: int | None = None,
        max_resubmits: int | None = None,
    ) -> None:
        if max_workers is not None and max_workers <= 0:
            raise ValidationError("max_workers must be > 0")
        if max_resubmits is not None and max_resubmits < 0:
            raise ValidationError("max_resubmits must be >= 0")

        self._client = client
        self._table_info = table_info
        self._record_type = record_type
        self._max_workers = max_workers
        self._max_resubmits = max_resubmits

    def load(self, keys: Sequence[PSKeyValues], cancel: threading.Event | None = None) -> list[R]:
        parts = partition(len(keys), BATCH_LIMIT)
        if parts.total == 0:
            return []

        stop = threading.Event()

        def should_stop() -> bool:
            return stop.is_set() or (cancel is not None and cancel.is_set())

        workers = self._max_workers or min(parts.total, _DEFAULT_MAX_WORKERS)
        logger.debug(
            "bulk read on %s: %d keys in %d chunks, %d workers",
            self._table_info.table_name,
            len(keys),
            parts.total,
            workers,
        )

        ex = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ddbhandler-bulk-read")
        futures = [ex.submit(self._load_chunk, keys[r.low : r.high], should_stop) for r in parts]

        out: list[R] = []
        try:
            for fut in as_completed(futures):
                out.extend(fut.result())
        except BaseException:
            stop.set()
            ex.shutdown(wait=False, cancel_futures=True)
            raise

        ex.shutdown(wait=True)
        return out

    def _request_keys(self, chunk: Sequence[PSKeyValues]) -> list[dict[str, Any]]:
        key_names = self._table_info.key_names
        out: list[dict[str, Any]] = []
        for key in chunk:
            if key_names.sort_key and not key.sort_key:
                logger.debug("bulk read on %s: skipping key without sort key %r", self._table_info.table_name, key)
                continue

            expr = ExpressionWrapper(self._table_info.table_name).with_partition_key(
                key_names.partition_key, key.partition_key
            )
            if key_names.sort_key and key.sort_key:
                expr.with_sorting_key(key_names.sort_key, key.sort_key)
            try:
                out.append(expr.create_query_keys())
            except ValidationError:
                logger.debug("bulk read on %s: skipping key %r", self._table_info.table_name, key)
        return out

    def _load_chunk(self, chunk: Sequence[PSKeyValues], should_stop: Callable[[], bool]) -> list[R]:
        table = self._table_info.table_name
        pending = self._request_keys(chunk)

        out: list[R] = []
        rounds = 0
        while pending:
            if should_stop():
                raise CancelledError("bulk read cancelled")

            try:
                resp = self._client.batch_get_item(RequestItems={table: {"Keys": pending}})
            except ClientError as err:
                raise map_client_error(err) from err

            for item in resp.get("Responses", {}).get(table, []):
                out.append(decode_record(self._record_type, item))

            pending = resp.get("UnprocessedKeys", {}).get(table, {}).get("Keys") or []
            if pending:
                if self._max_resubmits is not None and rounds >= self._max_resubmits:
                    raise BatchRetryExceededError(operation="batch_get", unprocessed_count=len(pending))
                rounds += 1
                logger.debug("bulk read on %s: resubmitting %d unprocessed keys", table, len(pending))

        return out
