from __future__ import annotations

import threading
from dataclasses import dataclass

import pytest
from botocore.exceptions import ClientError

from ddbhandler.bulk_read import BulkReader
from ddbhandler.config import Config
from ddbhandler.errors import AwsError, BatchRetryExceededError, CancelledError, DecodeError, ValidationError
from ddbhandler.keys import PSKeyValues
from ddbhandler.record import DataclassRecord, record_field


@dataclass(frozen=True)
class Order(DataclassRecord):
    order_id: str = record_field(name="orderId", roles=["pk"], default="")
    customer_id: str = record_field(name="customerId", roles=["sk"], default="")
    total: int = record_field(default=0)


CONFIG = Config.create(table_name="orders", partition_key="orderId", sort_key="customerId")


def _order_for(key: dict) -> Order:
    return Order(order_id=key["orderId"]["S"], customer_id=key["customerId"]["S"], total=1)


def _keys(n: int) -> list[PSKeyValues]:
    return [PSKeyValues(partition_key=f"o-{i}", sort_key=f"c-{i}") for i in range(n)]


class _EchoBatchGetClient:
    """Returns one order per requested key."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.requests: list[list[dict]] = []

    def batch_get_item(self, *, RequestItems):  # noqa: N803
        keys = RequestItems["orders"]["Keys"]
        with self._lock:
            self.requests.append(keys)
        return {"Responses": {"orders": [_order_for(k).marshal() for k in keys]}, "UnprocessedKeys": {}}


class _HalfUnprocessedClient:
    def __init__(self) -> None:
        self.requests: list[list[dict]] = []

    def batch_get_item(self, *, RequestItems):  # noqa: N803
        keys = RequestItems["orders"]["Keys"]
        self.requests.append(keys)
        done, pending = keys[: len(keys) // 2], keys[len(keys) // 2 :]
        if len(keys) == 1:
            done, pending = keys, []
        resp: dict = {"Responses": {"orders": [_order_for(k).marshal() for k in done]}}
        if pending:
            resp["UnprocessedKeys"] = {"orders": {"Keys": pending}}
        return resp


class _AlwaysUnprocessedClient:
    def batch_get_item(self, *, RequestItems):  # noqa: N803
        return {"Responses": {"orders": []}, "UnprocessedKeys": RequestItems}


class _FailingClient:
    def __init__(self, error: Exception) -> None:
        self._error = error

    def batch_get_item(self, *, RequestItems):  # noqa: N803
        raise self._error


class _UnexpectedCallClient:
    def batch_get_item(self, *, RequestItems):  # noqa: N803
        raise AssertionError("no call expected")


def test_load_splits_keys_into_batches() -> None:
    client = _EchoBatchGetClient()
    reader = BulkReader(client, CONFIG.table_info, Order)

    got = reader.load(_keys(29))

    assert sorted(len(r) for r in client.requests) == [4, 25]
    assert sorted(o.order_id for o in got) == sorted(f"o-{i}" for i in range(29))


def test_load_many_chunks_with_bounded_workers() -> None:
    client = _EchoBatchGetClient()
    reader = BulkReader(client, CONFIG.table_info, Order, max_workers=2)

    got = reader.load(_keys(260))

    assert len(client.requests) == 11
    assert len(got) == 260


def test_load_resubmits_unprocessed_keys() -> None:
    client = _HalfUnprocessedClient()
    reader = BulkReader(client, CONFIG.table_info, Order)

    got = reader.load(_keys(4))

    assert [len(r) for r in client.requests] == [4, 2, 1]
    assert {o.order_id for o in got} == {"o-0", "o-1", "o-2", "o-3"}


def test_load_resubmit_limit() -> None:
    reader = BulkReader(_AlwaysUnprocessedClient(), CONFIG.table_info, Order, max_resubmits=0)
    with pytest.raises(BatchRetryExceededError, match="batch_get"):
        reader.load(_keys(1))


def test_load_skips_malformed_keys() -> None:
    client = _EchoBatchGetClient()
    reader = BulkReader(client, CONFIG.table_info, Order)

    got = reader.load(
        [
            PSKeyValues(partition_key="o-1", sort_key="c-1"),
            PSKeyValues(partition_key="", sort_key="c-2"),
            PSKeyValues(partition_key="o-3"),
        ]
    )

    assert client.requests == [[{"orderId": {"S": "o-1"}, "customerId": {"S": "c-1"}}]]
    assert got == [Order(order_id="o-1", customer_id="c-1", total=1)]


def test_load_all_malformed_keys_makes_no_call() -> None:
    reader = BulkReader(_UnexpectedCallClient(), CONFIG.table_info, Order)
    assert reader.load([PSKeyValues(partition_key="")] * 30) == []


def test_load_empty_input() -> None:
    reader = BulkReader(_UnexpectedCallClient(), CONFIG.table_info, Order)
    assert reader.load([]) == []


def test_load_maps_client_errors() -> None:
    err = ClientError({"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow"}}, "BatchGetItem")
    reader = BulkReader(_FailingClient(err), CONFIG.table_info, Order)

    with pytest.raises(AwsError, match="ProvisionedThroughputExceededException") as exc_info:
        reader.load(_keys(60))
    assert exc_info.value.__cause__ is err


def test_load_propagates_other_transport_errors_verbatim() -> None:
    reader = BulkReader(_FailingClient(RuntimeError("boom")), CONFIG.table_info, Order)
    with pytest.raises(RuntimeError, match="boom"):
        reader.load(_keys(3))


def test_load_first_error_wins_over_successful_chunks() -> None:
    class _OneBadChunkClient(_EchoBatchGetClient):
        def batch_get_item(self, *, RequestItems):  # noqa: N803
            if any(k["orderId"]["S"] == "o-30" for k in RequestItems["orders"]["Keys"]):
                raise RuntimeError("chunk failed")
            return super().batch_get_item(RequestItems=RequestItems)

    reader = BulkReader(_OneBadChunkClient(), CONFIG.table_info, Order)
    with pytest.raises(RuntimeError, match="chunk failed"):
        reader.load(_keys(75))


def test_load_decode_error() -> None:
    class _BadItemClient:
        def batch_get_item(self, *, RequestItems):  # noqa: N803
            return {"Responses": {"orders": [{"orderId": {"X": "?"}}]}}

    reader = BulkReader(_BadItemClient(), CONFIG.table_info, Order)
    with pytest.raises(DecodeError):
        reader.load(_keys(1))


def test_load_honors_cancel_event() -> None:
    cancel = threading.Event()
    cancel.set()
    reader = BulkReader(_UnexpectedCallClient(), CONFIG.table_info, Order)

    with pytest.raises(CancelledError):
        reader.load(_keys(3), cancel=cancel)


def test_reader_validates_options() -> None:
    with pytest.raises(ValidationError, match="max_workers"):
        BulkReader(_EchoBatchGetClient(), CONFIG.table_info, Order, max_workers=0)
    with pytest.raises(ValidationError, match="max_resubmits"):
        BulkReader(_EchoBatchGetClient(), CONFIG.table_info, Order, max_resubmits=-1)


def test_load_pk_only_table() -> None:
    @dataclass(frozen=True)
    class Session(DataclassRecord):
        session_id: str = record_field(name="sessionId", roles=["pk"], default="")

    class _Client:
        def batch_get_item(self, *, RequestItems):  # noqa: N803
            keys = RequestItems["sessions"]["Keys"]
            assert keys == [{"sessionId": {"S": "s-1"}}]
            return {"Responses": {"sessions": [{"sessionId": {"S": "s-1"}}]}}

    cfg = Config.create(table_name="sessions", partition_key="sessionId")
    reader = BulkReader(_Client(), cfg.table_info, Session)

    assert reader.load([PSKeyValues(partition_key="s-1", sort_key="ignored")]) == [Session(session_id="s-1")]
