from __future__ import annotations

from dataclasses import dataclass

import pytest
from botocore.exceptions import ClientError

from ddbhandler import DynamoDBHandler, Operator
from ddbhandler.config import Config
from ddbhandler.errors import ConditionFailedError, EncodeError, ValidationError
from ddbhandler.keys import PSKeyValues
from ddbhandler.mocks import ANY, FakeDynamoDBClient
from ddbhandler.record import DataclassRecord, record_field
from ddbhandler.testkit import sequential_ids


@dataclass(frozen=True)
class Order(DataclassRecord):
    order_id: str = record_field(name="orderId", roles=["pk"], default="")
    customer_id: str = record_field(name="customerId", roles=["sk"], default="")
    total: int = record_field(default=0)


@dataclass(frozen=True)
class Session(DataclassRecord):
    session_id: str = record_field(name="sessionId", roles=["pk"], default="")
    payload: object = record_field(default=None)


ORDERS = Config.create(table_name="orders", partition_key="orderId", sort_key="customerId")
SESSIONS = Config.create(table_name="sessions", partition_key="sessionId")


def _orders(client: FakeDynamoDBClient) -> DynamoDBHandler[Order]:
    return DynamoDBHandler(ORDERS, Order, client=client, new_id=sequential_ids("gen"))


def test_add_record_is_a_conditional_put() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "put_item",
        {
            "TableName": "orders",
            "Item": {"orderId": {"S": "o-1"}, "customerId": {"S": "c-1"}, "total": {"N": "5"}},
            "ConditionExpression": "attribute_not_exists(#pk)",
            "ExpressionAttributeNames": {"#pk": "orderId"},
        },
    )

    keys = _orders(client).add_record(Order(order_id="o-1", customer_id="c-1", total=5))

    assert keys == PSKeyValues(partition_key="o-1", sort_key="c-1")
    client.assert_no_pending()


def test_add_record_generates_missing_partition_key() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", {"Item": {"orderId": {"S": "gen-1"}, "customerId": {"S": "c-1"}, "total": ANY}})

    keys = _orders(client).add_record(Order(customer_id="c-1"))

    assert keys == PSKeyValues(partition_key="gen-1", sort_key="c-1")


def test_add_record_generates_sort_key_when_allowed() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", {"Item": {"orderId": {"S": "gen-1"}, "customerId": {"S": "gen-2"}, "total": ANY}})

    keys = _orders(client).add_record(Order(), create_sort_key=True)

    assert keys == PSKeyValues(partition_key="gen-1", sort_key="gen-2")


def test_add_record_requires_sort_key_unless_generated() -> None:
    client = FakeDynamoDBClient()
    with pytest.raises(ValidationError, match="missing required sorting key"):
        _orders(client).add_record(Order(order_id="o-1"))
    assert client.calls == []


def test_add_record_requires_partition_key_when_generation_disabled() -> None:
    client = FakeDynamoDBClient()
    with pytest.raises(ValidationError, match="missing required partition key"):
        _orders(client).add_record(Order(customer_id="c-1"), create_part_key=False)
    assert client.calls == []


def test_add_record_existing_record_fails_the_condition() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "put_item",
        error=ClientError(
            {"Error": {"Code": "ConditionalCheckFailedException", "Message": "exists"}}, "PutItem"
        ),
    )
    with pytest.raises(ConditionFailedError):
        _orders(client).add_record(Order(order_id="o-1", customer_id="c-1"))


def test_add_record_encode_error_makes_no_call() -> None:
    client = FakeDynamoDBClient()
    handler = DynamoDBHandler(SESSIONS, Session, client=client)
    with pytest.raises(EncodeError):
        handler.add_record(Session(session_id="s-1", payload=object()))
    assert client.calls == []


def test_add_record_on_pk_only_table() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", {"Item": {"sessionId": {"S": "s-1"}, "payload": {"NULL": True}}})

    keys = DynamoDBHandler(SESSIONS, Session, client=client).add_record(Session(session_id="s-1"))

    assert keys == PSKeyValues(partition_key="s-1")


def test_update_record_by_id_overwrites_with_given_keys() -> None:
    client = FakeDynamoDBClient()

    def validate(req: dict) -> None:
        assert req["Item"]["orderId"] == {"S": "o-2"}
        assert req["Item"]["customerId"] == {"S": "c-2"}
        assert "ConditionExpression" not in req

    client.expect("put_item", validate)

    _orders(client).update_record_by_id(
        Order(order_id="o-1", customer_id="c-1", total=3), PSKeyValues(partition_key="o-2", sort_key="c-2")
    )
    client.assert_no_pending()


def test_update_record_by_id_requires_sort_key() -> None:
    client = FakeDynamoDBClient()
    with pytest.raises(ValidationError, match="missing required sorting key"):
        _orders(client).update_record_by_id(Order(order_id="o-1"), PSKeyValues(partition_key="o-1"))
    assert client.calls == []


@pytest.mark.parametrize(
    ("keys", "match"),
    [
        (PSKeyValues(partition_key="o-1", sort_key=""), "missing required sorting key"),
        (PSKeyValues(partition_key="", sort_key="c-1"), "missing required partition key"),
    ],
)
def test_update_record_by_id_rejects_empty_keys(keys: PSKeyValues, match: str) -> None:
    client = FakeDynamoDBClient()
    with pytest.raises(ValidationError, match=match):
        _orders(client).update_record_by_id(Order(order_id="o-1", customer_id="c-1"), keys)
    assert client.calls == []


def test_update_builds_set_expression() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "update_item",
        {
            "TableName": "orders",
            "Key": {"orderId": {"S": "o-1"}, "customerId": {"S": "c-1"}},
            "UpdateExpression": "SET #n0 = :v0, #n1 = :v1",
            "ExpressionAttributeNames": {"#n0": "total", "#n1": "status"},
            "ExpressionAttributeValues": {":v0": {"N": "9"}, ":v1": {"S": "paid"}},
        },
    )

    _orders(client).update("o-1", "c-1", {"total": 9, "status": "paid"})
    client.assert_no_pending()


def test_update_key_rules() -> None:
    client = FakeDynamoDBClient()
    with pytest.raises(ValidationError, match="missing required sorting key"):
        _orders(client).update("o-1", None, {"total": 1})
    with pytest.raises(ValidationError, match="missing required sorting key"):
        _orders(client).update("o-1", "", {"total": 1})
    with pytest.raises(ValidationError, match="missing required partition key"):
        _orders(client).update("", "c-1", {"total": 1})

    sessions = DynamoDBHandler(SESSIONS, Session, client=client)
    with pytest.raises(ValidationError, match="no sort key"):
        sessions.update("s-1", "x", {"payload": 1})

    with pytest.raises(ValidationError, match="nothing set to be updated"):
        _orders(client).update("o-1", "c-1", {})
    assert client.calls == []


def test_delete_record_by_id() -> None:
    client = FakeDynamoDBClient()
    client.expect("delete_item", {"TableName": "orders", "Key": {"orderId": {"S": "o-1"}, "customerId": {"S": "c-1"}}})

    _orders(client).delete_record_by_id(PSKeyValues(partition_key="o-1", sort_key="c-1"))

    assert "ConditionExpression" not in client.calls[0][1]


def test_delete_record_by_id_with_precondition() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "delete_item",
        {
            "Key": {"orderId": {"S": "o-1"}, "customerId": {"S": "c-1"}},
            "ConditionExpression": "#n0 < :v0",
            "ExpressionAttributeNames": {"#n0": "total"},
            "ExpressionAttributeValues": {":v0": {"N": "10"}},
        },
    )
    handler = _orders(client)

    handler.delete_record_by_id(
        PSKeyValues(partition_key="o-1", sort_key="c-1"),
        handler.expression().with_condition("total", 10, Operator.LT),
    )
    client.assert_no_pending()


@pytest.mark.parametrize(
    ("keys", "match"),
    [
        (PSKeyValues(partition_key="", sort_key="c-1"), "missing required partition key"),
        (PSKeyValues(partition_key="o-1"), "missing required sort key"),
    ],
)
def test_delete_record_by_id_key_rules(keys: PSKeyValues, match: str) -> None:
    client = FakeDynamoDBClient()
    with pytest.raises(ValidationError, match=match):
        _orders(client).delete_record_by_id(keys)
    assert client.calls == []


def test_handler_uses_runtime_client_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    import ddbhandler.handler as handler_module

    fake = FakeDynamoDBClient()
    monkeypatch.setattr(handler_module, "get_dynamodb_client", lambda: fake)

    handler = DynamoDBHandler(ORDERS, Order)
    fake.expect("get_item", response={})

    assert handler.get_by_id(PSKeyValues(partition_key="o-1", sort_key="c-1")) is None
    assert fake.calls[0][0] == "get_item"
