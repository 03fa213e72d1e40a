from __future__ import annotations

import os
import uuid
from dataclasses import dataclass

from ddbhandler import (
    ClientSettings,
    Config,
    DataclassRecord,
    DynamoDBHandler,
    Operator,
    PSKeyValues,
    get_dynamodb_client,
    record_field,
)


@dataclass(frozen=True)
class Note(DataclassRecord):
    owner: str = record_field(roles=["pk"], default="")
    slug: str = record_field(roles=["sk"], default="")
    value: int = record_field(default=0)


def main() -> None:
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "dummy")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "dummy")
    client = get_dynamodb_client(
        ClientSettings(
            region=os.environ.get("AWS_REGION", "us-east-1"),
            endpoint_url=os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000"),
        )
    )
    table_name = f"ddbhandler_example_{uuid.uuid4().hex[:12]}"

    client.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "owner", "KeyType": "HASH"}, {"AttributeName": "slug", "KeyType": "RANGE"}],
        AttributeDefinitions=[
            {"AttributeName": "owner", "AttributeType": "S"},
            {"AttributeName": "slug", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    client.get_waiter("table_exists").wait(TableName=table_name)

    try:
        handler = DynamoDBHandler(
            Config.create(table_name=table_name, partition_key="owner", sort_key="slug"),
            Note,
            client=client,
        )

        handler.add_record(Note(owner="A", slug="001", value=1))
        handler.bulk_add_records([Note(owner="A", slug="010", value=10), Note(owner="A", slug="100", value=100)])

        print("get:", handler.get_by_id(PSKeyValues(partition_key="A", sort_key="010")))

        page = handler.get_records_with_query_filter(
            handler.expression()
            .with_key_condition("owner", "A", Operator.EQUAL)
            .and_key_condition("slug", "010", Operator.GE)
        )
        print("query slug >= '010':", page.items)
    finally:
        client.delete_table(TableName=table_name)


if __name__ == "__main__":
    main()
