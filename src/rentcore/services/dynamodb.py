"""DynamoDB service wrapper: the persistence collaborator.

Provides environment-aware table names, conditional single-item writes
(compare-and-swap) and ``TransactWriteItems`` helpers for the per-listing
and per-host atomic units.
"""

from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from rentcore.config import get_settings

# Module-level singleton for connection reuse
_dynamodb_service_instance: "DynamoDBService | None" = None

_serializer = TypeSerializer()


def get_dynamodb_service(table_prefix: str | None = None) -> "DynamoDBService":
    """Process-wide DynamoDBService; ``table_prefix`` only applies on first call."""
    global _dynamodb_service_instance
    if _dynamodb_service_instance is None:
        _dynamodb_service_instance = DynamoDBService(table_prefix)
    return _dynamodb_service_instance


def reset_dynamodb_service() -> None:
    """Drop the shared instance so the next call binds to fresh clients (tests)."""
    global _dynamodb_service_instance
    _dynamodb_service_instance = None


class DynamoDBService:
    """Prefixed-table access: CRUD, conditional writes and transactions.

    Methods take logical table names such as "reservations"; the
    environment prefix is applied here.
    """

    def __init__(self, table_prefix: str | None = None) -> None:
        self.name_prefix = table_prefix or get_settings().table_prefix
        self._dynamodb = boto3.resource("dynamodb")
        self._client = boto3.client("dynamodb")

    def _table_name(self, table: str) -> str:
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        return self._dynamodb.Table(self._table_name(table))

    # Generic CRUD operations

    def get_item(
        self,
        table: str,
        key: dict[str, Any],
        consistent_read: bool = True,
    ) -> dict[str, Any] | None:
        """Get a single item by key.

        Reads are strongly consistent by default so that the version read
        before a conditional write is the latest committed one.
        """
        response = self._get_table(table).get_item(Key=key, ConsistentRead=consistent_read)
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> bool:
        """Put an item, optionally guarded by a condition.

        Returns:
            True if written, False if the condition failed
        """
        kwargs = _expression_kwargs(
            condition_expression, expression_attribute_names, expression_attribute_values
        )
        try:
            self._get_table(table).put_item(Item=item, **kwargs)
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                return False
            raise
        return True

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any] | None:
        """Apply an update expression and return the new item.

        Args:
            table: Table name without prefix
            key: Primary key dict
            update_expression: DynamoDB update expression
            expression_attribute_values: Values for expression
            expression_attribute_names: Names for expression (for reserved words)
            condition_expression: Optional guard, e.g. a compare-and-set on version

        Returns:
            Updated attributes or None if the condition failed
        """
        kwargs = _expression_kwargs(
            condition_expression, expression_attribute_names, expression_attribute_values
        )
        try:
            response = self._get_table(table).update_item(
                Key=key,
                UpdateExpression=update_expression,
                ReturnValues="ALL_NEW",
                **kwargs,
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                return None
            raise
        attrs: dict[str, Any] | None = response.get("Attributes")
        return attrs

    def delete_item(self, table: str, key: dict[str, Any]) -> None:
        self._get_table(table).delete_item(Key=key)

    def query(
        self,
        table: str,
        key_condition: Any,
        index_name: str | None = None,
        filter_expression: Any | None = None,
        scan_index_forward: bool = True,
        consistent_read: bool = False,
    ) -> list[dict[str, Any]]:
        """Query a table or GSI, following pagination to the end.

        GSIs only support eventually consistent reads; ``consistent_read``
        applies to base-table queries.
        """
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": scan_index_forward,
        }
        if consistent_read:
            kwargs["ConsistentRead"] = True
        if index_name:
            kwargs["IndexName"] = index_name
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression
        return _collect_pages(self._get_table(table).query, kwargs)

    def scan(self, table: str) -> list[dict[str, Any]]:
        """Scan a small table in full."""
        return _collect_pages(self._get_table(table).scan, {})

    def transact_write(self, items: list[dict[str, Any]]) -> bool:
        """Commit several put/update entries as one atomic unit.

        Args:
            items: TransactWriteItem dicts built by put_op/update_op/version_bump_op

        Returns:
            True if committed, False if any condition failed
        """
        try:
            self._client.transact_write_items(TransactItems=items)  # type: ignore[arg-type]
        except ClientError as e:
            if _error_code(e) == "TransactionCanceledException":
                return False
            raise
        return True

    # Transaction item builders (low-level attribute format)

    def put_op(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build a Put entry for transact_write."""
        op = _expression_kwargs(
            condition_expression,
            expression_attribute_names,
            serialize_item(expression_attribute_values) if expression_attribute_values else None,
        )
        return {"Put": {"TableName": self._table_name(table), "Item": serialize_item(item), **op}}

    def update_op(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any]:
        """Build an Update entry for transact_write."""
        op = _expression_kwargs(
            condition_expression,
            expression_attribute_names,
            serialize_item(expression_attribute_values),
        )
        return {
            "Update": {
                "TableName": self._table_name(table),
                "Key": serialize_item(key),
                "UpdateExpression": update_expression,
                **op,
            }
        }

    def version_bump_op(
        self,
        table: str,
        key: dict[str, Any],
        expected_version: int,
        also_set: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build an Update that advances a serialization token.

        Fails the surrounding transaction if another writer advanced the
        token since ``expected_version`` was read. A missing item counts
        as version 0 and is created by the update. ``also_set`` attributes
        are written in the same update.
        """
        if expected_version == 0:
            condition = "attribute_not_exists(#v) OR #v = :expected"
        else:
            condition = "#v = :expected"
        assignments = ["#v = :next"]
        names = {"#v": "version"}
        values: dict[str, Any] = {":expected": expected_version, ":next": expected_version + 1}
        for i, (attr, value) in enumerate((also_set or {}).items()):
            assignments.append(f"#a{i} = :a{i}")
            names[f"#a{i}"] = attr
            values[f":a{i}"] = value
        return self.update_op(
            table,
            key,
            "SET " + ", ".join(assignments),
            values,
            expression_attribute_names=names,
            condition_expression=condition,
        )

    def delete_op(
        self,
        table: str,
        key: dict[str, Any],
        condition_expression: str | None = None,
    ) -> dict[str, Any]:
        """Build a Delete entry for transact_write."""
        op = _expression_kwargs(condition_expression, None, None)
        return {"Delete": {"TableName": self._table_name(table), "Key": serialize_item(key), **op}}

    # Key-condition shortcuts

    def query_by_gsi(
        self,
        table: str,
        index_name: str,
        partition_key_name: str,
        partition_key_value: str,
        sort_key_condition: Any | None = None,
    ) -> list[dict[str, Any]]:
        """All items of one GSI partition, optionally narrowed on the sort key."""
        key_condition = Key(partition_key_name).eq(partition_key_value)
        if sort_key_condition:
            key_condition = key_condition & sort_key_condition

        return self.query(table, key_condition, index_name=index_name)

    def query_by_partition(
        self,
        table: str,
        partition_key_name: str,
        partition_key_value: str,
        consistent_read: bool = True,
    ) -> list[dict[str, Any]]:
        """Query a table's own partition (tables with a sort key), strongly consistent."""
        return self.query(
            table,
            Key(partition_key_name).eq(partition_key_value),
            consistent_read=consistent_read,
        )


def serialize_item(item: dict[str, Any]) -> dict[str, Any]:
    """Serialize a Python dict to the low-level DynamoDB attribute format.

    None values are dropped rather than stored as NULL.
    """
    return {k: _serializer.serialize(v) for k, v in item.items() if v is not None}


def _expression_kwargs(
    condition_expression: str | None,
    names: dict[str, str] | None,
    values: dict[str, Any] | None,
) -> dict[str, Any]:
    """Request kwargs for the optional condition and expression attributes."""
    kwargs: dict[str, Any] = {}
    if condition_expression:
        kwargs["ConditionExpression"] = condition_expression
    if names:
        kwargs["ExpressionAttributeNames"] = names
    if values:
        kwargs["ExpressionAttributeValues"] = values
    return kwargs


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _collect_pages(call: Any, kwargs: dict[str, Any]) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    while True:
        response = call(**kwargs)
        items.extend(response.get("Items", []))
        if "LastEvaluatedKey" not in response:
            return items
        kwargs = {**kwargs, "ExclusiveStartKey": response["LastEvaluatedKey"]}
