"""DynamoDB store for click-tally data."""

import asyncio
import logging
import math
from collections.abc import Awaitable
from typing import Any

import aioboto3  # type: ignore[import-untyped]
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from . import schema
from .config import DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT_SECONDS
from .exceptions import StoreError, StoreUnavailable, StoreWriteConflict
from .store_protocol import BEGINS_WITH, BETWEEN, KeyCondition

logger = logging.getLogger(__name__)

# Error codes that indicate a transient or environmental failure
UNAVAILABLE_ERROR_CODES = frozenset(
    {
        "InternalServerError",
        "LimitExceededException",
        "ProvisionedThroughputExceededException",
        "RequestLimitExceeded",
        "ResourceNotFoundException",
        "ServiceUnavailable",
        "ThrottlingException",
    }
)
CONFLICT_ERROR_CODES = frozenset(
    {
        "ConditionalCheckFailedException",
        "TransactionConflictException",
    }
)


class DynamoStore:
    """
    Async DynamoDB store bound to one table.

    Implements StoreProtocol on top of an aioboto3 client. Every request is
    bounded by ``timeout_seconds``; timeouts, connection failures and
    throttling raise StoreUnavailable.
    """

    def __init__(
        self,
        table_name: str = schema.DEFAULT_TABLE_NAME,
        region: str | None = None,
        endpoint_url: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if not math.isfinite(timeout_seconds) or timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be a positive finite number")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._table_name = table_name
        self.region = region
        self.endpoint_url = endpoint_url
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self._session: aioboto3.Session | None = None
        self._client: Any = None
        self._client_lock = asyncio.Lock()

    @property
    def table_name(self) -> str:
        return self._table_name

    async def _get_client(self) -> Any:
        """Get or create the DynamoDB client, once per store."""
        if self._client is not None:
            return self._client
        async with self._client_lock:
            if self._client is None:
                self._session = aioboto3.Session()
                self._client = await self._session.client(
                    "dynamodb",
                    region_name=self.region,
                    endpoint_url=self.endpoint_url,
                    config=Config(
                        connect_timeout=self.timeout_seconds,
                        read_timeout=self.timeout_seconds,
                        retries={"total_max_attempts": self.max_attempts, "mode": "standard"},
                    ),
                ).__aenter__()
        return self._client

    async def close(self) -> None:
        """Close the DynamoDB client."""
        if self._client is not None:
            await self._client.__aexit__(None, None, None)
            self._client = None
            self._session = None

    async def __aenter__(self) -> "DynamoStore":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _call(self, operation: str, method: str, **kwargs: Any) -> Any:
        """Invoke a client method, bounded by the timeout, translating errors."""
        client = await self._get_client()
        logger.debug("%s on %s", method, self._table_name)
        return await self._bounded(operation, getattr(client, method)(**kwargs))

    async def _bounded(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        """Await a client coroutine under the store timeout, translating errors."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except ClientError as e:
            raise self._translate_client_error(operation, e) from e
        except TimeoutError as e:
            logger.warning("%s timed out after %ss", operation, self.timeout_seconds)
            raise StoreUnavailable(
                f"Timed out after {self.timeout_seconds}s",
                cause=e,
                table_name=self._table_name,
                operation=operation,
            ) from e
        except BotoCoreError as e:
            logger.warning("%s failed: %s", operation, e)
            raise StoreUnavailable(
                str(e), cause=e, table_name=self._table_name, operation=operation
            ) from e

    def _translate_client_error(self, operation: str, error: ClientError) -> StoreError:
        code = error.response.get("Error", {}).get("Code", "")
        message = error.response.get("Error", {}).get("Message", "") or str(error)
        logger.warning("%s failed with %s: %s", operation, code, message)
        if code in CONFLICT_ERROR_CODES:
            cls: type[StoreError] = StoreWriteConflict
        elif code in UNAVAILABLE_ERROR_CODES:
            cls = StoreUnavailable
        else:
            cls = StoreError
        return cls(
            f"{code}: {message}",
            cause=error,
            table_name=self._table_name,
            operation=operation,
        )

    # -------------------------------------------------------------------------
    # Table operations
    # -------------------------------------------------------------------------

    async def create_table(self) -> None:
        """
        Create the DynamoDB table if it doesn't exist.

        Both the CreateTable request and the wait for the table to become
        active are bounded by ``timeout_seconds``. A table that is still
        creating when the bound expires raises StoreUnavailable; calling
        again resumes waiting.
        """
        client = await self._get_client()
        definition = schema.get_table_definition(self._table_name)

        try:
            await self._call("create_table", "create_table", **definition)
        except StoreError as e:
            if _error_code(e.cause) != "ResourceInUseException":
                raise

        # Wait for table to be active
        waiter = client.get_waiter("table_exists")
        await self._bounded(
            "create_table",
            waiter.wait(TableName=self._table_name, WaiterConfig={"Delay": 1}),
        )
        logger.info("Table %s is active", self._table_name)

    async def delete_table(self) -> None:
        """Delete the DynamoDB table."""
        try:
            await self._call("delete_table", "delete_table", TableName=self._table_name)
        except StoreError as e:
            if _error_code(e.cause) != "ResourceNotFoundException":
                raise
            return
        logger.info("Deleted table %s", self._table_name)

    async def ping(self) -> bool:
        """Return True if the table is reachable."""
        try:
            await self._call("ping", "describe_table", TableName=self._table_name)
        except StoreError:
            return False
        return True

    # -------------------------------------------------------------------------
    # Item operations
    # -------------------------------------------------------------------------

    async def put(self, key: dict[str, Any], attributes: dict[str, Any]) -> None:
        """Write an item unconditionally."""
        item = {**attributes, **key}
        await self._call(
            "put",
            "put_item",
            TableName=self._table_name,
            Item=self._serialize_map(item),
        )

    async def get(self, key: dict[str, Any]) -> dict[str, Any] | None:
        """Get an item by primary key."""
        response = await self._call(
            "get",
            "get_item",
            TableName=self._table_name,
            Key=self._serialize_map(key),
        )

        item = response.get("Item")
        if not item:
            return None

        return self._deserialize_map(item)

    async def atomic_add(
        self,
        key: dict[str, Any],
        field: str,
        delta: int,
        set_attributes: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Increment a counter with DynamoDB's ADD action.

        ADD creates the item and initializes the counter to zero when absent,
        so the first call and every later call go through the same request.
        """
        names = {"#field": field}
        values: dict[str, Any] = {":delta": self._serialize_value(delta)}
        expression = "ADD #field :delta"

        if set_attributes:
            assignments = []
            for i, (name, value) in enumerate(set_attributes.items()):
                names[f"#s{i}"] = name
                values[f":s{i}"] = self._serialize_value(value)
                assignments.append(f"#s{i} = :s{i}")
            expression += " SET " + ", ".join(assignments)

        response = await self._call(
            "atomic_add",
            "update_item",
            TableName=self._table_name,
            Key=self._serialize_map(key),
            UpdateExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )

        return self._deserialize_map(response.get("Attributes", {}))

    async def query(
        self,
        partition: KeyCondition,
        sort: KeyCondition | None = None,
        *,
        index_name: str | None = None,
        scan_forward: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Query the table or an index, following pagination to completion."""
        names = {"#pk": partition.attribute}
        values = {":pk": self._serialize_value(partition.values[0])}
        key_condition = "#pk = :pk"

        if sort is not None:
            names["#sk"] = sort.attribute
            if sort.operator == BETWEEN:
                key_condition += " AND #sk BETWEEN :sk_low AND :sk_high"
                values[":sk_low"] = self._serialize_value(sort.values[0])
                values[":sk_high"] = self._serialize_value(sort.values[1])
            elif sort.operator == BEGINS_WITH:
                key_condition += " AND begins_with(#sk, :sk)"
                values[":sk"] = self._serialize_value(sort.values[0])
            else:
                key_condition += " AND #sk = :sk"
                values[":sk"] = self._serialize_value(sort.values[0])

        query_args: dict[str, Any] = {
            "TableName": self._table_name,
            "KeyConditionExpression": key_condition,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
            "ScanIndexForward": scan_forward,
        }
        if index_name:
            query_args["IndexName"] = index_name

        items: list[dict[str, Any]] = []
        while True:
            if limit is not None:
                query_args["Limit"] = limit - len(items)
            response = await self._call("query", "query", **query_args)
            items.extend(self._deserialize_map(item) for item in response.get("Items", []))

            last_key = response.get("LastEvaluatedKey")
            if not last_key or (limit is not None and len(items) >= limit):
                break
            query_args["ExclusiveStartKey"] = last_key

        return items

    # -------------------------------------------------------------------------
    # Serialization helpers
    # -------------------------------------------------------------------------

    def _serialize_map(self, data: dict[str, Any]) -> dict[str, Any]:
        """Serialize a Python dict to DynamoDB item format, skipping None values."""
        return {
            key: self._serialize_value(value) for key, value in data.items() if value is not None
        }

    def _serialize_value(self, value: Any) -> dict[str, str]:
        """Serialize a key, id or counter value. Only strings and numbers are stored."""
        if isinstance(value, str):
            return {"S": value}
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return {"N": str(value)}
        raise TypeError(f"Unsupported attribute value: {value!r}")

    def _deserialize_map(self, data: dict[str, Any]) -> dict[str, Any]:
        """Deserialize a DynamoDB item to a Python dict."""
        return {key: self._deserialize_value(value) for key, value in data.items()}

    def _deserialize_value(self, value: dict[str, str]) -> str | int | float:
        """Deserialize a string or number attribute."""
        if "S" in value:
            return value["S"]
        if "N" in value:
            num_str = value["N"]
            return int(num_str) if "." not in num_str else float(num_str)
        raise TypeError(f"Unsupported attribute type: {sorted(value)}")


def _error_code(error: Exception | None) -> str:
    """DynamoDB error code of a ClientError cause, or an empty string."""
    if isinstance(error, ClientError):
        return str(error.response.get("Error", {}).get("Code", ""))
    return ""
