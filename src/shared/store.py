"""
DynamoDB storage for readings.

Table layout:
    meter_id      (N, hash key)
    interval_key  (S, range key)  "<start iso>#<end iso>"
    start_time, end_time (S), value (N)

The key pair is the natural uniqueness of a reading, so a conditional put
on it gives insert-or-ignore semantics.
"""

from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any

import boto3
from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from shared.common import MAX_TRANSACTION_ITEMS, SERVICE_NAME
from shared.config import DEFAULT_REGION, IngestConfig
from shared.errors import StorageError
from shared.models import Reading

logger = Logger(service=SERVICE_NAME, child=True)

HASH_KEY = "meter_id"
RANGE_KEY = "interval_key"
PUT_IF_ABSENT = f"attribute_not_exists({HASH_KEY})"

DUPLICATE_REASON = "ConditionalCheckFailed"
NO_REASON = "None"

_serializer = TypeSerializer()


def interval_key(start_time: datetime, end_time: datetime) -> str:
    return f"{start_time.isoformat()}#{end_time.isoformat()}"


def reading_key(reading: Reading) -> dict[str, Any]:
    return {HASH_KEY: reading.meter_id, RANGE_KEY: interval_key(reading.start_time, reading.end_time)}


def reading_to_item(reading: Reading) -> dict[str, Any]:
    value = reading.value if isinstance(reading.value, int) else Decimal(str(reading.value))
    return {
        **reading_key(reading),
        "start_time": reading.start_time.isoformat(),
        "end_time": reading.end_time.isoformat(),
        "value": value,
    }


def item_to_reading(item: dict[str, Any]) -> Reading:
    value = item["value"]
    if isinstance(value, Decimal):
        value = int(value) if value == value.to_integral_value() else float(value)
    return Reading(
        meter_id=int(item[HASH_KEY]),
        value=value,
        start_time=datetime.fromisoformat(item["start_time"]),
        end_time=datetime.fromisoformat(item["end_time"]),
    )


class ReadingStore:
    """Readings table with insert-or-ignore batch writes."""

    def __init__(
        self,
        table_name: str,
        client: Any = None,
        resource: Any = None,
        region_name: str = DEFAULT_REGION,
    ) -> None:
        self.table_name = table_name
        self.region_name = region_name
        self._client = client
        self._resource = resource

    @classmethod
    def from_config(cls, config: IngestConfig, session: boto3.Session | None = None) -> "ReadingStore":
        if session is None:
            return cls(config.readings_table, region_name=config.region)
        return cls(
            config.readings_table,
            client=session.client("dynamodb", region_name=config.region),
            resource=session.resource("dynamodb", region_name=config.region),
            region_name=config.region,
        )

    @property
    def client(self) -> Any:
        """Low-level DynamoDB client (lazy initialization)."""
        if self._client is None:
            self._client = boto3.client("dynamodb", region_name=self.region_name)
        return self._client

    @property
    def table(self) -> Any:
        """DynamoDB Table resource (lazy initialization)."""
        if self._resource is None:
            self._resource = boto3.resource("dynamodb", region_name=self.region_name)
        return self._resource.Table(self.table_name)

    def create_table(self) -> None:
        """Create the readings table and wait until it is active."""
        self.client.create_table(
            TableName=self.table_name,
            KeySchema=[
                {"AttributeName": HASH_KEY, "KeyType": "HASH"},
                {"AttributeName": RANGE_KEY, "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": HASH_KEY, "AttributeType": "N"},
                {"AttributeName": RANGE_KEY, "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        self.client.get_waiter("table_exists").wait(TableName=self.table_name)
        logger.info("Created readings table", extra={"table": self.table_name})

    @contextmanager
    def transaction(self) -> Generator["IngestTransaction"]:
        """
        Scope one ingestion call.

        Every item inserted inside the scope is deleted again if the scope
        exits with an exception, so a failed call leaves no partial commit.
        """
        tx = IngestTransaction(self)
        try:
            yield tx
        except Exception:
            try:
                tx.rollback()
            except StorageError:
                logger.exception("Rollback failed", extra={"table": self.table_name, "pending": tx.inserted_count})
            raise

    def query_readings(self, meter_id: int) -> list[Reading]:
        """Fetch every stored reading for a meter, ordered by interval."""
        table = self.table
        try:
            response = table.query(KeyConditionExpression=Key(HASH_KEY).eq(meter_id))
            items = response.get("Items", [])

            # Handle pagination for large datasets
            while "LastEvaluatedKey" in response:
                response = table.query(
                    KeyConditionExpression=Key(HASH_KEY).eq(meter_id),
                    ExclusiveStartKey=response["LastEvaluatedKey"],
                )
                items.extend(response.get("Items", []))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to query readings for meter {meter_id}: {e}") from e

        return [item_to_reading(item) for item in items]

    def count_readings(self, meter_id: int) -> int:
        return len(self.query_readings(meter_id))


class IngestTransaction:
    """Batch writer for a single ingestion call.

    Tracks the keys it inserted so the enclosing scope can undo them.
    """

    def __init__(self, store: ReadingStore) -> None:
        self._store = store
        self._inserted: list[dict[str, Any]] = []

    @property
    def inserted_count(self) -> int:
        return len(self._inserted)

    def insert_or_ignore(self, readings: Iterable[Reading]) -> int:
        """
        Write one batch, silently skipping readings whose key already exists.

        Args:
            readings: At most MAX_TRANSACTION_ITEMS readings

        Returns:
            Number of readings newly written

        Raises:
            StorageError: If the batch fails for any reason other than duplicates
        """
        # Collapse repeated keys; a transaction may touch each item only once
        unique: dict[tuple, Reading] = {}
        for reading in readings:
            unique.setdefault(reading.key, reading)
        pending = list(unique.values())

        if len(pending) > MAX_TRANSACTION_ITEMS:
            raise ValueError(f"Batch of {len(pending)} exceeds {MAX_TRANSACTION_ITEMS} items")

        while pending:
            try:
                self._store.client.transact_write_items(TransactItems=[self._put_if_absent(r) for r in pending])
            except ClientError as e:
                pending = self._without_duplicates(pending, e)
            except BotoCoreError as e:
                raise StorageError(f"Batch write failed: {e}") from e
            else:
                self._inserted.extend(reading_key(r) for r in pending)
                return len(pending)

        return 0

    def rollback(self) -> None:
        """Delete every item this transaction inserted."""
        if not self._inserted:
            return

        logger.warning(
            "Rolling back ingestion",
            extra={"table": self._store.table_name, "items": len(self._inserted)},
        )
        try:
            with self._store.table.batch_writer() as batch:
                for key in self._inserted:
                    batch.delete_item(Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to roll back {len(self._inserted)} readings: {e}") from e

        self._inserted.clear()

    def _put_if_absent(self, reading: Reading) -> dict[str, Any]:
        return {
            "Put": {
                "TableName": self._store.table_name,
                "Item": {k: _serializer.serialize(v) for k, v in reading_to_item(reading).items()},
                "ConditionExpression": PUT_IF_ABSENT,
            }
        }

    def _without_duplicates(self, pending: list[Reading], error: ClientError) -> list[Reading]:
        """Drop the readings a cancelled transaction reported as already stored."""
        code = error.response.get("Error", {}).get("Code")
        if code != "TransactionCanceledException":
            raise StorageError(f"Batch write failed: {error}") from error

        reasons = [r.get("Code") or NO_REASON for r in error.response.get("CancellationReasons", [])]
        if len(reasons) != len(pending):
            raise StorageError(f"Batch write cancelled: {error}") from error

        unexpected = {r for r in reasons if r not in (NO_REASON, DUPLICATE_REASON)}
        if unexpected or DUPLICATE_REASON not in reasons:
            raise StorageError(f"Batch write cancelled: {sorted(unexpected) or reasons}") from error

        remaining = [r for r, reason in zip(pending, reasons, strict=True) if reason != DUPLICATE_REASON]
        logger.debug(
            "Ignoring duplicate readings",
            extra={"duplicates": len(pending) - len(remaining), "remaining": len(remaining)},
        )
        return remaining
