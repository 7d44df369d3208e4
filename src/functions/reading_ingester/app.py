"""
Reading Ingester Lambda: loads uploaded meter CSV files into DynamoDB.

Triggered by SQS messages wrapping S3 ObjectCreated events for keys of the form
    newTBP/<meter_id>/<file>.csv

The interpretation policy comes from the object's user metadata:
    mode        "pair" or "fixed" (default "fixed")
    cumulative  pair mode: rows hold running totals
    reverse     pair mode: rows are newest first

Files that load are moved to newP/, files that cannot be interpreted to
newParseErr/. Files hit by a storage failure stay in newTBP/ so they can be
re-driven.

The event source is expected to be a FIFO queue grouped by meter id, so two
uploads for the same meter are never ingested at the same time.
"""

import json
import re
from enum import Enum
from typing import Any
from urllib.parse import unquote

import boto3
from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext
from botocore.exceptions import ClientError

from shared import (
    PARSE_ERR_DIR,
    PROCESSED_DIR,
    UPLOAD_DIR,
    IngestConfig,
    IngestOutcome,
    ReadingStore,
    StorageError,
    build_policy,
    ingest,
)
from shared.common import METRICS_NAMESPACE, SERVICE_NAME
from shared.models import IngestPolicy

logger = Logger(service=SERVICE_NAME)
tracer = Tracer(service=SERVICE_NAME)
metrics = Metrics(namespace=METRICS_NAMESPACE)

METER_ID_PATTERN = re.compile(r"^\d+$")

# Lazily initialized once per container
_config: IngestConfig | None = None
_s3_client = None
_store: ReadingStore | None = None


class FileResult(Enum):
    """Result status for one uploaded file."""

    PROCESSED = "processed"
    REJECTED = "rejected"  # Moved to newParseErr/
    FAILED = "failed"  # Left in place for re-drive


def get_config() -> IngestConfig:
    global _config
    if _config is None:
        _config = IngestConfig.from_env()
    return _config


def get_s3_client() -> Any:
    global _s3_client
    if _s3_client is None:
        _s3_client = boto3.client("s3", region_name=get_config().region)
    return _s3_client


def get_store() -> ReadingStore:
    global _store
    if _store is None:
        _store = ReadingStore.from_config(get_config())
    return _store


def meter_id_from_key(key: str) -> int:
    """
    Extract the meter id from an upload key.

    Args:
        key: Decoded S3 key, e.g. "newTBP/42/readings.csv"

    Returns:
        Positive meter id

    Raises:
        ValueError: If the key has no numeric meter segment
    """
    relative = key.removeprefix(UPLOAD_DIR)
    parts = relative.split("/")

    if len(parts) < 2 or not METER_ID_PATTERN.match(parts[0]):
        raise ValueError(f"Upload key has no meter id segment: {key}")

    meter_id = int(parts[0])
    if meter_id <= 0:
        raise ValueError(f"Meter id must be positive: {key}")
    return meter_id


def policy_from_metadata(metadata: dict[str, str], config: IngestConfig) -> IngestPolicy:
    """Build the interpretation policy from S3 user metadata."""
    return build_policy(
        mode=metadata.get("mode"),
        cumulative=metadata.get("cumulative"),
        reverse=metadata.get("reverse"),
        interval_minutes=config.fixed_interval_minutes,
    )


@tracer.capture_method
def fetch_upload(bucket: str, key: str) -> tuple[bytes, dict[str, str]]:
    response = get_s3_client().get_object(Bucket=bucket, Key=key)
    return response["Body"].read(), response.get("Metadata", {})


def move_s3_file(bucket_name: str, source_key: str, dest_prefix: str) -> str | None:
    """Move an upload under dest_prefix, keeping its path below newTBP/."""
    relative = source_key.removeprefix(UPLOAD_DIR)
    dest_key = f"{dest_prefix.rstrip('/')}/{relative}"

    try:
        s3 = get_s3_client()
        s3.copy_object(Bucket=bucket_name, Key=dest_key, CopySource={"Bucket": bucket_name, "Key": source_key})
        s3.delete_object(Bucket=bucket_name, Key=source_key)
        return dest_key

    except ClientError as e:
        logger.error("File move failed", exc_info=True, extra={"source": source_key, "dest": dest_key, "error": str(e)})
        return None


@tracer.capture_method
def process_upload(bucket: str, key: str) -> tuple[FileResult, IngestOutcome | None]:
    """
    Ingest one uploaded file and route it by outcome.

    Args:
        bucket: S3 bucket name
        key: Decoded S3 object key

    Returns:
        Tuple of (result, outcome); outcome is None when ingestion never ran
    """
    config = get_config()

    try:
        meter_id = meter_id_from_key(key)
    except ValueError as e:
        logger.warning("Rejected upload", extra={"bucket": bucket, "key": key, "error": str(e)})
        move_s3_file(bucket, key, PARSE_ERR_DIR)
        return FileResult.REJECTED, None

    try:
        body, metadata = fetch_upload(bucket, key)
    except ClientError as e:
        logger.error("File download failed", exc_info=True, extra={"bucket": bucket, "key": key, "error": str(e)})
        return FileResult.FAILED, None

    try:
        policy = policy_from_metadata(metadata, config)
    except ValueError as e:
        logger.warning("Rejected upload metadata", extra={"key": key, "metadata": metadata, "error": str(e)})
        move_s3_file(bucket, key, PARSE_ERR_DIR)
        return FileResult.REJECTED, None

    outcome = ingest(body, policy, meter_id, store=get_store(), config=config)

    if outcome.success:
        move_s3_file(bucket, key, PROCESSED_DIR)
        return FileResult.PROCESSED, outcome

    if outcome.error_kind == StorageError.kind:
        return FileResult.FAILED, outcome

    move_s3_file(bucket, key, PARSE_ERR_DIR)
    return FileResult.REJECTED, outcome


def _upload_keys(record: dict[str, Any]) -> list[tuple[str, str]]:
    """Extract (bucket, decoded key) pairs from one SQS record."""
    message_body = json.loads(record["body"])
    keys = []
    for s3_event in message_body.get("Records", []):
        bucket_name = s3_event["s3"]["bucket"]["name"]
        file_key = s3_event["s3"]["object"]["key"]
        keys.append((bucket_name, unquote(file_key.replace("+", "%20"))))
    return keys


@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
@logger.inject_lambda_context
def lambda_handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    counts = {result: 0 for result in FileResult}
    readings_committed = 0
    readings_inserted = 0

    for record in event["Records"]:
        try:
            uploads = _upload_keys(record)
        except (KeyError, TypeError, json.JSONDecodeError) as e:
            logger.error("Error processing SQS record", exc_info=True, extra={"error": str(e)})
            continue

        for bucket_name, key in uploads:
            logger.info("Processing file", extra={"bucket": bucket_name, "key": key})
            result, outcome = process_upload(bucket_name, key)
            counts[result] += 1

            if outcome is not None and outcome.success:
                readings_committed += outcome.committed_count
                readings_inserted += outcome.inserted_count

    metrics.add_metric(name="IngestedFiles", unit=MetricUnit.Count, value=counts[FileResult.PROCESSED])
    metrics.add_metric(name="BadFiles", unit=MetricUnit.Count, value=counts[FileResult.REJECTED])
    metrics.add_metric(name="StorageFailures", unit=MetricUnit.Count, value=counts[FileResult.FAILED])
    metrics.add_metric(name="ReadingsCommitted", unit=MetricUnit.Count, value=readings_committed)
    metrics.add_metric(name="ReadingsInserted", unit=MetricUnit.Count, value=readings_inserted)

    return {
        "statusCode": 200,
        "body": "Successfully processed files.",
        "processed": counts[FileResult.PROCESSED],
        "rejected": counts[FileResult.REJECTED],
        "failed": counts[FileResult.FAILED],
        "readings": readings_committed,
    }
