"""Shared pytest fixtures for reading ingester tests."""

import os
import sys
from collections.abc import Generator
from pathlib import Path
from typing import Any

import boto3
import pytest
from moto import mock_aws
from mypy_boto3_s3 import S3Client

# Add src to path for Lambda-style imports ("from shared import ...")
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

# Powertools must not try to reach X-Ray from tests
os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")
os.environ.setdefault("AWS_DEFAULT_REGION", "ap-southeast-2")

REGION = "ap-southeast-2"
TEST_TABLE = "test-readings"
TEST_BUCKET = "test-uploads"


# ==================== Paths ====================


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to test fixtures directory."""
    return Path(__file__).parent / "unit" / "fixtures"


@pytest.fixture
def pair_cumulative_file(fixtures_dir: Path) -> Path:
    """Hourly running totals, oldest first, with a header row."""
    return fixtures_dir / "pair_cumulative_forward.csv"


@pytest.fixture
def pair_cumulative_reverse_file(fixtures_dir: Path) -> Path:
    """Same running totals as pair_cumulative_file, newest first."""
    return fixtures_dir / "pair_cumulative_reverse.csv"


@pytest.fixture
def fixed_interval_file(fixtures_dir: Path) -> Path:
    """Hourly interval values, value first then timestamp."""
    return fixtures_dir / "fixed_interval.csv"


@pytest.fixture
def fixed_interval_bad_row_file(fixtures_dir: Path) -> Path:
    """Fixed-interval file whose last row has a non-numeric value."""
    return fixtures_dir / "fixed_interval_bad_row.csv"


# ==================== AWS Mocks ====================


@pytest.fixture
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.setenv("AWS_REGION", REGION)


@pytest.fixture
def ingest_config() -> Any:
    """Small batches so multi-batch paths are exercised by short files."""
    from shared.config import IngestConfig

    return IngestConfig(
        readings_table=TEST_TABLE,
        upload_bucket=TEST_BUCKET,
        region=REGION,
        batch_size=2,
        chunk_size=16,
    )


@pytest.fixture
def reading_store(aws_credentials: None) -> Generator[Any]:
    """Create a mock readings table and return a store bound to it."""
    from shared.store import ReadingStore

    with mock_aws():
        store = ReadingStore(TEST_TABLE, region_name=REGION)
        store.create_table()
        yield store


@pytest.fixture
def mock_s3(reading_store: Any) -> Generator[S3Client]:
    """Create mock upload bucket alongside the readings table."""
    s3 = boto3.client("s3", region_name=REGION)
    s3.create_bucket(Bucket=TEST_BUCKET, CreateBucketConfiguration={"LocationConstraint": REGION})
    yield s3


# ==================== Lambda ====================


@pytest.fixture
def lambda_context() -> Any:
    """Mock Lambda context for Powertools decorators."""
    from unittest.mock import MagicMock

    context = MagicMock()
    context.function_name = "test-function"
    context.memory_limit_in_mb = 128
    context.invoked_function_arn = "arn:aws:lambda:ap-southeast-2:123456789012:function:test-function"
    context.aws_request_id = "test-request-id"
    return context
