"""Configuration for the reading ingester.

Loaded once from the environment at process start and handed explicitly to
the components that need it.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from aws_lambda_powertools import Logger

from shared.common import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_INTERVAL_MINUTES,
    MAX_TRANSACTION_ITEMS,
    SERVICE_NAME,
)

logger = Logger(service=SERVICE_NAME, child=True)

DEFAULT_READINGS_TABLE = "reading-ingester-readings"
DEFAULT_UPLOAD_BUCKET = "reading-ingester-uploads"
DEFAULT_REGION = "ap-southeast-2"


@dataclass(frozen=True)
class IngestConfig:
    readings_table: str = DEFAULT_READINGS_TABLE
    upload_bucket: str = DEFAULT_UPLOAD_BUCKET
    region: str = DEFAULT_REGION
    batch_size: int = DEFAULT_BATCH_SIZE
    chunk_size: int = DEFAULT_CHUNK_SIZE
    fixed_interval_minutes: int = DEFAULT_INTERVAL_MINUTES

    def __post_init__(self) -> None:
        if not 1 <= self.batch_size <= MAX_TRANSACTION_ITEMS:
            raise ValueError(f"batch_size must be between 1 and {MAX_TRANSACTION_ITEMS}, got {self.batch_size}")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.fixed_interval_minutes <= 0:
            raise ValueError(f"fixed_interval_minutes must be positive, got {self.fixed_interval_minutes}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "IngestConfig":
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Validated IngestConfig

        Raises:
            ValueError: If a numeric variable is malformed or out of range
        """
        env = os.environ if environ is None else environ

        config = cls(
            readings_table=env.get("READINGS_TABLE", DEFAULT_READINGS_TABLE),
            upload_bucket=env.get("UPLOAD_BUCKET", DEFAULT_UPLOAD_BUCKET),
            region=env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION") or DEFAULT_REGION,
            batch_size=_int_from_env(env, "COMMIT_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            chunk_size=_int_from_env(env, "DECODE_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
            fixed_interval_minutes=_int_from_env(env, "FIXED_INTERVAL_MINUTES", DEFAULT_INTERVAL_MINUTES),
        )
        logger.debug(
            "Loaded configuration",
            extra={"readings_table": config.readings_table, "batch_size": config.batch_size},
        )
        return config


def _int_from_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
