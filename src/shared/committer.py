"""Batch committer: pulls readings lazily and writes them in bounded batches."""

from collections.abc import Iterable
from dataclasses import dataclass
from itertools import islice
from typing import Protocol

from aws_lambda_powertools import Logger

from shared.common import DEFAULT_BATCH_SIZE, SERVICE_NAME
from shared.models import Reading

logger = Logger(service=SERVICE_NAME, child=True)


class BatchWriter(Protocol):
    def insert_or_ignore(self, readings: Iterable[Reading]) -> int: ...


@dataclass(frozen=True)
class CommitStats:
    submitted: int = 0
    inserted: int = 0

    @property
    def ignored(self) -> int:
        return self.submitted - self.inserted


def commit_readings(
    readings: Iterable[Reading],
    tx: BatchWriter,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> CommitStats:
    """
    Write readings to storage in batches of ``batch_size``.

    Readings are pulled from the iterable only as each batch fills, so the
    producer never runs ahead of storage by more than one batch.

    Args:
        readings: Lazy sequence of readings
        tx: Transaction handle providing insert_or_ignore
        batch_size: Maximum readings per write

    Returns:
        CommitStats with submitted and newly inserted counts
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    iterator = iter(readings)
    submitted = 0
    inserted = 0
    batches = 0

    while batch := list(islice(iterator, batch_size)):
        inserted += tx.insert_or_ignore(batch)
        submitted += len(batch)
        batches += 1

    logger.info(
        "Committed readings",
        extra={"batches": batches, "submitted": submitted, "inserted": inserted, "ignored": submitted - inserted},
    )
    return CommitStats(submitted=submitted, inserted=inserted)
