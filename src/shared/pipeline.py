"""
Ingestion orchestrator.

Single entry point for loading an uploaded CSV into storage:

    bytes -> iter_csv_rows -> transform_rows -> commit_readings -> DynamoDB

Buffers and seekable streams are decoded and transformed once without
writing before the commit pass, so only storage errors can trigger a
rollback. The commit pass runs inside one transaction scope and the call
reports one outcome.
"""

from dataclasses import dataclass

from aws_lambda_powertools import Logger

from shared.committer import commit_readings
from shared.common import DEFAULT_CHUNK_SIZE, SERVICE_NAME
from shared.config import IngestConfig
from shared.csv_stream import ByteSource, iter_csv_rows
from shared.errors import IngestError
from shared.models import IngestPolicy
from shared.store import ReadingStore
from shared.transformer import transform_rows

logger = Logger(service=SERVICE_NAME, child=True)


@dataclass(frozen=True)
class IngestOutcome:
    """Result of one ingestion call.

    committed_count counts every reading storage accepted, including
    duplicates that were ignored; inserted_count only the new ones.
    """

    success: bool
    committed_count: int = 0
    inserted_count: int = 0
    error: IngestError | None = None

    @property
    def error_kind(self) -> str | None:
        return self.error.kind if self.error else None


def ingest(
    source: ByteSource,
    policy: IngestPolicy,
    meter_id: int,
    store: ReadingStore | None = None,
    config: IngestConfig | None = None,
) -> IngestOutcome:
    """
    Decode, transform and commit one uploaded file.

    Args:
        source: File content, or a readable binary stream
        policy: PairPolicy or FixedIntervalPolicy
        meter_id: Meter owning every reading in the file
        store: Reading storage (built from config when omitted)
        config: Batch and chunk sizes (loaded from the environment when omitted)

    Returns:
        IngestOutcome; on failure nothing from this call remains in storage
    """
    config = config or IngestConfig.from_env()
    store = store or ReadingStore.from_config(config)

    logger.info(
        "Ingestion started",
        extra={"meter_id": meter_id, "policy": repr(policy), "table": store.table_name},
    )

    try:
        # Rewindable sources are read in full first; decode and row errors never write
        if _can_rewind(source):
            validate(source, policy, meter_id, chunk_size=config.chunk_size)

        with store.transaction() as tx:
            rows = iter_csv_rows(source, chunk_size=config.chunk_size)
            readings = transform_rows(rows, policy, meter_id)
            stats = commit_readings(readings, tx, batch_size=config.batch_size)
    except IngestError as e:
        logger.error(
            "Ingestion failed",
            extra={"meter_id": meter_id, "error_kind": e.kind, "row": e.row, "error": str(e)},
        )
        return IngestOutcome(success=False, error=e)

    logger.info(
        "Ingestion finished",
        extra={"meter_id": meter_id, "committed": stats.submitted, "inserted": stats.inserted},
    )
    return IngestOutcome(success=True, committed_count=stats.submitted, inserted_count=stats.inserted)


def validate(source: ByteSource, policy: IngestPolicy, meter_id: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """
    Decode and transform the whole source without writing anything.

    A stream source is rewound to where it started afterwards.

    Returns:
        Number of readings the source would produce

    Raises:
        DecodeError: If the source is not readable CSV
        ParseError: If any row cannot be interpreted
    """
    start = None if isinstance(source, (bytes, bytearray, memoryview)) else source.tell()
    try:
        count = sum(1 for _ in transform_rows(iter_csv_rows(source, chunk_size=chunk_size), policy, meter_id))
    finally:
        if start is not None:
            source.seek(start)

    logger.debug("Validated upload", extra={"meter_id": meter_id, "readings": count})
    return count


def _can_rewind(source: ByteSource) -> bool:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return True
    seekable = getattr(source, "seekable", None)
    return callable(seekable) and seekable()
