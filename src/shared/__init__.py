"""
Shared ingestion pipeline for the reading ingester.

This package turns uploaded meter CSV files into interval readings and
commits them to DynamoDB without duplication.
"""

from shared.common import PARSE_ERR_DIR, PROCESSED_DIR, UPLOAD_DIR
from shared.config import IngestConfig
from shared.errors import DecodeError, IngestError, ParseError, StorageError
from shared.models import FixedIntervalPolicy, PairPolicy, Reading, build_policy
from shared.pipeline import IngestOutcome, ingest
from shared.store import ReadingStore

__all__ = [
    "PARSE_ERR_DIR",
    "PROCESSED_DIR",
    "UPLOAD_DIR",
    "DecodeError",
    "FixedIntervalPolicy",
    "IngestConfig",
    "IngestError",
    "IngestOutcome",
    "PairPolicy",
    "ParseError",
    "Reading",
    "ReadingStore",
    "StorageError",
    "build_policy",
    "ingest",
]
