"""Error kinds raised by the ingestion pipeline.

Every kind aborts the whole ingestion call. ``kind`` is the coarse
classification reported back to the caller.
"""


class IngestError(Exception):
    kind = "ingest"

    def __init__(self, message: str, row: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.row = row

    def __str__(self) -> str:
        if self.row is None:
            return self.message
        return f"row {self.row}: {self.message}"


class DecodeError(IngestError):
    """The byte stream is not readable CSV."""

    kind = "bad_file"


class ParseError(IngestError):
    """A row's timestamp or value cannot be interpreted under the active policy."""

    kind = "bad_row"


class StorageError(IngestError):
    """A batch could not be written to (or rolled back from) storage."""

    kind = "storage"
