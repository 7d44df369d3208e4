"""
Streaming CSV decoder for uploaded reading files.

Decodes an uploaded byte buffer into rows incrementally. The buffer is
wrapped rather than copied and text is decoded a chunk at a time, so a
large upload is never held in memory twice.
"""

import csv
import io
from collections.abc import Generator
from contextlib import contextmanager
from typing import BinaryIO, TextIO

from aws_lambda_powertools import Logger

from shared.common import DEFAULT_CHUNK_SIZE, SERVICE_NAME
from shared.errors import DecodeError

logger = Logger(service=SERVICE_NAME, child=True)

ByteSource = bytes | bytearray | memoryview | BinaryIO


def iter_csv_rows(
    source: ByteSource,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    encoding: str = "utf-8-sig",
) -> Generator[list[str]]:
    """
    Lazily yield CSV rows from a byte buffer or binary stream.

    Rows come out in file order. Blank lines are skipped. The generator is
    not restartable once consumed.

    Args:
        source: Uploaded file content, or a readable binary stream
        chunk_size: Number of bytes decoded per read
        encoding: Text encoding; the default drops a UTF-8 byte-order mark

    Yields:
        Each non-empty row as a list of string fields

    Raises:
        DecodeError: If the bytes cannot be decoded or the CSV is malformed
    """
    with _open_text_stream(source, chunk_size, encoding) as text:
        reader = csv.reader(text, strict=True)
        row_count = 0
        try:
            for row in reader:
                if not row:
                    continue
                row_count += 1
                yield row
        except csv.Error as e:
            raise DecodeError(f"Malformed CSV: {e}", row=reader.line_num) from e
        except UnicodeDecodeError as e:
            raise DecodeError(f"File is not valid {encoding} text: {e.reason}", row=reader.line_num + 1) from e

        logger.debug("Decoded CSV stream", extra={"rows": row_count, "lines": reader.line_num})


@contextmanager
def _open_text_stream(source: ByteSource, chunk_size: int, encoding: str) -> Generator[TextIO]:
    """
    Wrap a byte source in a text stream without taking ownership of it.

    newline="" hands line endings to the csv module so quoted fields may
    span lines.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        binary: BinaryIO = io.BytesIO(source)
    else:
        binary = source

    text = io.TextIOWrapper(binary, encoding=encoding, newline="")
    # CPython detail: TextIOWrapper reads _CHUNK_SIZE bytes per decode step
    text._CHUNK_SIZE = chunk_size
    try:
        yield text
    finally:
        text.detach()
