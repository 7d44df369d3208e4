"""Unit tests for the streaming CSV decoder."""

import io
from pathlib import Path

import pytest

from shared.csv_stream import iter_csv_rows
from shared.errors import DecodeError


class TestIterCsvRows:
    """Tests for iter_csv_rows."""

    def test_rows_in_file_order(self) -> None:
        data = b"Timestamp,Reading\n01/01/24 00:00:00,100 kWh\n01/01/24 01:00:00,140 kWh\n"

        rows = list(iter_csv_rows(data))

        assert rows == [
            ["Timestamp", "Reading"],
            ["01/01/24 00:00:00", "100 kWh"],
            ["01/01/24 01:00:00", "140 kWh"],
        ]

    def test_blank_lines_skipped(self) -> None:
        data = b"a,1\n\n\r\nb,2\n"

        assert list(iter_csv_rows(data)) == [["a", "1"], ["b", "2"]]

    def test_crlf_line_endings(self) -> None:
        assert list(iter_csv_rows(b"a,1\r\nb,2\r\n")) == [["a", "1"], ["b", "2"]]

    def test_utf8_bom_dropped(self) -> None:
        data = b"\xef\xbb\xbfTimestamp,Reading\n"

        assert list(iter_csv_rows(data)) == [["Timestamp", "Reading"]]

    def test_quoted_field_spanning_lines(self) -> None:
        data = b'"multi\nline",1\nnext,2\n'

        assert list(iter_csv_rows(data)) == [["multi\nline", "1"], ["next", "2"]]

    def test_small_chunks_split_multibyte_characters(self) -> None:
        data = "café,1\nüber,2\n".encode()

        rows = list(iter_csv_rows(data, chunk_size=1))

        assert rows == [["café", "1"], ["über", "2"]]

    def test_empty_input_yields_nothing(self) -> None:
        assert list(iter_csv_rows(b"")) == []

    def test_accepts_bytearray_and_memoryview(self) -> None:
        data = b"a,1\n"

        assert list(iter_csv_rows(bytearray(data))) == [["a", "1"]]
        assert list(iter_csv_rows(memoryview(data))) == [["a", "1"]]

    def test_rows_decoded_lazily(self) -> None:
        data = b"a,1\nb,2\n" + b'c,"broken"x\n'

        rows = iter_csv_rows(data)

        assert next(rows) == ["a", "1"]
        assert next(rows) == ["b", "2"]
        with pytest.raises(DecodeError):
            next(rows)

    def test_binary_stream_left_open(self, fixed_interval_file: Path) -> None:
        with fixed_interval_file.open("rb") as f:
            rows = list(iter_csv_rows(f))

            assert not f.closed
            assert len(rows) == 4

    def test_bytesio_stream(self) -> None:
        stream = io.BytesIO(b"x,1\ny,2\n")

        assert list(iter_csv_rows(stream)) == [["x", "1"], ["y", "2"]]
        assert not stream.closed


class TestDecodeErrors:
    """Tests for malformed input."""

    def test_malformed_quoting_raises_decode_error(self) -> None:
        data = b'a,1\nb,"2"junk\n'

        with pytest.raises(DecodeError) as exc_info:
            list(iter_csv_rows(data))

        assert exc_info.value.kind == "bad_file"
        assert exc_info.value.row == 2

    def test_invalid_utf8_raises_decode_error(self) -> None:
        data = b"a,1\n\xff\xfe\xfa,2\n"

        with pytest.raises(DecodeError, match="not valid"):
            list(iter_csv_rows(data))

    def test_decode_error_chains_original(self) -> None:
        with pytest.raises(DecodeError) as exc_info:
            list(iter_csv_rows(b'"unterminated,1\n'))

        assert exc_info.value.__cause__ is not None


class RecordingStream(io.BytesIO):
    """Binary stream that records how many bytes each read asked for."""

    def __init__(self, data: bytes) -> None:
        super().__init__(data)
        self.requested: list[int] = []

    def read1(self, size: int = -1) -> bytes:
        self.requested.append(size)
        return super().read1(size)

    def read(self, size: int | None = -1) -> bytes:
        self.requested.append(-1 if size is None else size)
        return super().read(size)


class TestChunkedReads:
    """Tests that the source is read in bounded chunks."""

    def test_reads_bounded_by_chunk_size(self) -> None:
        stream = RecordingStream(b"".join(b"%d,01/15/2024 08:00\n" % i for i in range(50)))

        rows = list(iter_csv_rows(stream, chunk_size=64))

        assert len(rows) == 50
        assert len(stream.requested) > 1
        assert all(0 < size <= 64 for size in stream.requested)
