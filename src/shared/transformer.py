"""
Row transformer: reinterprets raw CSV rows as Reading records.

Two modes, selected by the policy type:

- Pair mode (PairPolicy): each reading spans two adjacent rows. The first
  two rows (header and context row) never produce a reading.
- Fixed-interval mode (FixedIntervalPolicy): each row ends an interval of
  constant length and produces one reading.

Any row that cannot be interpreted raises ParseError; nothing is skipped.
"""

import math
import re
from collections.abc import Generator, Iterable
from datetime import datetime, timedelta

from shared.common import FIXED_INTERVAL_TIMESTAMP_FORMAT, PAIR_TIMESTAMP_FORMAT
from shared.errors import ParseError
from shared.models import FixedIntervalPolicy, IngestPolicy, PairPolicy, Reading

# Trailing unit separated by whitespace, e.g. "123 kWh" or "4.5 m3"
UNIT_SUFFIX = re.compile(r"\s+[A-Za-z%][\w/%]*$")

PAIR_HEADER_ROWS = 2


def transform_rows(rows: Iterable[list[str]], policy: IngestPolicy, meter_id: int) -> Generator[Reading]:
    """Dispatch to the transformer for the policy's mode."""
    if isinstance(policy, PairPolicy):
        return transform_pair_rows(rows, policy, meter_id)
    if isinstance(policy, FixedIntervalPolicy):
        return transform_fixed_interval_rows(rows, policy, meter_id)
    raise TypeError(f"Unsupported policy: {policy!r}")


def transform_pair_rows(rows: Iterable[list[str]], policy: PairPolicy, meter_id: int) -> Generator[Reading]:
    """
    Combine each row from index 2 onward with the row before it.

    Only the previous row is kept, so memory stays constant regardless of
    file length.

    Args:
        rows: Decoded CSV rows, timestamp in field 0 and value in field 1
        policy: Cumulative and reverse flags
        meter_id: Owning meter for every reading

    Yields:
        One Reading per row at index >= 2
    """
    previous: list[str] | None = None

    for index, row in enumerate(rows):
        if index >= PAIR_HEADER_ROWS:
            yield _reading_from_pair(previous, row, index + 1, policy, meter_id)
        previous = row


def transform_fixed_interval_rows(
    rows: Iterable[list[str]],
    policy: FixedIntervalPolicy,
    meter_id: int,
) -> Generator[Reading]:
    """
    Turn every row into a reading ending at the row's timestamp.

    Args:
        rows: Decoded CSV rows
        policy: Interval length and column layout
        meter_id: Owning meter for every reading

    Yields:
        One Reading per row, including the first
    """
    interval = timedelta(minutes=policy.interval_minutes)

    for row_num, row in enumerate(rows, start=1):
        end_time = parse_timestamp(
            _field(row, policy.timestamp_column, row_num),
            FIXED_INTERVAL_TIMESTAMP_FORMAT,
            row_num,
        )
        value = parse_number(_field(row, policy.value_column, row_num), row_num)
        yield _build_reading(meter_id, value, end_time - interval, end_time, row_num)


def _reading_from_pair(
    previous: list[str],
    current: list[str],
    row_num: int,
    policy: PairPolicy,
    meter_id: int,
) -> Reading:
    if policy.reverse:
        earlier, later = current, previous
    else:
        earlier, later = previous, current

    start_time = parse_timestamp(_field(earlier, 0, row_num), PAIR_TIMESTAMP_FORMAT, row_num)
    end_time = parse_timestamp(_field(later, 0, row_num), PAIR_TIMESTAMP_FORMAT, row_num)

    if policy.cumulative:
        # Later total minus earlier total, whichever way the rows are listed
        earlier_total = round_half_up(parse_number(strip_unit(_field(earlier, 1, row_num)), row_num))
        later_total = round_half_up(parse_number(strip_unit(_field(later, 1, row_num)), row_num))
        value = later_total - earlier_total
    else:
        value = round_half_up(parse_number(strip_unit(_field(current, 1, row_num)), row_num))

    return _build_reading(meter_id, value, start_time, end_time, row_num)


def _build_reading(meter_id: int, value: int | float, start_time: datetime, end_time: datetime, row_num: int) -> Reading:
    try:
        return Reading(meter_id=meter_id, value=value, start_time=start_time, end_time=end_time)
    except ValueError as e:
        raise ParseError(str(e), row=row_num) from e


def _field(row: list[str], column: int, row_num: int) -> str:
    try:
        return row[column]
    except IndexError:
        raise ParseError(f"Expected at least {column + 1} fields, got {len(row)}", row=row_num) from None


def parse_timestamp(raw: str, fmt: str, row_num: int | None = None) -> datetime:
    """Parse a timestamp field strictly against ``fmt``."""
    try:
        return datetime.strptime(raw.strip(), fmt)
    except ValueError as e:
        raise ParseError(f"Invalid timestamp {raw!r} (expected {fmt})", row=row_num) from e


def parse_number(raw: str, row_num: int | None = None) -> int | float:
    """Parse a finite number; integral text stays an int."""
    text = raw.strip()
    if "_" in text:
        raise ParseError(f"Invalid numeric value {raw!r}", row=row_num)

    try:
        return int(text)
    except ValueError:
        pass

    try:
        value = float(text)
    except ValueError as e:
        raise ParseError(f"Invalid numeric value {raw!r}", row=row_num) from e

    if not math.isfinite(value):
        raise ParseError(f"Invalid numeric value {raw!r}", row=row_num)
    return value


def strip_unit(raw: str) -> str:
    """Remove a trailing unit such as " kWh" from a value field."""
    return UNIT_SUFFIX.sub("", raw.strip())


def round_half_up(value: int | float) -> int:
    """Round to the nearest integer, halves toward positive infinity."""
    return math.floor(value + 0.5)
