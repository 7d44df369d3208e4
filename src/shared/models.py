"""Reading records and the row interpretation policies that produce them."""

from dataclasses import dataclass
from datetime import datetime

from shared.common import DEFAULT_INTERVAL_MINUTES

TRUTHY_FLAGS = frozenset({"true", "1", "yes", "y", "on", "t"})
FALSY_FLAGS = frozenset({"false", "0", "no", "n", "off", "f", ""})

PAIR_MODE = "pair"
FIXED_INTERVAL_MODE = "fixed"


@dataclass(frozen=True)
class Reading:
    """One interval-bounded meter measurement."""

    meter_id: int
    value: int | float
    start_time: datetime
    end_time: datetime

    def __post_init__(self) -> None:
        if self.start_time >= self.end_time:
            raise ValueError(f"start_time {self.start_time} must be before end_time {self.end_time}")

    @property
    def key(self) -> tuple[int, datetime, datetime]:
        return (self.meter_id, self.start_time, self.end_time)


@dataclass(frozen=True)
class PairPolicy:
    """Derive each reading from two adjacent rows.

    Attributes:
        cumulative: Rows hold running totals; the reading is the difference
            between two consecutive totals.
        reverse: Rows are listed newest first.
    """

    cumulative: bool = False
    reverse: bool = False


@dataclass(frozen=True)
class FixedIntervalPolicy:
    """Derive each reading from a single row ending a fixed-length interval."""

    interval_minutes: int = DEFAULT_INTERVAL_MINUTES
    value_column: int = 0
    timestamp_column: int = 1

    def __post_init__(self) -> None:
        if self.interval_minutes <= 0:
            raise ValueError(f"interval_minutes must be positive, got {self.interval_minutes}")


IngestPolicy = PairPolicy | FixedIntervalPolicy


def parse_flag(value: bool | str | None, default: bool = False) -> bool:
    """Interpret a boolean or a truthy/falsy string such as ``"true"`` or ``"0"``."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value

    normalized = str(value).strip().lower()
    if normalized in TRUTHY_FLAGS:
        return True
    if normalized in FALSY_FLAGS:
        return False
    raise ValueError(f"Not a boolean flag: {value!r}")


def build_policy(
    mode: str | None = None,
    cumulative: bool | str | None = None,
    reverse: bool | str | None = None,
    interval_minutes: int | None = None,
) -> IngestPolicy:
    """
    Build the interpretation policy once at the boundary from raw flags.

    Args:
        mode: "pair" or "fixed" (default "fixed")
        cumulative: Pair mode only; rows hold running totals
        reverse: Pair mode only; rows are newest first
        interval_minutes: Fixed mode only; interval length ending at each row

    Returns:
        PairPolicy or FixedIntervalPolicy
    """
    mode = (mode or FIXED_INTERVAL_MODE).strip().lower()

    if mode == PAIR_MODE:
        return PairPolicy(cumulative=parse_flag(cumulative), reverse=parse_flag(reverse))

    if mode == FIXED_INTERVAL_MODE:
        if interval_minutes is None:
            return FixedIntervalPolicy()
        return FixedIntervalPolicy(interval_minutes=int(interval_minutes))

    raise ValueError(f"Unknown ingestion mode: {mode!r}")
