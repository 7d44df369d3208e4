#!/usr/bin/env python3
"""
Local reading file ingester.

Loads a meter CSV export into the readings table from a workstation.
Use this for backfills or files that never went through the upload bucket.

Usage:
    uv run scripts/ingest_readings_locally.py <csv_file> --meter-id <id> [options]

Example:
    uv run scripts/ingest_readings_locally.py export.csv --meter-id 42 --dry-run
    uv run scripts/ingest_readings_locally.py history.csv --meter-id 42 --mode pair --cumulative --reverse
"""

import argparse
import sys
from pathlib import Path

import boto3
import pandas as pd

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shared import IngestConfig, IngestOutcome, ReadingStore, build_policy, ingest
from shared.csv_stream import iter_csv_rows
from shared.errors import IngestError
from shared.models import IngestPolicy
from shared.transformer import transform_rows


def preview_readings(file_path: str, policy: IngestPolicy, meter_id: int) -> pd.DataFrame:
    """Transform a file without touching storage."""
    with Path(file_path).open("rb") as f:
        readings = transform_rows(iter_csv_rows(f), policy, meter_id)
        df = pd.DataFrame(
            [(r.start_time, r.end_time, r.value) for r in readings],
            columns=["start_time", "end_time", "value"],
        )
    df["meter_id"] = meter_id
    return df[["meter_id", "start_time", "end_time", "value"]]


def summarize(df: pd.DataFrame) -> dict:
    """Headline numbers for a preview."""
    if df.empty:
        return {"readings": 0, "first_start": None, "last_end": None, "total_value": 0}
    return {
        "readings": len(df),
        "first_start": df["start_time"].min(),
        "last_end": df["end_time"].max(),
        "total_value": df["value"].sum(),
    }


def ingest_file(
    file_path: str,
    policy: IngestPolicy,
    meter_id: int,
    store: ReadingStore,
    config: IngestConfig,
) -> IngestOutcome:
    with Path(file_path).open("rb") as f:
        return ingest(f, policy, meter_id, store=store, config=config)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Ingest a meter reading CSV into the readings table")
    parser.add_argument("file", help="Path to CSV file")
    parser.add_argument("--meter-id", type=int, required=True, help="Meter owning the readings")
    parser.add_argument("--mode", choices=["pair", "fixed"], default="fixed", help="Row interpretation mode")
    parser.add_argument("--cumulative", action="store_true", help="Pair mode: rows hold running totals")
    parser.add_argument("--reverse", action="store_true", help="Pair mode: rows are newest first")
    parser.add_argument("--interval-minutes", type=int, default=None, help="Fixed mode: interval length")
    parser.add_argument("--dry-run", action="store_true", help="Preview without writing")
    parser.add_argument("--profile", default=None, help="AWS profile for the boto3 session")
    args = parser.parse_args(argv)

    file_path = Path(args.file)
    if not file_path.exists():
        print(f"Error: File not found: {file_path}")
        return 1

    if args.meter_id <= 0:
        print(f"Error: Meter id must be positive: {args.meter_id}")
        return 1

    config = IngestConfig.from_env()
    try:
        policy = build_policy(
            mode=args.mode,
            cumulative=args.cumulative,
            reverse=args.reverse,
            interval_minutes=args.interval_minutes or config.fixed_interval_minutes,
        )
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    print("=" * 60)
    print("Local Reading Ingester")
    print(f"File:     {file_path}")
    print(f"Meter:    {args.meter_id}")
    print(f"Policy:   {policy}")
    print(f"Dry run:  {args.dry_run}")
    print("=" * 60)

    if args.dry_run:
        try:
            df = preview_readings(str(file_path), policy, args.meter_id)
        except IngestError as e:
            print(f"Error: {e.kind}: {e}")
            return 1

        summary = summarize(df)
        print(df.head(10).to_string(index=False))
        print(f"\nReadings:     {summary['readings']:,}")
        print(f"First start:  {summary['first_start']}")
        print(f"Last end:     {summary['last_end']}")
        print(f"Total value:  {summary['total_value']}")
        return 0

    session = boto3.Session(profile_name=args.profile)
    store = ReadingStore.from_config(config, session=session)

    outcome = ingest_file(str(file_path), policy, args.meter_id, store, config)
    if not outcome.success:
        print(f"Error: {outcome.error_kind}: {outcome.error}")
        return 1

    print(f"Committed readings:  {outcome.committed_count:,}")
    print(f"New readings:        {outcome.inserted_count:,}")
    print(f"Duplicates ignored:  {outcome.committed_count - outcome.inserted_count:,}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
