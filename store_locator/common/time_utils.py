"""UTC-focused helpers for log and cache timestamps."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")


def utc_epoch_seconds() -> float:
    return datetime.now(tz=timezone.utc).timestamp()
