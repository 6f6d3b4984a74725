"""Timestamp normalisation. Everything inside the engine compares epoch milliseconds."""

from datetime import datetime
from typing import Any

import pandas as pd


def to_ms(value: Any) -> int:
    """Convert an ISO string, datetime, pandas Timestamp or epoch-ms number to epoch ms.

    Naive datetimes and strings without an offset are taken as UTC.
    """
    if value is None:
        raise ValueError("timestamp is required")
    if isinstance(value, bool):
        raise ValueError(f"invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    ts = pd.Timestamp(value)
    if ts is pd.NaT:
        raise ValueError(f"invalid timestamp: {value!r}")
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.value // 1_000_000


def to_iso(ms: int) -> str:
    """Epoch ms to an ISO-8601 UTC string with millisecond precision."""
    return pd.Timestamp(ms, unit="ms", tz="UTC").isoformat(timespec="milliseconds")


def to_datetime(ms: int) -> datetime:
    return pd.Timestamp(ms, unit="ms", tz="UTC").to_pydatetime()
