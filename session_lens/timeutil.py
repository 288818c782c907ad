"""Timestamp helpers and the gap-capped duration estimate."""

import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Union

from .config import MAX_GAP_MS

Timestamp = Union[str, int, float, datetime, None]


def parse_timestamp_ms(value: Timestamp) -> Optional[float]:
    """Convert an ISO string, datetime or epoch-milliseconds number to epoch ms.

    Returns None for empty, unparseable and non-positive values. Naive
    datetimes are taken as UTC.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    try:
        ms = value.timestamp() * 1000
    except (OverflowError, OSError, ValueError):
        return None
    return ms if ms > 0 else None


def ms_to_iso(ms: Optional[float]) -> str:
    """Render epoch ms as ``YYYY-MM-DDTHH:MM:SS.mmmZ``; empty string for missing values."""
    if not ms:
        return ""
    try:
        dt = datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return ""
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(ms) % 1000:03d}Z"


def normalize_iso(value: Timestamp) -> str:
    """Normalize any supported timestamp form to the canonical ISO string."""
    if isinstance(value, str) and parse_timestamp_ms(value) is not None:
        return value
    return ms_to_iso(parse_timestamp_ms(value))


def estimate_duration(timestamps_ms: Iterable[float], max_gap: float = MAX_GAP_MS) -> float:
    """Active time in ms: sum of consecutive gaps, each clamped to ``max_gap``.

    Long idle gaps (overnight, multi-day resumes) only count for ``max_gap``.
    """
    ordered = sorted(timestamps_ms)
    if len(ordered) < 2:
        return 0
    return sum(min(later - earlier, max_gap) for earlier, later in zip(ordered, ordered[1:]))


def timestamps_of(values: Iterable[Timestamp]) -> list[float]:
    """Parse each value, dropping the ones that are not valid timestamps."""
    result = []
    for value in values:
        ms = parse_timestamp_ms(value)
        if ms is not None:
            result.append(ms)
    return result


def now_ms() -> float:
    return time.time() * 1000


def file_age_ms(path: Path, now: Optional[float] = None) -> Optional[float]:
    """Milliseconds since ``path`` was last modified, or None if it cannot be stat'ed."""
    try:
        mtime_ms = path.stat().st_mtime * 1000
    except OSError:
        return None
    return (now if now is not None else now_ms()) - mtime_ms
