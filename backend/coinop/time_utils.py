from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Optional

# Reporting buckets for collection summaries, finest first.
PERIODS = ("day", "week", "month", "year")


def utcnow() -> datetime:
    """Server clock in UTC, stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _is_date_only(s: str) -> bool:
    return len(s) == 10 and s[4] == "-" and s[7] == "-"


def parse_iso_datetime(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into a UTC-naive datetime.

    Blank input gives None. Offsets and a trailing Z are converted to UTC;
    naive values are already UTC. A bare date is midnight of that day, or its
    last microsecond with end_of_day=True so that an inclusive `end` filter
    covers the whole day.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if _is_date_only(s):
        day = datetime.fromisoformat(s).date()
        return datetime.combine(day, time.max if end_of_day else time.min)

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def period_key(dt: datetime, period: str) -> str:
    """
    Bucket label for `dt`: 2026-03-09, 2026-W11 (ISO week), 2026-03 or 2026.

    Raises ValueError for an unknown period.
    """
    if period == "day":
        return dt.strftime("%Y-%m-%d")
    if period == "week":
        iso_year, iso_week, _ = dt.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period == "month":
        return dt.strftime("%Y-%m")
    if period == "year":
        return dt.strftime("%Y")
    raise ValueError(f"Invalid period: {period} (expected one of {', '.join(PERIODS)})")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing 'Z', to the second. Naive input counts as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
