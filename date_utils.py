from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

# Candidate field lists, highest priority first. Planned dates outrank the
# generic fallbacks, so the order here is part of the behavior.
PROJECT_START_FIELDS = ("startDate", "start", "startAt")
PROJECT_END_FIELDS = ("endDate", "end", "endAt", "due", "deadlineAt")

TASK_START_FIELDS = ("startAt", "startDate", "scheduledAt", "scheduledStart")
TASK_DUE_FIELDS = ("dueAt", "endAt", "endDate", "dueDate", "finishAt", "targetDate")

MILESTONE_START_FIELDS = ("startPlanned", "startAt", "startDate", "scheduledAt", "beginAt", "start")
MILESTONE_DUE_FIELDS = (
    "endPlanned",
    "dueAt",
    "dueDate",
    "endAt",
    "endDate",
    "targetAt",
    "targetDate",
    "date",
)
ACTUAL_END_FIELDS = ("endActual", "actualEndAt", "completedAt")
CREATED_FIELDS = ("createdAt",)


def resolve_tz(name: Optional[str]) -> Optional[tzinfo]:
    """Return a ZoneInfo for ``name``, or None for the system local zone."""
    name = (name or "").strip()
    if not name:
        return None
    return ZoneInfo(name)


def today_local(tz: Optional[tzinfo] = None) -> date:
    return datetime.now(tz=tz).date() if tz is not None else date.today()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def resolve_field(record: Mapping[str, Any], candidates: Sequence[str]) -> Any:
    """
    Strict first-match lookup.

    Walks ``candidates`` in order and returns the first value that is present,
    not None and not an empty string. Later candidates are never consulted once
    an earlier one matches, even if the earlier value turns out unparseable.
    """
    for key in candidates:
        value = record.get(key)
        if not _is_blank(value):
            return value
    return None


def to_local_date(value: Any, tz: Optional[tzinfo] = None) -> Optional[date]:
    """
    Floor an instant to its local calendar day.

    Accepts date, datetime, ISO-8601 strings (a trailing "Z" is allowed) and
    epoch milliseconds. Aware datetimes are converted to ``tz`` (or the system
    zone) first; naive ones are taken as already local. Anything else -> None.
    """
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, (int, float)):
        try:
            dt = datetime.fromtimestamp(float(value) / 1000.0, tz=tz)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is not None:
        # Sentinels like 0001-01-01Z or 9999-12-31Z can shift past date.min/max.
        try:
            dt = dt.astimezone(tz) if tz is not None else dt.astimezone()
        except (OverflowError, ValueError):
            return None
    return dt.date()


def resolve_date(
    record: Mapping[str, Any],
    candidates: Sequence[str],
    tz: Optional[tzinfo] = None,
) -> Optional[date]:
    return to_local_date(resolve_field(record, candidates), tz)


def diff_days(a: date, b: date) -> int:
    """Whole days from ``a`` to ``b`` (negative when b is earlier)."""
    return (b - a).days


def add_days(d: date, n: int) -> date:
    return d + timedelta(days=n)


def start_of_month(d: date) -> date:
    return date(d.year, d.month, 1)


def end_of_month(d: date) -> date:
    if d.month == 12:
        return date(d.year, 12, 31)
    return date(d.year, d.month + 1, 1) - timedelta(days=1)


def fmt_date(d: Optional[date]) -> str:
    return d.strftime("%d %b %Y") if d else "—"
