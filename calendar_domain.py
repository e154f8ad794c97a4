from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import List, Optional, Tuple

from date_utils import add_days, diff_days, end_of_month, start_of_month
from gantt_models import DateRange, GanttSettings


@dataclass(frozen=True)
class CalendarDay:
    date: date
    day_of_month: int
    weekday_label: str
    is_weekend: bool


@dataclass(frozen=True)
class MonthSpan:
    label: str
    start_column: int
    column_count: int


@dataclass(frozen=True)
class CalendarDomain:
    start: date
    end: date
    days: Tuple[CalendarDay, ...]
    months: Tuple[MonthSpan, ...]
    today_index: int

    @property
    def day_count(self) -> int:
        return len(self.days)

    def column_of(self, d: date) -> int:
        """Unclamped column offset of ``d`` from the domain start."""
        return diff_days(self.start, d)

    def clamp_column(self, col: int) -> int:
        return max(0, min(self.day_count - 1, col))


def resolve_window(
    date_range: Optional[DateRange],
    today: date,
    *,
    past_days: int = 30,
    future_days: int = 60,
    month_padding_days: int = 15,
) -> Tuple[date, date]:
    """
    Decide the [start, end] window to render.

    Rules:
      - explicit range: each missing side falls back independently to
        today - past_days / today + future_days
      - no range: current month padded by month_padding_days on each side
      - end < start collapses to a single day at start
    """
    if date_range is not None and not date_range.is_empty():
        start = date_range.from_date or add_days(today, -past_days)
        end = date_range.to_date or add_days(today, future_days)
    else:
        start = add_days(start_of_month(today), -month_padding_days)
        end = add_days(end_of_month(today), month_padding_days)

    if end < start:
        end = start
    return start, end


def _build_days(start: date, count: int) -> Tuple[CalendarDay, ...]:
    out: List[CalendarDay] = []
    for i in range(count):
        d = add_days(start, i)
        out.append(
            CalendarDay(
                date=d,
                day_of_month=d.day,
                weekday_label=d.strftime("%a"),
                is_weekend=d.weekday() >= 5,
            )
        )
    return tuple(out)


def _build_month_spans(days: Tuple[CalendarDay, ...]) -> Tuple[MonthSpan, ...]:
    """Group consecutive days sharing (month, year) into contiguous column spans."""
    out: List[MonthSpan] = []
    i = 0
    while i < len(days):
        first = days[i].date
        span = 0
        while i + span < len(days):
            d = days[i + span].date
            if d.month != first.month or d.year != first.year:
                break
            span += 1
        out.append(MonthSpan(label=first.strftime("%B %Y"), start_column=i, column_count=span))
        i += span
    return tuple(out)


@lru_cache(maxsize=64)
def _cached_domain(
    from_date: Optional[date],
    to_date: Optional[date],
    today: date,
    past_days: int,
    future_days: int,
    month_padding_days: int,
) -> CalendarDomain:
    start, end = resolve_window(
        DateRange(from_date=from_date, to_date=to_date),
        today,
        past_days=past_days,
        future_days=future_days,
        month_padding_days=month_padding_days,
    )
    count = diff_days(start, end) + 1
    days = _build_days(start, count)
    today_index = max(0, min(count - 1, diff_days(start, today)))
    return CalendarDomain(
        start=start,
        end=end,
        days=days,
        months=_build_month_spans(days),
        today_index=today_index,
    )


def build_calendar_domain(
    date_range: Optional[DateRange],
    today: date,
    settings: Optional[GanttSettings] = None,
) -> CalendarDomain:
    """
    Build the day grid for the active filter.

    Depends only on the filter range, ``today`` and the window settings, never
    on the rows, so results are memoized on exactly those inputs.
    """
    settings = settings or GanttSettings()
    date_range = date_range or DateRange()
    return _cached_domain(
        date_range.from_date,
        date_range.to_date,
        today,
        settings.default_past_days,
        settings.default_future_days,
        settings.month_padding_days,
    )
