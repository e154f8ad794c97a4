from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple, Union

from calendar_domain import CalendarDomain
from date_utils import fmt_date
from gantt_models import Milestone
from status_utils import ColorKey, color_key
from tree_flattener import Row


@dataclass(frozen=True)
class OverdueSegment:
    column_start: int
    column_span: int
    since: date

    @property
    def label(self) -> str:
        return f"Overdue since {fmt_date(self.since)}"


@dataclass(frozen=True)
class BarPlacement:
    row_index: int
    row_id: str
    column_start: int
    column_span: int
    start: date
    end: date
    color_key: ColorKey
    overdue: Optional[OverdueSegment] = None

    @property
    def column_end(self) -> int:
        return self.column_start + self.column_span - 1


@dataclass(frozen=True)
class MilestonePlacement:
    row_index: int
    row_id: str
    column: int
    at: date
    color_key: ColorKey
    is_roadblock: bool = False


Placement = Union[BarPlacement, MilestonePlacement]


def column_span_inclusive(domain: CalendarDomain, start: date, end: date) -> Tuple[int, int]:
    """
    Inclusive end-date semantics, clipped to the grid:
      - a same-day item spans one column
      - both bounds are clamped into [0, day_count - 1]
    Returns (column_start, column_span) with span >= 1.
    """
    s_col = domain.clamp_column(domain.column_of(start))
    e_col = domain.clamp_column(domain.column_of(end))
    return s_col, max(1, e_col - s_col + 1)


def place_bar(row_index: int, row: Row, domain: CalendarDomain, today: date) -> Optional[BarPlacement]:
    """Project/task bar, or None when neither bound nor createdAt resolves."""
    item = row.item
    start, end = item.interval()
    if start is None or end is None:
        return None

    s_col, span = column_span_inclusive(domain, start, end)
    e_col = domain.clamp_column(domain.column_of(end))

    overdue = None
    if item.status != "finished" and end < today:
        today_col = domain.today_index
        overdue = OverdueSegment(column_start=e_col, column_span=max(1, today_col - e_col), since=end)

    return BarPlacement(
        row_index=row_index,
        row_id=row.id,
        column_start=s_col,
        column_span=span,
        start=start,
        end=end,
        color_key=color_key(item.status, has_actual_end=item.actual_end_at is not None),
        overdue=overdue,
    )


def place_milestone(row_index: int, row: Row, domain: CalendarDomain) -> Optional[MilestonePlacement]:
    """Milestones are point events: one clipped column, no span, never overdue."""
    m: Milestone = row.item  # type: ignore[assignment]
    at = m.occurrence_date()
    if at is None:
        return None
    return MilestonePlacement(
        row_index=row_index,
        row_id=row.id,
        column=domain.clamp_column(domain.column_of(at)),
        at=at,
        color_key=color_key(m.status, has_actual_end=m.actual_end_at is not None),
        is_roadblock=m.is_roadblock,
    )


def place_row(row_index: int, row: Row, domain: CalendarDomain, today: date) -> Optional[Placement]:
    if row.type == "milestone":
        return place_milestone(row_index, row, domain)
    return place_bar(row_index, row, domain, today)


def place_rows(rows: List[Row], domain: CalendarDomain, today: date) -> List[Optional[Placement]]:
    """One entry per row, aligned by index; None where the row has no drawable date."""
    return [place_row(i, r, domain, today) for i, r in enumerate(rows)]
