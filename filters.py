from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Iterable, List, Literal, Optional, Protocol

from gantt_models import Project, TimelineFilter

logger = logging.getLogger(__name__)

DetailKind = Literal["project", "task", "milestone"]
FilterListener = Callable[[TimelineFilter], None]


class FilterSource(Protocol):
    def get_filters(self) -> TimelineFilter: ...


class DetailOpener(Protocol):
    def open(self, kind: DetailKind, item_id: str) -> None: ...


class NullFilterSource:
    """Used when the view is not embedded in a dashboard with shared filters."""

    def get_filters(self) -> TimelineFilter:
        return TimelineFilter()


class NullDetailOpener:
    def open(self, kind: DetailKind, item_id: str) -> None:
        logger.debug("No detail opener configured; ignoring %s %s", kind, item_id)


class FilterChannel:
    """
    Explicit publish/subscribe channel for dashboard filter changes.

    Also acts as a FilterSource: ``get_filters()`` returns the last published
    snapshot (an empty filter before the first publish).
    """

    def __init__(self, initial: Optional[TimelineFilter] = None) -> None:
        self._current = initial or TimelineFilter()
        self._listeners: List[FilterListener] = []

    def get_filters(self) -> TimelineFilter:
        return self._current

    def subscribe(self, listener: FilterListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, flt: TimelineFilter) -> None:
        self._current = flt
        for listener in list(self._listeners):
            try:
                listener(flt)
            except Exception:
                logger.exception("Filter listener %r failed", listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


# ---------------------------------------------------------------------------
# Project-level filtering
# ---------------------------------------------------------------------------


def is_project_overdue(p: Project, today: date) -> bool:
    return p.end_at is not None and p.status != "finished" and p.end_at < today


def within_rag(p: Project, rag: str, today: date) -> bool:
    """
    red = overdue or blocked; amber = paused; green = active and on time.
    An empty or unknown rag value keeps everything.
    """
    if not rag:
        return True
    if rag == "green":
        return p.status == "started" and not is_project_overdue(p, today)
    if rag == "amber":
        return p.status == "paused"
    if rag == "red":
        return is_project_overdue(p, today) or p.status == "paused-problem"
    return True


def overlaps_range(
    start: Optional[date],
    end: Optional[date],
    from_date: Optional[date],
    to_date: Optional[date],
    today: date,
) -> bool:
    """
    Interval overlap with open-ended bounds. A missing start reaches back
    forever; a missing end falls back to the start, then to today.
    """
    if from_date is None and to_date is None:
        return True
    left = start or date.min
    right = end or start or today
    if to_date is not None and left > to_date:
        return False
    if from_date is not None and right < from_date:
        return False
    return True


def filter_projects(projects: Iterable[Project], flt: TimelineFilter, today: date) -> List[Project]:
    """Keep upstream order; drop projects excluded by any active criterion."""
    wanted = set(flt.project_ids)
    if flt.focused_project_id:
        wanted = {flt.focused_project_id}
    wanted_groups = set(flt.group_ids)
    dr = flt.date_range

    out: List[Project] = []
    for p in projects:
        if wanted and p.id not in wanted:
            continue
        if wanted_groups and not wanted_groups.intersection(p.group_ids):
            continue
        if not within_rag(p, flt.rag, today):
            continue
        if not overlaps_range(p.start_at, p.end_at, dr.from_date, dr.to_date, today):
            continue
        out.append(p)
    return out
