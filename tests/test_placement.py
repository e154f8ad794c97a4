from datetime import date

from bar_placement import BarPlacement, MilestonePlacement, place_row, place_rows
from calendar_domain import build_calendar_domain
from gantt_models import DateRange, normalize_milestone, normalize_project, normalize_task
from tree_flattener import Row

TODAY = date(2024, 1, 10)
DOMAIN = build_calendar_domain(DateRange(from_date=date(2023, 12, 17), to_date=date(2024, 1, 25)), TODAY)


def _project_row(**fields):
    p = normalize_project({"_id": "P", "name": "P", **fields})
    return Row(type="project", id=p.id, label=p.name, item=p)


def _task_row(**fields):
    t = normalize_task({"_id": "T", "title": "T", **fields})
    return Row(type="task", id=t.id, label=t.title, item=t, parent_id="P")


def _milestone_row(**fields):
    m = normalize_milestone({"_id": "M", "title": "M", **fields})
    return Row(type="milestone", id=m.id, label=m.title, item=m, parent_id="T")


def test_project_bar_example_scenario():
    row = _project_row(startDate="2024-01-01", endDate="2024-01-10", status="Active")
    bar = place_row(0, row, DOMAIN, TODAY)
    assert isinstance(bar, BarPlacement)
    assert (bar.column_start, bar.column_end) == (15, 24)
    assert bar.column_span == 10
    assert bar.overdue is None
    assert bar.color_key == "started"


def test_overdue_extension_runs_to_today():
    row = _project_row(startDate="2024-01-01", endDate="2024-01-05", status="open")
    bar = place_row(0, row, DOMAIN, TODAY)
    assert bar.overdue is not None
    end_col = 19
    assert bar.overdue.column_start == end_col
    assert bar.overdue.column_span == DOMAIN.today_index - end_col == 5
    assert bar.overdue.since == date(2024, 1, 5)
    assert bar.overdue.label.startswith("Overdue since")


def test_finished_items_are_never_overdue():
    row = _task_row(startAt="2024-01-01", dueAt="2024-01-05", status="done", completedAt="2024-01-06")
    bar = place_row(0, row, DOMAIN, TODAY)
    assert bar.overdue is None
    assert bar.color_key == "finished-actual"


def test_bounds_are_clipped_to_domain():
    row = _project_row(startDate="2023-06-01", endDate="2024-06-01")
    bar = place_row(0, row, DOMAIN, TODAY)
    assert bar.column_start == 0
    assert bar.column_end == DOMAIN.day_count - 1


def test_missing_bound_falls_back_to_other_then_created():
    only_end = place_row(0, _task_row(dueAt="2024-01-03"), DOMAIN, TODAY)
    assert (only_end.start, only_end.end) == (date(2024, 1, 3), date(2024, 1, 3))
    assert only_end.column_span == 1

    only_created = place_row(0, _task_row(createdAt="2024-01-02T09:00:00"), DOMAIN, TODAY)
    assert only_created.start == only_created.end == date(2024, 1, 2)


def test_row_without_any_date_has_no_bar():
    assert place_row(0, _project_row(status="active"), DOMAIN, TODAY) is None


def test_inverted_interval_still_spans_one_column():
    bar = place_row(0, _task_row(startAt="2024-01-12", dueAt="2024-01-11"), DOMAIN, TODAY)
    assert bar.column_span == 1


def test_milestone_is_a_single_clipped_column():
    m = place_row(3, _milestone_row(dueAt="2024-01-20"), DOMAIN, TODAY)
    assert isinstance(m, MilestonePlacement)
    assert m.column == 34
    assert m.row_index == 3

    late = place_row(0, _milestone_row(dueAt="2025-01-01"), DOMAIN, TODAY)
    assert late.column == DOMAIN.day_count - 1


def test_overdue_milestone_gets_no_extension():
    m = place_row(0, _milestone_row(dueAt="2024-01-01", isRoadblock=True), DOMAIN, TODAY)
    assert not hasattr(m, "overdue")
    assert m.is_roadblock is True


def test_dateless_milestone_has_no_placement():
    rows = [_milestone_row(dueAt=None, startAt="", createdAt=None)]
    assert place_rows(rows, DOMAIN, TODAY) == [None]
