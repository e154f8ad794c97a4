from datetime import date

import pytest

from filters import FilterChannel, NullDetailOpener, filter_projects, overlaps_range, within_rag
from gantt_models import DateRange, Project, TimelineFilter

TODAY = date(2024, 3, 1)


def _p(pid, status="pending", start=None, end=None, groups=()):
    return Project(id=pid, name=pid, status=status, start_at=start, end_at=end, group_ids=list(groups))


PROJECTS = [
    _p("green", "started", date(2024, 1, 1), date(2024, 4, 1), groups=["g1"]),
    _p("late", "started", date(2024, 1, 1), date(2024, 2, 1), groups=["g2"]),
    _p("held", "paused", date(2024, 2, 1), date(2024, 5, 1), groups=["g1", "g2"]),
    _p("stuck", "paused-problem", date(2024, 6, 1), date(2024, 7, 1)),
    _p("done", "finished", date(2023, 1, 1), date(2023, 2, 1)),
]


def _ids(flt):
    return [p.id for p in filter_projects(PROJECTS, flt, TODAY)]


def test_empty_filter_keeps_everything_in_order():
    assert _ids(TimelineFilter()) == ["green", "late", "held", "stuck", "done"]


@pytest.mark.parametrize(
    "rag,expected",
    [
        ("green", ["green"]),
        ("amber", ["held"]),
        ("red", ["late", "stuck"]),
        ("", ["green", "late", "held", "stuck", "done"]),
    ],
)
def test_rag_filter(rag, expected):
    assert _ids(TimelineFilter(rag=rag)) == expected


def test_rag_is_case_insensitive():
    assert TimelineFilter(rag=" RED ").rag == "red"


def test_finished_project_is_never_red():
    assert not within_rag(PROJECTS[-1], "red", TODAY)


def test_group_filter_intersects():
    assert _ids(TimelineFilter(group_ids=["g2"])) == ["late", "held"]


def test_focused_project_overrides_project_list():
    flt = TimelineFilter(project_ids=["green", "late"], focused_project_id="held")
    assert _ids(flt) == ["held"]
    assert _ids(TimelineFilter(project_ids=["late", "green"])) == ["green", "late"]


def test_date_range_overlap():
    flt = TimelineFilter(date_range=DateRange(from_date=date(2024, 4, 15), to_date=date(2024, 6, 15)))
    assert _ids(flt) == ["held", "stuck"]


def test_open_ended_bounds_overlap():
    # No start: reaches back forever. No end: falls back to start, then today.
    assert overlaps_range(None, date(2024, 1, 5), date(2023, 1, 1), date(2023, 2, 1), TODAY)
    assert overlaps_range(None, None, date(2024, 2, 1), None, TODAY)
    assert not overlaps_range(None, None, date(2024, 4, 1), None, TODAY)
    assert not overlaps_range(date(2024, 5, 1), None, None, date(2024, 4, 1), TODAY)


def test_channel_publish_reaches_subscribers_until_unsubscribed():
    channel = FilterChannel()
    seen = []
    unsubscribe = channel.subscribe(seen.append)
    flt = TimelineFilter(rag="red")
    channel.publish(flt)
    assert seen == [flt]
    assert channel.get_filters() is flt

    unsubscribe()
    unsubscribe()
    channel.publish(TimelineFilter())
    assert seen == [flt]
    assert channel.listener_count == 0


def test_failing_listener_does_not_stop_the_others(caplog):
    channel = FilterChannel()
    seen = []

    def broken(_):
        raise RuntimeError("boom")

    channel.subscribe(broken)
    channel.subscribe(seen.append)
    channel.publish(TimelineFilter())
    assert len(seen) == 1
    assert "failed" in caplog.text


def test_null_detail_opener_is_a_no_op():
    NullDetailOpener().open("task", "T1")
