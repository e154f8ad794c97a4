from datetime import date

from bar_placement import place_rows
from calendar_domain import build_calendar_domain
from dependency_router import Anchor, Edge, build_anchor_index, route_dependencies
from gantt_models import DateRange, GanttSettings, normalize_milestone, normalize_task
from tree_flattener import Row

TODAY = date(2024, 1, 10)
DOMAIN = build_calendar_domain(DateRange(from_date=date(2024, 1, 1), to_date=date(2024, 1, 31)), TODAY)
SETTINGS = GanttSettings(cell_width=10, row_height=20)


def _ms(mid, **fields):
    m = normalize_milestone({"_id": mid, "title": mid, **fields})
    return Row(type="milestone", id=m.id, label=m.title, item=m, parent_id="T")


def _route(rows):
    return route_dependencies(rows, place_rows(rows, DOMAIN, TODAY), SETTINGS)


def test_edge_from_dependency_to_dependent():
    rows = [_ms("A", dueAt="2024-01-03"), _ms("B", dueAt="2024-01-08", dependsOn=["A"])]
    edges = _route(rows)
    assert edges == [
        Edge(from_anchor=Anchor(row_index=0, x_offset=20.0), to_anchor=Anchor(row_index=1, x_offset=70.0), from_id="A", to_id="B")
    ]


def test_depends_on_and_blocked_by_are_merged_without_duplicates():
    rows = [
        _ms("A", dueAt="2024-01-03"),
        _ms("C", dueAt="2024-01-04"),
        _ms("B", dueAt="2024-01-08", dependsOn=["A", "C"], blockedBy=["A"]),
    ]
    edges = _route(rows)
    assert [(e.from_id, e.to_id) for e in edges] == [("A", "B"), ("C", "B")]


def test_unresolved_dependency_is_omitted_silently():
    rows = [_ms("B", dueAt="2024-01-08", dependsOn=["missing"])]
    assert _route(rows) == []


def test_dateless_milestone_has_no_anchor_and_no_edges():
    rows = [_ms("A"), _ms("B", dueAt="2024-01-08", dependsOn=["A"]), _ms("C", dependsOn=["B"])]
    placements = place_rows(rows, DOMAIN, TODAY)
    anchors = build_anchor_index(rows, placements, SETTINGS.cell_width)
    assert set(anchors) == {"B"}
    assert route_dependencies(rows, placements, SETTINGS) == []


def test_removing_an_anchor_removes_the_edge():
    a = _ms("A", dueAt="2024-01-03")
    b = _ms("B", dueAt="2024-01-08", dependsOn=["A"])
    assert len(_route([a, b])) == 1
    # A's task collapsed: its row disappears from the next flatten.
    assert _route([b]) == []


def test_cycles_are_not_detected():
    rows = [
        _ms("A", dueAt="2024-01-03", dependsOn=["B"]),
        _ms("B", dueAt="2024-01-08", dependsOn=["A"]),
    ]
    assert sorted((e.from_id, e.to_id) for e in _route(rows)) == [("A", "B"), ("B", "A")]


def test_non_milestone_rows_are_ignored():
    task = normalize_task({"_id": "A", "title": "A", "dueAt": "2024-01-03"})
    rows = [Row(type="task", id="A", label="A", item=task), _ms("B", dueAt="2024-01-08", dependsOn=["A"])]
    assert _route(rows) == []


def test_elbow_geometry():
    edge = Edge(from_anchor=Anchor(0, 20.0), to_anchor=Anchor(2, 70.0), from_id="A", to_id="B")
    path = edge.elbow(cell_width=10, row_height=20)
    assert path.points == ((25.0, 10.0), (50.0, 10.0), (50.0, 50.0), (75.0, 50.0))
    assert path.arrow_at == (75.0, 50.0)
    assert path.svg_path() == "M 25 10 L 50 10 L 50 50 L 75 50"
