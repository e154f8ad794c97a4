from gantt_models import Milestone, Project, Task
from hierarchy_loader import RecordArena
from tree_flattener import flatten_tree


class Children:
    def __init__(self):
        self.tasks = RecordArena()
        self.milestones = RecordArena()

    def tasks_for(self, project_id):
        return self.tasks.children(project_id)

    def milestones_for(self, task_id):
        return self.milestones.children(task_id)


def _projects(*ids):
    return [Project(id=i, name=f"Project {i}") for i in ids]


def test_collapsed_tree_yields_one_row_per_project_in_order():
    projects = _projects("P3", "P1", "P2")
    rows = flatten_tree(projects, Children(), set(), set())
    assert [r.id for r in rows] == ["P3", "P1", "P2"]
    assert all(r.type == "project" for r in rows)


def test_expanded_nodes_are_emitted_depth_first():
    kids = Children()
    kids.tasks.put_children("P1", [Task(id="T2", title="Second"), Task(id="T1", title="First")])
    kids.milestones.put_children("T1", [Milestone(id="M1", title="Gate")])
    kids.milestones.put_children("T2", [Milestone(id="M2", title="Hidden")])

    rows = flatten_tree(_projects("P1", "P2"), kids, {"P1"}, {"T1"})
    assert [(r.type, r.id) for r in rows] == [
        ("project", "P1"),
        ("task", "T2"),
        ("task", "T1"),
        ("milestone", "M1"),
        ("project", "P2"),
    ]
    assert rows[1].parent_id == "P1"
    assert rows[3].parent_id == "T1"
    assert rows[3].depth == 2


def test_open_but_unloaded_children_render_as_empty():
    rows = flatten_tree(_projects("P1"), Children(), {"P1"}, {"T1"})
    assert [r.id for r in rows] == ["P1"]


def test_open_task_under_closed_project_is_hidden():
    kids = Children()
    kids.tasks.put_children("P1", [Task(id="T1", title="A")])
    kids.milestones.put_children("T1", [Milestone(id="M1", title="Gate")])
    rows = flatten_tree(_projects("P1"), kids, set(), {"T1"})
    assert [r.id for r in rows] == ["P1"]


def test_row_ids_unique_within_one_pass():
    kids = Children()
    kids.tasks.put_children("P1", [Task(id="T1", title="A")])
    kids.tasks.put_children("P2", [Task(id="T1", title="A again")])
    rows = flatten_tree(_projects("P1", "P2", "P1"), kids, {"P1", "P2"}, set())
    ids = [r.id for r in rows]
    assert ids == ["P1", "T1", "P2"]
    assert len(ids) == len(set(ids))


def test_label_falls_back_to_id():
    rows = flatten_tree([Project(id="P9", name="")], Children(), set(), set())
    assert rows[0].label == "P9"
