from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, List, Literal, Optional, Protocol, Set, Union

from gantt_models import Milestone, Project, Task

RowType = Literal["project", "task", "milestone"]


@dataclass(frozen=True)
class Row:
    type: RowType
    id: str
    label: str
    item: Union[Project, Task, Milestone]
    parent_id: Optional[str] = None

    @property
    def depth(self) -> int:
        return {"project": 0, "task": 1, "milestone": 2}[self.type]


class ChildLookup(Protocol):
    def tasks_for(self, project_id: str) -> Optional[List[Task]]: ...

    def milestones_for(self, task_id: str) -> Optional[List[Milestone]]: ...


def flatten_tree(
    projects: List[Project],
    children: ChildLookup,
    open_projects: AbstractSet[str],
    open_tasks: AbstractSet[str],
) -> List[Row]:
    """
    Depth-first walk of the visible forest.

    Order is inherited entirely from ``projects`` and from the loader's
    arrival order; nothing is sorted here. Children that are not loaded yet
    contribute no rows. An id already emitted in this pass is skipped, so row
    ids are unique.
    """
    out: List[Row] = []
    seen: Set[str] = set()

    def _emit(row: Row) -> bool:
        if row.id in seen:
            return False
        seen.add(row.id)
        out.append(row)
        return True

    for p in projects:
        if not _emit(Row(type="project", id=p.id, label=p.name or p.id, item=p)):
            continue
        if p.id not in open_projects:
            continue
        for t in children.tasks_for(p.id) or []:
            if not _emit(Row(type="task", id=t.id, label=t.title or t.id, item=t, parent_id=p.id)):
                continue
            if t.id not in open_tasks:
                continue
            for m in children.milestones_for(t.id) or []:
                _emit(Row(type="milestone", id=m.id, label=m.title or m.id, item=m, parent_id=t.id))
    return out
