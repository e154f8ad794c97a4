from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from bar_placement import MilestonePlacement, Placement
from gantt_models import GanttSettings, Milestone
from tree_flattener import Row

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


@dataclass(frozen=True)
class Anchor:
    row_index: int
    x_offset: float


@dataclass(frozen=True)
class Edge:
    from_anchor: Anchor
    to_anchor: Anchor
    from_id: str
    to_id: str

    def elbow(self, cell_width: float, row_height: float) -> "ElbowPath":
        """
        L-shaped connector between two anchors, in chart pixel coordinates:
        horizontal from the source to the mid x, vertical to the target row,
        horizontal into the target. The arrowhead sits on the last point.
        """
        x1 = self.from_anchor.x_offset + cell_width / 2.0
        x2 = self.to_anchor.x_offset + cell_width / 2.0
        y1 = self.from_anchor.row_index * row_height + row_height / 2.0
        y2 = self.to_anchor.row_index * row_height + row_height / 2.0
        mid = (x1 + x2) / 2.0
        return ElbowPath(points=((x1, y1), (mid, y1), (mid, y2), (x2, y2)))


@dataclass(frozen=True)
class ElbowPath:
    points: Tuple[Point, Point, Point, Point]

    @property
    def arrow_at(self) -> Point:
        return self.points[-1]

    def svg_path(self) -> str:
        head, *rest = self.points
        return f"M {head[0]:g} {head[1]:g} " + " ".join(f"L {x:g} {y:g}" for x, y in rest)


def build_anchor_index(
    rows: Sequence[Row],
    placements: Sequence[Optional[Placement]],
    cell_width: float,
) -> Dict[str, Anchor]:
    """Milestone id -> anchor, only for milestone rows that were placed."""
    index: Dict[str, Anchor] = {}
    for i, row in enumerate(rows):
        if row.type != "milestone":
            continue
        placement = placements[i] if i < len(placements) else None
        if not isinstance(placement, MilestonePlacement):
            continue
        index[row.id] = Anchor(row_index=i, x_offset=placement.column * cell_width)
    return index


def route_dependencies(
    rows: Sequence[Row],
    placements: Sequence[Optional[Placement]],
    settings: Optional[GanttSettings] = None,
) -> List[Edge]:
    """
    One directed edge per (dependency -> dependent) pair whose endpoints both
    have anchors. Unresolved endpoints are skipped without error. Cycles are
    not detected; a cyclic graph yields a cyclic edge set.
    """
    settings = settings or GanttSettings()
    anchors = build_anchor_index(rows, placements, settings.cell_width)

    edges: List[Edge] = []
    skipped = 0
    for row in rows:
        if row.type != "milestone":
            continue
        m: Milestone = row.item  # type: ignore[assignment]
        target = anchors.get(row.id)
        for dep_id in m.dependency_ids():
            source = anchors.get(dep_id)
            if source is None or target is None:
                skipped += 1
                continue
            edges.append(Edge(from_anchor=source, to_anchor=target, from_id=dep_id, to_id=row.id))

    if skipped:
        logger.debug("Omitted %d dependency edges with unresolved anchors", skipped)
    return edges
