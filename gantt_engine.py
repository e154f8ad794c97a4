from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional, Set

from bar_placement import Placement, place_rows
from calendar_domain import CalendarDomain, build_calendar_domain
from date_utils import today_local
from dependency_router import Edge, route_dependencies
from filters import (
    DetailOpener,
    FilterChannel,
    FilterSource,
    NullDetailOpener,
    NullFilterSource,
    filter_projects,
)
from gantt_models import GanttSettings, Project, TimelineFilter, normalize_project, normalize_rows, unwrap_rows
from hierarchy_loader import HierarchyDataSource, LazyHierarchyLoader
from tree_flattener import Row, flatten_tree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GanttLayout:
    """Everything a rendering layer needs for one frame."""

    rows: List[Row]
    domain: CalendarDomain
    placements: List[Optional[Placement]]
    edges: List[Edge]
    today: date
    loading: bool = False
    error: str = ""
    open_projects: Set[str] = field(default_factory=set)
    open_tasks: Set[str] = field(default_factory=set)


class GanttEngine:
    """
    Owns expand-state for one timeline view and turns it into layouts.

    Collaborators are injected once at construction. Missing ones fall back
    to null objects: no shared filters, no detail navigation.
    """

    def __init__(
        self,
        source: HierarchyDataSource,
        *,
        filter_source: Optional[FilterSource] = None,
        detail_opener: Optional[DetailOpener] = None,
        channel: Optional[FilterChannel] = None,
        settings: Optional[GanttSettings] = None,
        clock: Optional[Callable[[], date]] = None,
    ) -> None:
        self.settings = settings or GanttSettings()
        self.source = source
        self.filter_source: FilterSource = filter_source or channel or NullFilterSource()
        self.detail_opener: DetailOpener = detail_opener or NullDetailOpener()
        self.loader = LazyHierarchyLoader(source, self.settings)

        self.projects: List[Project] = []
        self.open_projects: Set[str] = set()
        self.open_tasks: Set[str] = set()
        self.error = ""

        self._clock = clock or (lambda: today_local(self.settings.tzinfo()))
        self._generation = 0
        self._closed = False
        self._resyncs: Set["asyncio.Task[None]"] = set()
        self._unsubscribe = channel.subscribe(self._on_filters_changed) if channel is not None else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def today(self) -> date:
        return self._clock()

    def filters(self) -> TimelineFilter:
        return self.filter_source.get_filters()

    def close(self) -> None:
        """Tear the view down; late fetch results are discarded."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        self.loader.invalidate()
        for task in list(self._resyncs):
            task.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_filters_changed(self, flt: TimelineFilter) -> None:
        """Drop in-flight child fetches and request children for the new filter."""
        logger.debug("Filters changed (focus=%s); invalidating in-flight fetches", flt.focused_project_id)
        self.loader.invalidate()
        if self._closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; children resync on the next sync_children()")
            return
        task = loop.create_task(self.sync_children())
        self._resyncs.add(task)
        task.add_done_callback(self._resync_done)

    def _resync_done(self, task: "asyncio.Task[None]") -> None:
        self._resyncs.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Resync after filter change failed: %s", exc)

    async def settle(self) -> None:
        """Wait until every resync scheduled by a filter change has finished."""
        while self._resyncs:
            await asyncio.gather(*list(self._resyncs), return_exceptions=True)

    async def reload(self) -> List[Project]:
        """Fetch the project list again and drop every cached child list."""
        if self._closed:
            return self.projects
        self._generation += 1
        generation = self._generation
        self.loader.reset()

        try:
            payload = await self.source.list_projects(self.filters(), limit=self.settings.fetch_limit)
            rows = unwrap_rows(payload)
        except Exception as e:
            if generation == self._generation:
                logger.error("Loading projects failed: %s", e)
                self.error = str(e) or e.__class__.__name__
                self.projects = []
            return self.projects

        if generation != self._generation:
            logger.debug("Discarding stale project list (generation %d)", generation)
            return self.projects

        tz = self.settings.tzinfo()
        self.projects = normalize_rows(rows, normalize_project, tz)
        self.error = ""
        logger.info("Loaded %d projects", len(self.projects))
        await self.sync_children()
        return self.projects

    # ------------------------------------------------------------------
    # Expand state
    # ------------------------------------------------------------------

    async def toggle_project(self, project_id: str) -> bool:
        """Flip one project open/closed. Closing keeps its cached tasks."""
        project_id = str(project_id)
        if project_id in self.open_projects:
            self.open_projects.discard(project_id)
            return False
        self.open_projects.add(project_id)
        if not self._closed:
            await self.loader.ensure_tasks(project_id)
        return True

    async def toggle_task(self, task_id: str) -> bool:
        task_id = str(task_id)
        if task_id in self.open_tasks:
            self.open_tasks.discard(task_id)
            return False
        self.open_tasks.add(task_id)
        if not self._closed:
            await self.loader.ensure_milestones(task_id)
        return True

    async def sync_children(self) -> None:
        """
        Make sure every open, visible node has its children requested.

        Needed after a filter change dropped in-flight results, and after a
        reload. A single visible project also gets its milestones bulk-loaded.
        """
        if self._closed:
            return
        visible = self.visible_projects()

        if len(visible) == 1:
            await self.loader.preload_project_milestones(visible[0].id)

        open_visible = [p.id for p in visible if p.id in self.open_projects]
        await asyncio.gather(*(self.loader.ensure_tasks(pid) for pid in open_visible))

        task_ids: List[str] = []
        for pid in open_visible:
            for t in self.loader.tasks_for(pid) or []:
                if t.id in self.open_tasks:
                    task_ids.append(t.id)
        await asyncio.gather(*(self.loader.ensure_milestones(tid) for tid in task_ids))

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def visible_projects(self, today: Optional[date] = None) -> List[Project]:
        return filter_projects(self.projects, self.filters(), today or self.today())

    def layout(self, today: Optional[date] = None) -> GanttLayout:
        today = today or self.today()
        flt = self.filters()
        visible = filter_projects(self.projects, flt, today)

        rows = flatten_tree(visible, self.loader, self.open_projects, self.open_tasks)
        domain = build_calendar_domain(flt.date_range, today, self.settings)
        placements = place_rows(rows, domain, today)
        edges = route_dependencies(rows, placements, self.settings)

        return GanttLayout(
            rows=rows,
            domain=domain,
            placements=placements,
            edges=edges,
            today=today,
            loading=self.loader.is_loading() or bool(self._resyncs),
            error=self.error,
            open_projects=set(self.open_projects),
            open_tasks=set(self.open_tasks),
        )

    def open_detail(self, row: Row) -> None:
        self.detail_opener.open(row.type, row.id)
