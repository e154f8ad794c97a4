from __future__ import annotations

import asyncio
import logging
from datetime import tzinfo
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    Hashable,
    Iterable,
    List,
    Optional,
    Protocol,
    Set,
    TypeVar,
)

from gantt_models import (
    GanttSettings,
    Milestone,
    Task,
    TimelineFilter,
    normalize_milestone,
    normalize_rows,
    normalize_task,
    unwrap_rows,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", Task, Milestone)


class HierarchyDataSource(Protocol):
    """
    Async endpoints the timeline reads from.

    Each call may return a bare list of records or a ``{"rows": [...]}``
    envelope. Transport and authentication live behind this interface.
    """

    async def list_projects(self, flt: TimelineFilter, *, limit: int) -> Any: ...

    async def list_tasks(self, project_id: str, *, limit: int) -> Any: ...

    async def list_tasks_nested(self, project_id: str, *, limit: int) -> Any: ...

    async def list_milestones_by_task(self, task_id: str, *, limit: int) -> Any: ...

    async def list_milestones_by_query(self, task_id: str, *, limit: int) -> Any: ...

    async def list_milestones_by_project(self, project_id: str, *, limit: int) -> Any: ...


class RecordArena(Generic[T]):
    """id -> record store plus an ordered parent -> child-ids index."""

    def __init__(self) -> None:
        self._records: Dict[str, T] = {}
        self._children: Dict[str, List[str]] = {}

    def __len__(self) -> int:
        return len(self._records)

    def has_children(self, parent_id: str) -> bool:
        return parent_id in self._children

    def put_children(self, parent_id: str, records: Iterable[T]) -> None:
        ids: List[str] = []
        for r in records:
            self._records[r.id] = r
            if r.id not in ids:
                ids.append(r.id)
        self._children[parent_id] = ids

    def children(self, parent_id: str) -> Optional[List[T]]:
        """Cached children in arrival order, or None when never loaded."""
        ids = self._children.get(parent_id)
        if ids is None:
            return None
        return [self._records[i] for i in ids if i in self._records]

    def get(self, record_id: str) -> Optional[T]:
        return self._records.get(record_id)

    def put(self, record: T) -> None:
        self._records[record.id] = record

    def parents(self) -> List[str]:
        return list(self._children)

    def drop_children(self, parent_id: str) -> None:
        self._children.pop(parent_id, None)

    def clear(self) -> None:
        self._records.clear()
        self._children.clear()


Fetcher = Callable[..., Awaitable[Any]]


class LazyHierarchyLoader:
    """
    Fetches tasks per project and milestones per task on demand.

    Guarantees:
      - at most one in-flight fetch per parent id; concurrent callers share it
      - cached children are never re-fetched until ``reset()``
      - fetch failures fall back to the secondary endpoint, then to an empty
        list; nothing is raised to the caller
      - results that complete after ``invalidate()``/``reset()`` are dropped
    """

    def __init__(
        self,
        source: HierarchyDataSource,
        settings: Optional[GanttSettings] = None,
    ) -> None:
        self.source = source
        self.settings = settings or GanttSettings()
        self.tasks: RecordArena[Task] = RecordArena()
        self.milestones: RecordArena[Milestone] = RecordArena()
        self._milestones_by_project: Dict[str, List[str]] = {}
        self._bulk_attempted: Set[str] = set()
        self._inflight: Dict[Hashable, "asyncio.Task[None]"] = {}
        self._epoch = 0

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def _tz(self) -> Optional[tzinfo]:
        return self.settings.tzinfo()

    def invalidate(self) -> None:
        """Drop results of every fetch currently in flight. Caches are kept."""
        self._epoch += 1
        self._inflight.clear()

    def reset(self) -> None:
        """Top-level reload: invalidate and forget everything cached."""
        self.invalidate()
        self.tasks.clear()
        self.milestones.clear()
        self._milestones_by_project.clear()
        self._bulk_attempted.clear()

    def is_loading(self) -> bool:
        return bool(self._inflight)

    # ------------------------------------------------------------------
    # Read side (used by the flattener)
    # ------------------------------------------------------------------

    def tasks_for(self, project_id: str) -> Optional[List[Task]]:
        return self.tasks.children(project_id)

    def milestones_for(self, task_id: str) -> Optional[List[Milestone]]:
        return self.milestones.children(task_id)

    def milestones_for_project(self, project_id: str) -> Optional[List[Milestone]]:
        ids = self._milestones_by_project.get(project_id)
        if ids is None:
            return None
        return [m for m in (self.milestones.get(i) for i in ids) if m is not None]

    # ------------------------------------------------------------------
    # Fetch side
    # ------------------------------------------------------------------

    async def ensure_tasks(self, project_id: str) -> List[Task]:
        if not self.tasks.has_children(project_id):
            await self._once(("tasks", project_id), self._load_tasks, project_id)
        return self.tasks.children(project_id) or []

    async def ensure_milestones(self, task_id: str) -> List[Milestone]:
        if not self.milestones.has_children(task_id):
            await self._once(("milestones", task_id), self._load_milestones, task_id)
        return self.milestones.children(task_id) or []

    async def preload_project_milestones(self, project_id: str) -> None:
        """
        Bulk-fetch every milestone of one project and seed the per-task cache.

        Tasks seeded this way never issue their own per-task request. A failed
        bulk call seeds nothing and is not retried until ``reset()``.
        """
        if project_id in self._bulk_attempted:
            return
        await self._once(("bulk", project_id), self._load_project_milestones, project_id)

    async def _once(self, key: Hashable, loader: Callable[[str, int], Awaitable[None]], parent_id: str) -> None:
        running = self._inflight.get(key)
        if running is None:
            running = asyncio.ensure_future(loader(parent_id, self._epoch))
            self._inflight[key] = running

            def _done(fut: "asyncio.Task[None]", key: Hashable = key) -> None:
                if self._inflight.get(key) is fut:
                    del self._inflight[key]

            running.add_done_callback(_done)
        await asyncio.shield(running)

    async def _fetch_with_fallback(
        self,
        what: str,
        parent_id: str,
        primary: Fetcher,
        secondary: Fetcher,
    ) -> List[Dict[str, Any]]:
        limit = self.settings.fetch_limit
        try:
            return unwrap_rows(await primary(parent_id, limit=limit))
        except Exception as e:
            logger.warning("Primary %s fetch failed for %s (%s); trying fallback", what, parent_id, e)
        try:
            return unwrap_rows(await secondary(parent_id, limit=limit))
        except Exception as e:
            logger.warning("Fallback %s fetch failed for %s (%s); using empty list", what, parent_id, e)
        return []

    def _stale(self, epoch: int, what: str, parent_id: str) -> bool:
        if epoch != self._epoch:
            logger.debug("Discarding stale %s result for %s (epoch %d != %d)", what, parent_id, epoch, self._epoch)
            return True
        return False

    async def _load_tasks(self, project_id: str, epoch: int) -> None:
        rows = await self._fetch_with_fallback(
            "tasks", project_id, self.source.list_tasks, self.source.list_tasks_nested
        )
        if self._stale(epoch, "tasks", project_id):
            return
        tasks = normalize_rows(rows, normalize_task, self._tz, project_id=project_id)
        self.tasks.put_children(project_id, tasks)
        logger.debug("Loaded %d tasks for project %s", len(tasks), project_id)

        if project_id in self._milestones_by_project:
            # Bulk preload already covered this project; absent tasks have none.
            for t in tasks:
                if not self.milestones.has_children(t.id):
                    self.milestones.put_children(t.id, [])

    async def _load_milestones(self, task_id: str, epoch: int) -> None:
        rows = await self._fetch_with_fallback(
            "milestones",
            task_id,
            self.source.list_milestones_by_task,
            self.source.list_milestones_by_query,
        )
        if self._stale(epoch, "milestones", task_id):
            return
        milestones = normalize_rows(rows, normalize_milestone, self._tz, task_id=task_id)
        self.milestones.put_children(task_id, milestones)
        logger.debug("Loaded %d milestones for task %s", len(milestones), task_id)

    async def _load_project_milestones(self, project_id: str, epoch: int) -> None:
        try:
            payload = await self.source.list_milestones_by_project(project_id, limit=self.settings.fetch_limit)
            rows = unwrap_rows(payload)
        except Exception as e:
            logger.warning("Bulk milestone fetch failed for project %s (%s)", project_id, e)
            if not self._stale(epoch, "bulk milestones", project_id):
                self._bulk_attempted.add(project_id)
            return
        if self._stale(epoch, "bulk milestones", project_id):
            return
        self._bulk_attempted.add(project_id)

        milestones = normalize_rows(rows, normalize_milestone, self._tz, project_id=project_id)
        by_task: Dict[str, List[Milestone]] = {}
        for m in milestones:
            if m.task_id:
                by_task.setdefault(m.task_id, []).append(m)

        seeded = 0
        for task_id, group in by_task.items():
            if not self.milestones.has_children(task_id):
                self.milestones.put_children(task_id, group)
                seeded += 1
        for t in self.tasks.children(project_id) or []:
            if not self.milestones.has_children(t.id):
                self.milestones.put_children(t.id, [])
                seeded += 1

        self._milestones_by_project[project_id] = [m.id for m in milestones]
        for m in milestones:
            if self.milestones.get(m.id) is None:
                self.milestones.put(m)
        logger.debug(
            "Preloaded %d milestones for project %s (%d task caches seeded)",
            len(milestones),
            project_id,
            seeded,
        )
