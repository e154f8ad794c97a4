import sys
from collections import Counter
from pathlib import Path

# Force a headless backend for matplotlib before any pyplot imports.
import matplotlib

matplotlib.use("Agg")

import pytest

# Ensure project root is on sys.path for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class FakeSource:
    """
    In-memory data source with per-endpoint call counters.

    ``fail`` holds endpoint names that raise. Setting ``gate`` to an
    asyncio.Event holds every call until the event is set, so concurrent
    callers actually overlap.
    """

    def __init__(self, projects=None, tasks=None, milestones=None, bulk=None, fail=(), envelope=False):
        self.projects = projects or []
        self.tasks = tasks or {}
        self.milestones = milestones or {}
        self.bulk = bulk or {}
        self.fail = set(fail)
        self.envelope = envelope
        self.calls = Counter()
        self.gate = None

    async def _serve(self, endpoint, rows):
        self.calls[endpoint] += 1
        if self.gate is not None:
            await self.gate.wait()
        if endpoint in self.fail:
            raise ConnectionError(f"{endpoint} unavailable")
        rows = list(rows)
        return {"rows": rows} if self.envelope else rows

    async def list_projects(self, flt, *, limit):
        return await self._serve("list_projects", self.projects)

    async def list_tasks(self, project_id, *, limit):
        return await self._serve("list_tasks", self.tasks.get(project_id, []))

    async def list_tasks_nested(self, project_id, *, limit):
        return await self._serve("list_tasks_nested", self.tasks.get(project_id, []))

    async def list_milestones_by_task(self, task_id, *, limit):
        return await self._serve("list_milestones_by_task", self.milestones.get(task_id, []))

    async def list_milestones_by_query(self, task_id, *, limit):
        return await self._serve("list_milestones_by_query", self.milestones.get(task_id, []))

    async def list_milestones_by_project(self, project_id, *, limit):
        return await self._serve("list_milestones_by_project", self.bulk.get(project_id, []))


@pytest.fixture
def fake_source():
    return FakeSource
