from __future__ import annotations

import logging
from datetime import date, tzinfo
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Tuple, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

from date_utils import (
    ACTUAL_END_FIELDS,
    CREATED_FIELDS,
    MILESTONE_DUE_FIELDS,
    MILESTONE_START_FIELDS,
    PROJECT_END_FIELDS,
    PROJECT_START_FIELDS,
    TASK_DUE_FIELDS,
    TASK_START_FIELDS,
    resolve_date,
    resolve_tz,
)
from status_utils import CanonicalStatus, canonical_status

logger = logging.getLogger(__name__)

R = TypeVar("R")

MilestoneKind = Literal["plain", "reporting", "feedback"]
RagFilter = Literal["", "green", "amber", "red"]

_KIND_SYNONYMS = {
    "report": "reporting",
    "reporting": "reporting",
    "reporting-point": "reporting",
    "reporting point": "reporting",
    "feedback": "feedback",
    "feedback-point": "feedback",
    "feedback point": "feedback",
    "review": "feedback",
}


class GanttSettings(BaseModel):
    """Layout constants and default windows for the timeline."""

    cell_width: float = Field(default=26.0)
    row_height: float = Field(default=24.0)
    header_height: float = Field(default=24.0)
    label_width: float = Field(default=240.0)

    # Explicit range with one side missing: [today - past, today + future].
    default_past_days: int = Field(default=30)
    default_future_days: int = Field(default=60)
    # No range at all: current month padded on both sides.
    month_padding_days: int = Field(default=15)

    fetch_limit: int = Field(default=2000)
    timezone: Optional[str] = Field(default=None)

    output_dpi: Literal[150, 300, 600] = Field(default=150)
    font_family: str = Field(default="DejaVu Sans")

    @field_validator("cell_width", "row_height", "header_height", "label_width")
    @classmethod
    def _positive_size(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("layout sizes must be positive.")
        return v

    @field_validator("default_past_days", "default_future_days", "month_padding_days")
    @classmethod
    def _non_negative_days(cls, v: int) -> int:
        if v < 0:
            raise ValueError("day offsets must be zero or positive.")
        return v

    @field_validator("fetch_limit")
    @classmethod
    def _limit_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("fetch_limit must be positive.")
        return v

    @field_validator("timezone")
    @classmethod
    def _tz_known(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        if not v:
            return None
        try:
            resolve_tz(v)
        except Exception as e:
            raise ValueError(f"unknown timezone: {v}") from e
        return v

    @field_validator("font_family")
    @classmethod
    def _font_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        return v or "DejaVu Sans"

    def tzinfo(self) -> Optional[tzinfo]:
        return resolve_tz(self.timezone)


class DateRange(BaseModel):
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    def is_empty(self) -> bool:
        return self.from_date is None and self.to_date is None


class TimelineFilter(BaseModel):
    """Read-only filter snapshot published by the surrounding dashboard."""

    date_range: DateRange = Field(default_factory=DateRange)
    focused_project_id: Optional[str] = None
    project_ids: List[str] = Field(default_factory=list)
    group_ids: List[str] = Field(default_factory=list)
    rag: RagFilter = ""

    @field_validator("focused_project_id")
    @classmethod
    def _focus_strip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("project_ids", "group_ids")
    @classmethod
    def _ids_as_strings(cls, v: List[Any]) -> List[str]:
        return [str(x) for x in v if str(x).strip()]

    @field_validator("rag", mode="before")
    @classmethod
    def _rag_lower(cls, v: Any) -> str:
        return str(v or "").strip().lower()


class Project(BaseModel):
    id: str
    name: str
    start_at: Optional[date] = None
    end_at: Optional[date] = None
    actual_end_at: Optional[date] = None
    created_at: Optional[date] = None
    raw_status: Optional[str] = None
    status: CanonicalStatus = "pending"
    group_ids: List[str] = Field(default_factory=list)
    owner: Optional[str] = None

    def interval(self) -> Tuple[Optional[date], Optional[date]]:
        return _interval(self.start_at, self.end_at, self.created_at)


class Task(BaseModel):
    id: str
    title: str
    project_id: Optional[str] = None
    start_at: Optional[date] = None
    due_at: Optional[date] = None
    actual_end_at: Optional[date] = None
    created_at: Optional[date] = None
    raw_status: Optional[str] = None
    status: CanonicalStatus = "pending"

    @property
    def end_at(self) -> Optional[date]:
        return self.due_at

    def interval(self) -> Tuple[Optional[date], Optional[date]]:
        return _interval(self.start_at, self.due_at, self.created_at)


class Milestone(BaseModel):
    id: str
    title: str
    task_id: Optional[str] = None
    project_id: Optional[str] = None
    start_at: Optional[date] = None
    due_at: Optional[date] = None
    actual_end_at: Optional[date] = None
    created_at: Optional[date] = None
    raw_status: Optional[str] = None
    status: CanonicalStatus = "pending"
    is_roadblock: bool = False
    kind: MilestoneKind = "plain"
    depends_on: List[str] = Field(default_factory=list)
    blocked_by: List[str] = Field(default_factory=list)

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, v: Any) -> str:
        token = " ".join(str(v or "").strip().lower().split())
        return _KIND_SYNONYMS.get(token, "plain")

    @model_validator(mode="after")
    def _stringify_dependencies(self) -> "Milestone":
        self.depends_on = [str(x) for x in self.depends_on if str(x)]
        self.blocked_by = [str(x) for x in self.blocked_by if str(x)]
        return self

    def occurrence_date(self) -> Optional[date]:
        """
        The single day a milestone is drawn on.

        Finished milestones with a recorded completion use it; everything else
        falls back through due -> start -> created.
        """
        if self.status == "finished" and self.actual_end_at is not None:
            return self.actual_end_at
        return self.due_at or self.start_at or self.created_at

    def dependency_ids(self) -> List[str]:
        """dependsOn + blockedBy, de-duplicated, first occurrence kept."""
        out: List[str] = []
        for did in list(self.depends_on) + list(self.blocked_by):
            if did and did not in out:
                out.append(did)
        return out


def _interval(
    start: Optional[date],
    end: Optional[date],
    created: Optional[date],
) -> Tuple[Optional[date], Optional[date]]:
    """Each bound falls back to the other one, then to the creation date."""
    s = start or end or created
    e = end or start or created
    return s, e


# ---------------------------------------------------------------------------
# Raw record -> model. Every field has a fallback; records are never rejected.
# ---------------------------------------------------------------------------


def record_id(record: Mapping[str, Any]) -> str:
    for key in ("_id", "id"):
        v = record.get(key)
        if v is not None and str(v).strip():
            return str(v).strip()
    return ""


def _ref_id(value: Any) -> Optional[str]:
    """Reference fields come either as plain ids or as populated objects."""
    if isinstance(value, Mapping):
        value = record_id(value)
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _first_text(record: Mapping[str, Any], keys: List[str]) -> Optional[str]:
    for key in keys:
        v = record.get(key)
        if v is not None and str(v).strip():
            return str(v).strip()
    return None


def _id_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    out: List[str] = []
    for x in value:
        ref = _ref_id(x)
        if ref:
            out.append(ref)
    return out


def _fallback_id(parent_id: Optional[str], prefix: str, index: int) -> str:
    """Generated ids are scoped to the parent; indexes restart for every child list."""
    if parent_id:
        return f"{parent_id}:{prefix}_{index}"
    return f"{prefix}_{index}"


def _raw_status(record: Mapping[str, Any]) -> Optional[str]:
    v = record.get("status")
    if v is None or not str(v).strip():
        return None
    return str(v)


def _group_ids(record: Mapping[str, Any]) -> List[str]:
    pool: List[Any] = []
    for key in ("groupId", "groups", "group", "teamGroups"):
        v = record.get(key)
        if v is None:
            continue
        pool.extend(v if isinstance(v, (list, tuple)) else [v])
    out: List[str] = []
    for x in pool:
        ref = _ref_id(x)
        if ref and ref not in out:
            out.append(ref)
    return out


def normalize_project(record: Mapping[str, Any], index: int = 0, tz: Optional[tzinfo] = None) -> Project:
    pid = record_id(record) or f"p_{index}"
    raw = _raw_status(record)
    return Project(
        id=pid,
        name=_first_text(record, ["name", "title"]) or pid,
        start_at=resolve_date(record, PROJECT_START_FIELDS, tz),
        end_at=resolve_date(record, PROJECT_END_FIELDS, tz),
        actual_end_at=resolve_date(record, ACTUAL_END_FIELDS, tz),
        created_at=resolve_date(record, CREATED_FIELDS, tz),
        raw_status=raw,
        status=canonical_status(raw, completed=bool(record.get("completed"))),
        group_ids=_group_ids(record),
        owner=_ref_id(record.get("owner") or record.get("manager")),
    )


def normalize_task(
    record: Mapping[str, Any],
    index: int = 0,
    tz: Optional[tzinfo] = None,
    *,
    project_id: Optional[str] = None,
) -> Task:
    project_id = _ref_id(record.get("projectId")) or project_id
    tid = record_id(record) or _fallback_id(project_id, "t", index)
    raw = _raw_status(record)
    return Task(
        id=tid,
        title=_first_text(record, ["title", "name"]) or tid,
        project_id=project_id,
        start_at=resolve_date(record, TASK_START_FIELDS, tz),
        due_at=resolve_date(record, TASK_DUE_FIELDS, tz),
        actual_end_at=resolve_date(record, ACTUAL_END_FIELDS, tz),
        created_at=resolve_date(record, CREATED_FIELDS, tz),
        raw_status=raw,
        status=canonical_status(raw, completed=bool(record.get("completed"))),
    )


def normalize_milestone(
    record: Mapping[str, Any],
    index: int = 0,
    tz: Optional[tzinfo] = None,
    *,
    task_id: Optional[str] = None,
    project_id: Optional[str] = None,
) -> Milestone:
    task_id = _ref_id(record.get("taskId")) or task_id
    project_id = _ref_id(record.get("projectId")) or project_id
    mid = record_id(record) or _fallback_id(task_id or project_id, "m", index)
    raw = _raw_status(record)
    depends = record.get("dependsOn")
    if not isinstance(depends, (list, tuple)):
        depends = record.get("requires")
    is_roadblock = record.get("isRoadblock")
    if is_roadblock is None:
        is_roadblock = record.get("roadblock")
    if is_roadblock is None:
        is_roadblock = record.get("blocker")
    return Milestone(
        id=mid,
        title=_first_text(record, ["title", "name", "label"]) or f"Milestone {index + 1}",
        task_id=task_id,
        project_id=project_id,
        start_at=resolve_date(record, MILESTONE_START_FIELDS, tz),
        due_at=resolve_date(record, MILESTONE_DUE_FIELDS, tz),
        actual_end_at=resolve_date(record, ACTUAL_END_FIELDS, tz),
        created_at=resolve_date(record, CREATED_FIELDS, tz),
        raw_status=raw,
        status=canonical_status(raw, completed=bool(record.get("completed"))),
        is_roadblock=bool(is_roadblock),
        kind=record.get("kind") or record.get("type"),
        depends_on=_id_list(depends),
        blocked_by=_id_list(record.get("blockedBy")),
    )


def normalize_rows(
    rows: List[Dict[str, Any]],
    build: Callable[..., R],
    tz: Optional[tzinfo] = None,
    **parent: Any,
) -> List[R]:
    """
    Build every record in ``rows``; a record whose builder still fails is
    logged and left out so the rest of the list survives.
    """
    out: List[R] = []
    for i, raw in enumerate(rows):
        try:
            out.append(build(raw, i, tz, **parent))
        except (ValueError, TypeError, OverflowError) as e:
            logger.warning("Skipping malformed record %r: %s", record_id(raw) or i, e)
    return out


def unwrap_rows(payload: Any) -> List[Dict[str, Any]]:
    """Endpoints return either a bare list or a ``{"rows": [...]}`` envelope."""
    if isinstance(payload, Mapping):
        payload = payload.get("rows")
    if not isinstance(payload, (list, tuple)):
        return []
    return [r for r in payload if isinstance(r, Mapping)]
