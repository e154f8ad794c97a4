from __future__ import annotations

from typing import Any, Literal, Optional, Tuple

CanonicalStatus = Literal["pending", "started", "paused", "paused-problem", "finished"]
ColorKey = Literal["pending", "started", "paused", "paused-problem", "finished-actual", "finished-planned"]

CANONICAL_STATUSES: Tuple[str, ...] = ("pending", "started", "paused", "paused-problem", "finished")

# Evaluated top to bottom; the first set containing the token wins.
_SYNONYMS: Tuple[Tuple[str, frozenset], ...] = (
    ("finished", frozenset({"finished", "complete", "completed", "closed", "done"})),
    (
        "paused-problem",
        frozenset({"paused - problem", "paused-problem", "problem", "blocked", "block", "issue"}),
    ),
    ("paused", frozenset({"paused", "pause", "on hold", "on-hold", "hold"})),
    (
        "started",
        frozenset({"started", "start", "in-progress", "in progress", "open", "active", "running"}),
    ),
)

STATUS_COLORS = {
    "pending": "#60A5FA",  # blue
    "started": "#10B981",  # green
    "paused": "#F59E0B",  # amber
    "paused-problem": "#EF4444",  # red
    "finished-actual": "#9CA3AF",  # gray
    "finished-planned": "#6B7280",  # darker gray
}
OVERDUE_COLOR = "#EF4444"

STATUS_LABELS = {
    "pending": "Pending",
    "started": "Active",
    "paused": "Paused",
    "paused-problem": "Blocked",
    "finished-actual": "Closed",
    "finished-planned": "Closed (planned)",
}


def _normalize_status_token(value: Any) -> str:
    s = str(value if value is not None else "").strip().lower()
    return " ".join(s.split())


def canonical_status(raw: Any = None, *, completed: Optional[bool] = None) -> CanonicalStatus:
    """
    Map a free-text status to one of the five canonical values.

    Never raises. An empty status with ``completed=True`` is "finished";
    anything unrecognized is "pending".
    """
    token = _normalize_status_token(raw)
    if not token:
        return "finished" if completed else "pending"
    for canonical, synonyms in _SYNONYMS:
        if token in synonyms:
            return canonical  # type: ignore[return-value]
    return "pending"


def is_finished(status: Any) -> bool:
    return canonical_status(status) == "finished"


def color_key(status: Any, *, has_actual_end: bool = False) -> ColorKey:
    """Finished items split on whether an actual completion date was recorded."""
    cs = canonical_status(status)
    if cs == "finished":
        return "finished-actual" if has_actual_end else "finished-planned"
    return cs


def status_color(status: Any, *, has_actual_end: bool = False) -> str:
    return STATUS_COLORS[color_key(status, has_actual_end=has_actual_end)]
