"""Pure helpers for filtering, sorting, reordering and summarising task lists."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from taskflow.db_tables import PRIORITIES, PRIORITY_RANK
from taskflow.time_utils import is_past, parse_datetime, utc_now

SORT_OPTIONS = ("order_index", "created_at", "due_date", "priority", "title")
ALL_CATEGORIES = "all"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class TaskFilters:
    """Filter and sort state of the task list view."""
    search: str = ""
    show_completed: bool = True
    category: Optional[str] = None
    priority: Optional[str] = None
    sort_by: str = "order_index"
    sort_order: str = "asc"


@dataclass
class TaskStats:
    total: int = 0
    completed: int = 0
    pending: int = 0
    overdue: int = 0
    urgent: int = 0
    by_priority: Dict[str, int] = field(default_factory=lambda: {p: 0 for p in PRIORITIES})
    by_category: Dict[str, int] = field(default_factory=dict)

    @property
    def completion_rate(self) -> int:
        if not self.total:
            return 0
        return round(self.completed / self.total * 100)


def _matches_search(task: Dict[str, Any], term: str) -> bool:
    if not term:
        return True
    title = str(task.get("title") or "").lower()
    description = str(task.get("description") or "").lower()
    return term in title or term in description


def filter_tasks(
    tasks: Iterable[Dict[str, Any]],
    search: str = "",
    show_completed: bool = True,
    category: Optional[str] = None,
    priority: Optional[str] = None,
) -> List[Dict[str, Any]]:
    term = (search or "").strip().lower()
    out = []
    for task in tasks:
        if not _matches_search(task, term):
            continue
        if not show_completed and task.get("completed"):
            continue
        if category and category != ALL_CATEGORIES and task.get("category_id") != category:
            continue
        if priority and task.get("priority") != priority:
            continue
        out.append(task)
    return out


def sort_tasks(tasks: Iterable[Dict[str, Any]], sort_by: str = "created_at") -> List[Dict[str, Any]]:
    """Return a new list ordered the way the task list displays ``sort_by``.

    ``due_date`` puts undated tasks last; ``priority`` is high to low;
    ``created_at`` (the fallback for unknown keys) is newest first.
    """
    items = list(tasks)
    if sort_by == "title":
        return sorted(items, key=lambda t: str(t.get("title") or "").casefold())
    if sort_by == "due_date":
        dated = [t for t in items if parse_datetime(t.get("due_date"))]
        undated = [t for t in items if not parse_datetime(t.get("due_date"))]
        dated.sort(key=lambda t: parse_datetime(t.get("due_date")))
        return dated + undated
    if sort_by == "priority":
        return sorted(items, key=lambda t: PRIORITY_RANK.get(t.get("priority"), 0), reverse=True)
    if sort_by == "order_index":
        return sorted(items, key=lambda t: t.get("order_index") or 0)
    return sorted(
        items,
        key=lambda t: parse_datetime(t.get("created_at")) or _EPOCH,
        reverse=True,
    )


def apply_filters(tasks: Iterable[Dict[str, Any]], filters: TaskFilters) -> List[Dict[str, Any]]:
    visible = filter_tasks(
        tasks,
        search=filters.search,
        show_completed=filters.show_completed,
        category=filters.category,
        priority=filters.priority,
    )
    ordered = sort_tasks(visible, filters.sort_by)
    if filters.sort_order == "desc":
        ordered.reverse()
    return ordered


def move_task(tasks: Sequence[Dict[str, Any]], source: int, destination: int) -> List[Dict[str, Any]]:
    """Return a copy of ``tasks`` with the item at ``source`` moved to ``destination``."""
    size = len(tasks)
    if not 0 <= source < size or not 0 <= destination < size:
        raise IndexError(f"move {source} -> {destination} outside list of {size}")
    items = list(tasks)
    moved = items.pop(source)
    items.insert(destination, moved)
    return items


def task_counts_by_category(tasks: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for task in tasks:
        category_id = task.get("category_id")
        if category_id:
            counts[category_id] = counts.get(category_id, 0) + 1
    return counts


def compute_stats(
    tasks: Sequence[Dict[str, Any]],
    categories: Sequence[Dict[str, Any]] = (),
    now: Optional[datetime] = None,
) -> TaskStats:
    now = now or utc_now()
    stats = TaskStats(total=len(tasks))
    for task in tasks:
        done = bool(task.get("completed"))
        priority = task.get("priority")
        if done:
            stats.completed += 1
        else:
            stats.pending += 1
            if is_past(task.get("due_date"), now):
                stats.overdue += 1
            if priority == "high":
                stats.urgent += 1
        if priority in stats.by_priority:
            stats.by_priority[priority] += 1
    counts = task_counts_by_category(tasks)
    stats.by_category = {str(c.get("id")): counts.get(c.get("id"), 0) for c in categories}
    return stats


__all__ = [
    "ALL_CATEGORIES",
    "SORT_OPTIONS",
    "TaskFilters",
    "TaskStats",
    "apply_filters",
    "compute_stats",
    "filter_tasks",
    "move_task",
    "sort_tasks",
    "task_counts_by_category",
]
