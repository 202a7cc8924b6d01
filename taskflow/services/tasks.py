"""Service layer for tasks and categories.

All direct Supabase interactions for tasks and categories live here so the
Streamlit pages and the reconciliation store stay free of query-building
code. Every call is scoped to the owning ``user_id`` in addition to the
row-level policies on the Supabase side.

Functions accept an optional ``client`` so the CLI can pass its own
authenticated client; the UI uses the client of the current browser session.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from taskflow.db_tables import (
    CATEGORIES,
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_PRIORITY,
    PRIORITIES,
    TASKS,
)
from taskflow.errors import REMOTE_ERRORS, TaskError, task_error_from_api
from taskflow.time_utils import utc_iso
from taskflow.utils.supa import first_row

__all__ = [
    "fetch_tasks",
    "create_task",
    "update_task",
    "delete_task",
    "reorder_tasks",
    "next_order_index",
    "fetch_categories",
    "create_category",
    "update_category",
    "delete_category",
    "TASK_UPDATE_FIELDS",
    "CATEGORY_UPDATE_FIELDS",
    "resolve_client",
]

logger = logging.getLogger(__name__)

TASK_UPDATE_FIELDS = frozenset(
    {"title", "description", "completed", "category_id", "priority", "due_date", "order_index"}
)
CATEGORY_UPDATE_FIELDS = frozenset({"name", "color"})


def resolve_client(client=None):
    if client is not None:
        return client
    from taskflow.supabase_client import get_client

    resolved = get_client()
    if resolved is None:  # pragma: no cover
        raise RuntimeError("Supabase client not configured")
    return resolved


def _require(**values: Optional[str]) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ValueError(f"{' and '.join(missing)} required")


def _fail(context: str, exc: Exception) -> TaskError:
    logger.error("%s failed: %s", context, exc)
    return task_error_from_api(context, exc)


def _clean_updates(updates: Mapping[str, Any], allowed: Iterable[str]) -> Dict[str, Any]:
    allowed_keys = set(allowed)
    clean = {key: value for key, value in updates.items() if key in allowed_keys}
    if "title" in clean and isinstance(clean["title"], str):
        clean["title"] = clean["title"].strip()
    if "name" in clean and isinstance(clean["name"], str):
        clean["name"] = clean["name"].strip()
    if "priority" in clean and clean["priority"] not in PRIORITIES:
        raise ValueError("priority must be one of: low, medium, high")
    clean["updated_at"] = utc_iso()
    return clean


# ---------------------------------------------------------------- tasks


def fetch_tasks(user_id: str, *, client=None) -> List[Dict[str, Any]]:
    """Return every task of ``user_id`` in display order."""
    _require(user_id=user_id)
    try:
        response = (
            resolve_client(client)
            .table(TASKS)
            .select("*")
            .eq("user_id", user_id)
            .order("order_index", desc=False)
            .order("created_at", desc=True)
            .execute()
        )
    except REMOTE_ERRORS as exc:
        raise _fail("Fetch tasks", exc) from exc
    return list(response.data or [])


def next_order_index(user_id: str, *, client=None) -> int:
    """One past the highest ``order_index`` the user has, starting at 1."""
    try:
        response = (
            resolve_client(client)
            .table(TASKS)
            .select("order_index")
            .eq("user_id", user_id)
            .order("order_index", desc=True)
            .limit(1)
            .execute()
        )
    except REMOTE_ERRORS as exc:
        raise _fail("Fetch order index", exc) from exc
    row = first_row(response)
    if not row:
        return 1
    return int(row.get("order_index") or 0) + 1


def create_task(form: Mapping[str, Any], user_id: str, *, client=None) -> Dict[str, Any]:
    """Insert a task at the end of the user's list and return the stored row."""
    _require(user_id=user_id)
    title = str(form.get("title") or "").strip()
    if not title:
        raise ValueError("title is required")
    priority = form.get("priority") or DEFAULT_PRIORITY
    if priority not in PRIORITIES:
        raise ValueError("priority must be one of: low, medium, high")

    sb = resolve_client(client)
    payload = {
        "title": title,
        "description": str(form.get("description") or "").strip(),
        "completed": False,
        "priority": priority,
        "category_id": form.get("category_id") or None,
        "due_date": form.get("due_date") or None,
        "user_id": user_id,
        "order_index": next_order_index(user_id, client=sb),
    }
    try:
        response = sb.table(TASKS).insert(payload).execute()
    except REMOTE_ERRORS as exc:
        raise _fail("Create task", exc) from exc
    row = first_row(response)
    if not row:
        raise TaskError("Create task: Supabase did not return the created task")
    logger.info("Created task %s for user %s", row.get("id"), user_id)
    return row


def update_task(
    task_id: str, updates: Mapping[str, Any], user_id: str, *, client=None
) -> Dict[str, Any]:
    """Apply ``updates`` to one task. Keys absent from ``updates`` are left untouched."""
    _require(task_id=task_id, user_id=user_id)
    patch = _clean_updates(updates, TASK_UPDATE_FIELDS)
    try:
        response = (
            resolve_client(client)
            .table(TASKS)
            .update(patch)
            .eq("id", task_id)
            .eq("user_id", user_id)
            .execute()
        )
    except REMOTE_ERRORS as exc:
        raise _fail("Update task", exc) from exc
    row = first_row(response)
    if not row:
        raise TaskError(f"Update task: task {task_id} not found")
    return row


def delete_task(task_id: str, user_id: str, *, client=None) -> None:
    _require(task_id=task_id, user_id=user_id)
    try:
        resolve_client(client).table(TASKS).delete().eq("id", task_id).eq("user_id", user_id).execute()
    except REMOTE_ERRORS as exc:
        raise _fail("Delete task", exc) from exc
    logger.info("Deleted task %s for user %s", task_id, user_id)


def reorder_tasks(task_ids: Sequence[str], user_id: str, *, client=None) -> None:
    """Persist ``task_ids`` as the new order (``order_index`` starts at 1).

    Every row is attempted; the first failure is raised afterwards.
    """
    if not task_ids or not user_id:
        raise ValueError("task_ids and user_id required")
    sb = resolve_client(client)
    stamp = utc_iso()
    failures: List[Exception] = []
    for position, task_id in enumerate(task_ids, start=1):
        try:
            (
                sb.table(TASKS)
                .update({"order_index": position, "updated_at": stamp})
                .eq("id", task_id)
                .eq("user_id", user_id)
                .execute()
            )
        except REMOTE_ERRORS as exc:
            failures.append(exc)
    if failures:
        raise _fail("Reorder tasks", failures[0]) from failures[0]


# ----------------------------------------------------------- categories


def fetch_categories(user_id: str, *, client=None) -> List[Dict[str, Any]]:
    _require(user_id=user_id)
    try:
        response = (
            resolve_client(client)
            .table(CATEGORIES)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=False)
            .execute()
        )
    except REMOTE_ERRORS as exc:
        raise _fail("Fetch categories", exc) from exc
    return list(response.data or [])


def create_category(form: Mapping[str, Any], user_id: str, *, client=None) -> Dict[str, Any]:
    _require(user_id=user_id)
    name = str(form.get("name") or "").strip()
    if not name:
        raise ValueError("name is required")
    payload = {
        "name": name,
        "color": form.get("color") or DEFAULT_CATEGORY_COLOR,
        "user_id": user_id,
    }
    try:
        response = resolve_client(client).table(CATEGORIES).insert(payload).execute()
    except REMOTE_ERRORS as exc:
        raise _fail("Create category", exc) from exc
    row = first_row(response)
    if not row:
        raise TaskError("Create category: Supabase did not return the created category")
    return row


def update_category(
    category_id: str, updates: Mapping[str, Any], user_id: str, *, client=None
) -> Dict[str, Any]:
    _require(category_id=category_id, user_id=user_id)
    patch = _clean_updates(updates, CATEGORY_UPDATE_FIELDS)
    if "name" in patch and not patch["name"]:
        raise ValueError("name cannot be empty")
    try:
        response = (
            resolve_client(client)
            .table(CATEGORIES)
            .update(patch)
            .eq("id", category_id)
            .eq("user_id", user_id)
            .execute()
        )
    except REMOTE_ERRORS as exc:
        raise _fail("Update category", exc) from exc
    row = first_row(response)
    if not row:
        raise TaskError(f"Update category: category {category_id} not found")
    return row


def delete_category(category_id: str, user_id: str, *, client=None) -> None:
    """Detach the category from the user's tasks, then delete it."""
    _require(category_id=category_id, user_id=user_id)
    sb = resolve_client(client)
    try:
        (
            sb.table(TASKS)
            .update({"category_id": None})
            .eq("category_id", category_id)
            .eq("user_id", user_id)
            .execute()
        )
        sb.table(CATEGORIES).delete().eq("id", category_id).eq("user_id", user_id).execute()
    except REMOTE_ERRORS as exc:
        raise _fail("Delete category", exc) from exc
