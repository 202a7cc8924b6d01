"""Bulk operations, validation and JSON/CSV import-export of task data.

Export produces the backup format shared with earlier TaskFlow releases::

    {"tasks": [...], "categories": [...], "exportedAt": "<iso>", "version": "1.0"}

Imports run categories first so imported tasks can be re-pointed at the
category rows of the importing account.
"""
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from dateutil.relativedelta import relativedelta

from taskflow.data_sanitize import assert_jsonable, clean_jsonable
from taskflow.db_tables import (
    CATEGORIES,
    DESCRIPTION_MAX_LEN,
    EXPORT_VERSION,
    IMPORT_CATEGORY_COLOR,
    PRIORITIES,
    TASKS,
    TITLE_MAX_LEN,
    TITLE_SHORT_LEN,
)
from taskflow.errors import REMOTE_ERRORS, format_api_error
from taskflow.services import tasks as task_service
from taskflow.services.tasks import resolve_client
from taskflow.time_utils import parse_datetime, utc_iso, utc_now
from taskflow.utils.supa import first_row

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "Title",
    "Description",
    "Completed",
    "Priority",
    "Category",
    "Due Date",
    "Created At",
    "Updated At",
]
_BULK_WORKERS = 8
_FETCH_ERRORS = REMOTE_ERRORS + (RuntimeError,)


# ----------------------------- Data Models -------------------------------- #

@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class BulkOperationResult:
    success: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class ImportStats:
    tasks_imported: int = 0
    categories_imported: int = 0
    tasks_skipped: int = 0
    categories_skipped: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class ExportData:
    tasks: List[Dict[str, Any]]
    categories: List[Dict[str, Any]]
    exported_at: str = field(default_factory=utc_iso)
    version: str = EXPORT_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks": self.tasks,
            "categories": self.categories,
            "exportedAt": self.exported_at,
            "version": self.version,
        }


# ------------------------------ Validation -------------------------------- #

def validate_task_data(data: Mapping[str, Any]) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    title = data.get("title")
    if not title or not isinstance(title, str):
        errors.append("Task title is required and must be a string")
    else:
        title = title.strip()
        if not title:
            errors.append("Task title cannot be empty")
        elif len(title) > TITLE_MAX_LEN:
            errors.append(f"Task title must be {TITLE_MAX_LEN} characters or less")
        elif len(title) < TITLE_SHORT_LEN:
            warnings.append("Task title is very short - consider being more descriptive")

    description = data.get("description")
    if isinstance(description, str) and len(description) > DESCRIPTION_MAX_LEN:
        errors.append(f"Task description must be {DESCRIPTION_MAX_LEN} characters or less")

    priority = data.get("priority")
    if priority and priority not in PRIORITIES:
        errors.append("Task priority must be one of: low, medium, high")

    due_raw = data.get("due_date")
    if due_raw:
        due = parse_datetime(due_raw)
        if due is None:
            errors.append("Due date must be a valid date")
        else:
            now = utc_now()
            if due < now:
                warnings.append("Due date is in the past")
            elif due > now + relativedelta(years=1):
                warnings.append(
                    "Due date is more than a year away - consider breaking this into smaller tasks"
                )

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def sanitize_task_data(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only well-formed task form fields, trimmed and truncated."""
    sanitized: Dict[str, Any] = {}

    title = data.get("title")
    if isinstance(title, str) and title:
        sanitized["title"] = title.strip()[:TITLE_MAX_LEN]

    description = data.get("description")
    if isinstance(description, str) and description:
        sanitized["description"] = description.strip()[:DESCRIPTION_MAX_LEN]

    priority = data.get("priority")
    if priority in PRIORITIES:
        sanitized["priority"] = priority

    if data.get("category_id"):
        sanitized["category_id"] = data["category_id"]

    due = parse_datetime(data.get("due_date"))
    if due is not None:
        sanitized["due_date"] = utc_iso(due)

    return sanitized


# --------------------------- Bulk operations ------------------------------ #

def _run_bulk(items: Sequence[Any], op: Callable[[Any], None]) -> BulkOperationResult:
    """Attempt ``op`` for every item independently and tally the outcomes."""

    def _attempt(item: Any) -> Optional[str]:
        try:
            op(item)
        except (RuntimeError, ValueError) as exc:
            return str(exc)
        return None

    with ThreadPoolExecutor(max_workers=min(_BULK_WORKERS, len(items))) as executor:
        outcomes = list(executor.map(_attempt, items))

    errors = [msg for msg in outcomes if msg is not None]
    return BulkOperationResult(success=len(items) - len(errors), failed=len(errors), errors=errors)


def bulk_delete_tasks(task_ids: Sequence[str], user_id: str, *, client=None) -> BulkOperationResult:
    if not task_ids or not user_id:
        return BulkOperationResult(errors=["Task IDs and User ID are required"])
    sb = resolve_client(client)

    def _delete(task_id: str) -> None:
        try:
            sb.table(TASKS).delete().eq("id", task_id).eq("user_id", user_id).execute()
        except REMOTE_ERRORS as exc:
            raise RuntimeError(f"Failed to delete task {task_id}: {format_api_error('Delete', exc)}") from exc

    result = _run_bulk(list(task_ids), _delete)
    logger.info("Bulk delete for %s: %d ok, %d failed", user_id, result.success, result.failed)
    return result


def bulk_update_tasks(
    updates: Sequence[Tuple[str, Mapping[str, Any]]], user_id: str, *, client=None
) -> BulkOperationResult:
    """Apply ``(task_id, fields)`` pairs independently of each other."""
    if not updates or not user_id:
        return BulkOperationResult(errors=["Updates and User ID are required"])
    sb = resolve_client(client)

    def _update(item: Tuple[str, Mapping[str, Any]]) -> None:
        task_id, fields = item
        try:
            task_service.update_task(task_id, fields, user_id, client=sb)
        except RuntimeError as exc:
            raise RuntimeError(f"Failed to update task {task_id}: {exc}") from exc

    result = _run_bulk(list(updates), _update)
    logger.info("Bulk update for %s: %d ok, %d failed", user_id, result.success, result.failed)
    return result


def bulk_set_completed(task_ids: Sequence[str], completed: bool, user_id: str, *, client=None) -> BulkOperationResult:
    return bulk_update_tasks([(tid, {"completed": completed}) for tid in task_ids], user_id, client=client)


def bulk_set_priority(task_ids: Sequence[str], priority: str, user_id: str, *, client=None) -> BulkOperationResult:
    if priority not in PRIORITIES:
        return BulkOperationResult(errors=["Task priority must be one of: low, medium, high"])
    return bulk_update_tasks([(tid, {"priority": priority}) for tid in task_ids], user_id, client=client)


def bulk_set_category(
    task_ids: Sequence[str], category_id: Optional[str], user_id: str, *, client=None
) -> BulkOperationResult:
    return bulk_update_tasks(
        [(tid, {"category_id": category_id or None}) for tid in task_ids], user_id, client=client
    )


# -------------------------------- Export ---------------------------------- #

def export_user_data(user_id: str, *, client=None) -> Optional[ExportData]:
    """Fetch both tables for an export; returns ``None`` (logged) on failure."""
    if not user_id:
        logger.error("Export failed: User ID is required")
        return None
    try:
        sb = resolve_client(client)
        tasks = (
            sb.table(TASKS).select("*").eq("user_id", user_id)
            .order("created_at", desc=True).execute()
        )
        categories = (
            sb.table(CATEGORIES).select("*").eq("user_id", user_id)
            .order("created_at", desc=True).execute()
        )
    except _FETCH_ERRORS as exc:
        logger.error("Export failed: %s", exc)
        return None
    return ExportData(tasks=list(tasks.data or []), categories=list(categories.data or []))


def export_to_json(data: ExportData) -> str:
    payload = clean_jsonable(data.to_dict())
    assert_jsonable(payload)
    return json.dumps(payload, ensure_ascii=False, indent=2)


def tasks_to_csv(tasks: Sequence[Mapping[str, Any]], categories: Sequence[Mapping[str, Any]]) -> str:
    names = {c.get("id"): c.get("name") for c in categories}
    rows = []
    for task in tasks:
        category_id = task.get("category_id")
        rows.append({
            "Title": task.get("title") or "",
            "Description": task.get("description") or "",
            "Completed": "Yes" if task.get("completed") else "No",
            "Priority": task.get("priority") or "medium",
            "Category": (names.get(category_id) or "Unknown") if category_id else "",
            "Due Date": task.get("due_date") or "",
            "Created At": task.get("created_at") or "",
            "Updated At": task.get("updated_at") or "",
        })
    df = pd.DataFrame(rows, columns=CSV_HEADERS)
    return df.to_csv(index=False)


def backup_filename(today: Optional[date] = None) -> str:
    return f"taskflow-backup-{(today or utc_now().date()).isoformat()}.json"


def csv_filename(today: Optional[date] = None) -> str:
    return f"taskflow-tasks-{(today or utc_now().date()).isoformat()}.csv"


def create_backup(user_id: str, *, client=None) -> Tuple[bool, str]:
    """Return ``(True, json_text)`` or ``(False, error_message)``."""
    data = export_user_data(user_id, client=client)
    if data is None:
        return False, "Failed to export user data"
    try:
        return True, export_to_json(data)
    except RuntimeError as exc:
        return False, f"Backup failed: {exc}"


# -------------------------------- Import ---------------------------------- #

def parse_import_data(text: str) -> Tuple[Optional[ExportData], List[str]]:
    """Parse and validate a backup document; errors use 1-based item numbers."""
    errors: List[str] = []
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        return None, ["Invalid JSON format"]

    if not isinstance(parsed, dict):
        return None, ["Invalid data format"]

    tasks = parsed.get("tasks")
    categories = parsed.get("categories")
    if not isinstance(tasks, list):
        errors.append("Tasks data must be an array")
    if not isinstance(categories, list):
        errors.append("Categories data must be an array")
    if errors:
        return None, errors

    for index, task in enumerate(tasks, start=1):
        task = task if isinstance(task, dict) else {}
        if not task.get("title") or not isinstance(task.get("title"), str):
            errors.append(f"Task {index}: Missing or invalid title")
        if task.get("priority") and task.get("priority") not in PRIORITIES:
            errors.append(f"Task {index}: Invalid priority value")

    for index, category in enumerate(categories, start=1):
        category = category if isinstance(category, dict) else {}
        if not category.get("name") or not isinstance(category.get("name"), str):
            errors.append(f"Category {index}: Missing or invalid name")

    if errors:
        return None, errors
    return (
        ExportData(
            tasks=tasks,
            categories=categories,
            exported_at=str(parsed.get("exportedAt") or parsed.get("exported_at") or ""),
            version=str(parsed.get("version") or EXPORT_VERSION),
        ),
        [],
    )


def _find_id(sb, table: str, user_id: str, column: str, value: Any) -> Optional[str]:
    response = (
        sb.table(table).select("id").eq("user_id", user_id).eq(column, value).limit(1).execute()
    )
    row = first_row(response)
    return row.get("id") if row else None


def _import_categories(sb, data: ExportData, user_id: str, stats: ImportStats,
                       skip_duplicates: bool, update_existing: bool) -> Dict[Any, Any]:
    """Import categories; returns exported category id -> id in this account."""
    id_map: Dict[Any, Any] = {}
    for category in data.categories:
        name = category.get("name")
        try:
            existing_id = _find_id(sb, CATEGORIES, user_id, "name", name)
            if existing_id and skip_duplicates:
                stats.categories_skipped += 1
                id_map[category.get("id")] = existing_id
                continue
            if existing_id and update_existing:
                sb.table(CATEGORIES).update(
                    {"color": category.get("color") or IMPORT_CATEGORY_COLOR, "updated_at": utc_iso()}
                ).eq("id", existing_id).execute()
                id_map[category.get("id")] = existing_id
            else:
                response = sb.table(CATEGORIES).insert({
                    "name": name,
                    "color": category.get("color") or IMPORT_CATEGORY_COLOR,
                    "user_id": user_id,
                }).execute()
                row = first_row(response)
                if row:
                    id_map[category.get("id")] = row.get("id")
            stats.categories_imported += 1
        except REMOTE_ERRORS as exc:
            stats.errors.append(f"Failed to import category \"{name}\": {format_api_error('Import', exc)}")
    return id_map


def _import_tasks(sb, data: ExportData, user_id: str, stats: ImportStats, id_map: Dict[Any, Any],
                  skip_duplicates: bool, update_existing: bool) -> None:
    for task in data.tasks:
        title = task.get("title")
        validation = validate_task_data(task)
        if not validation.is_valid:
            stats.errors.append(f"Invalid task \"{title}\": {', '.join(validation.errors)}")
            stats.tasks_skipped += 1
            continue
        try:
            existing_id = _find_id(sb, TASKS, user_id, "title", title)
            if existing_id and skip_duplicates:
                stats.tasks_skipped += 1
                continue

            fields = sanitize_task_data(task)
            fields["category_id"] = id_map.get(task.get("category_id")) if task.get("category_id") else None

            if existing_id and update_existing:
                fields["updated_at"] = utc_iso()
                sb.table(TASKS).update(fields).eq("id", existing_id).execute()
            else:
                fields.update({
                    "user_id": user_id,
                    "completed": bool(task.get("completed")),
                    "order_index": task_service.next_order_index(user_id, client=sb),
                })
                sb.table(TASKS).insert(fields).execute()
            stats.tasks_imported += 1
        except _FETCH_ERRORS as exc:
            message = format_api_error("Import", exc) if isinstance(exc, REMOTE_ERRORS) else str(exc)
            stats.errors.append(f"Error processing task \"{title}\": {message}")
            stats.tasks_skipped += 1


def import_user_data(
    data: ExportData,
    user_id: str,
    *,
    skip_duplicates: bool = False,
    update_existing: bool = False,
    client=None,
) -> ImportStats:
    """Import a parsed backup. Per-item failures are collected, never raised.

    Duplicates are matched by category name and task title. With neither
    option set, matching rows are inserted again.
    """
    stats = ImportStats()
    if not user_id:
        stats.errors.append("Import failed: User ID is required")
        return stats
    sb = resolve_client(client)
    id_map = _import_categories(sb, data, user_id, stats, skip_duplicates, update_existing)
    _import_tasks(sb, data, user_id, stats, id_map, skip_duplicates, update_existing)
    logger.info(
        "Imported %d tasks / %d categories for %s (%d errors)",
        stats.tasks_imported, stats.categories_imported, user_id, len(stats.errors),
    )
    return stats


# --------------------------------- Stats ---------------------------------- #

def get_data_stats(user_id: str, *, client=None) -> Optional[Dict[str, Any]]:
    try:
        sb = resolve_client(client)
        tasks = (
            sb.table(TASKS).select("id, created_at, completed").eq("user_id", user_id).execute().data
            or []
        )
        categories = (
            sb.table(CATEGORIES).select("id, created_at").eq("user_id", user_id).execute().data
            or []
        )
    except _FETCH_ERRORS as exc:
        logger.error("Failed to get data stats: %s", exc)
        return None

    now = pd.Timestamp(utc_now())
    frame = pd.DataFrame(tasks, columns=["id", "created_at", "completed"])
    created = pd.to_datetime(frame["created_at"], utc=True, errors="coerce", format="ISO8601")
    completed = int(frame["completed"].eq(True).sum())
    total = len(frame)
    size = len(json.dumps(clean_jsonable({"tasks": tasks, "categories": categories})))
    # counts come back as NumPy scalars
    return clean_jsonable({
        "total_tasks": total,
        "total_categories": len(categories),
        "completed_tasks": completed,
        "completion_rate": round(completed / total * 100) if total else 0,
        "recent_tasks": (created >= now - pd.Timedelta(days=30)).sum(),
        "weekly_tasks": (created >= now - pd.Timedelta(days=7)).sum(),
        "data_size_kb": round(size / 1024),
    })


__all__ = [
    "BulkOperationResult",
    "CSV_HEADERS",
    "ExportData",
    "ImportStats",
    "ValidationResult",
    "backup_filename",
    "bulk_delete_tasks",
    "bulk_set_category",
    "bulk_set_completed",
    "bulk_set_priority",
    "bulk_update_tasks",
    "create_backup",
    "csv_filename",
    "export_to_json",
    "export_user_data",
    "get_data_stats",
    "import_user_data",
    "parse_import_data",
    "sanitize_task_data",
    "tasks_to_csv",
]
