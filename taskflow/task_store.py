"""In-memory reconciliation store for one user's tasks and categories.

The store holds the last-known lists, applies local mutations once the
remote call succeeds (reordering is applied optimistically and rolled back
by reloading), and merges realtime change events by record id. Remote
failures never raise out of the store: the message is kept in ``error`` for
a few seconds and the operation returns ``False``.

Realtime events arrive on listener threads, so every read and write of the
lists goes through one lock. Conflicts resolve as last write wins.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from taskflow.change_events import DELETE, INSERT, UPDATE, ChangeEvent
from taskflow.services import tasks as task_service
from taskflow.task_filters import TaskStats, compute_stats, move_task

__all__ = ["TaskStore", "NOT_AUTHENTICATED"]

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "User not authenticated"
ERROR_TTL_SECONDS = 5.0


def _by_order(task: Dict[str, Any]) -> Any:
    return task.get("order_index") or 0


def _by_name(category: Dict[str, Any]) -> str:
    return str(category.get("name") or "").casefold()


class TaskStore:
    def __init__(
        self,
        user_id: Optional[str],
        *,
        client=None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.user_id = user_id
        self._client = client
        self._clock = clock
        self._lock = threading.RLock()
        self._tasks: List[Dict[str, Any]] = []
        self._categories: List[Dict[str, Any]] = []
        self._error: Optional[str] = None
        self._error_at = 0.0
        self.loading = False
        self.version = 0

    # ------------------------------------------------------------ state

    @property
    def tasks(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(t) for t in self._tasks]

    @property
    def categories(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(c) for c in self._categories]

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            if self._error and self._clock() - self._error_at >= ERROR_TTL_SECONDS:
                self._error = None
            return self._error

    @property
    def stats(self) -> TaskStats:
        with self._lock:
            return compute_stats(self._tasks, self._categories)

    def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            for task in self._tasks:
                if task.get("id") == task_id:
                    return dict(task)
        return None

    def index_of(self, task_id: str) -> int:
        with self._lock:
            for index, task in enumerate(self._tasks):
                if task.get("id") == task_id:
                    return index
        return -1

    def _set_error(self, message: str) -> None:
        with self._lock:
            self._error = message
            self._error_at = self._clock()
        logger.warning("Task store error: %s", message)

    def clear_error(self) -> None:
        with self._lock:
            self._error = None

    def _touch(self) -> None:
        self.version += 1

    def _authenticated(self) -> bool:
        if not self.user_id:
            self._set_error(NOT_AUTHENTICATED)
            return False
        return True

    # ------------------------------------------------------------ loading

    def load(self) -> bool:
        """Fetch both lists. A failing list keeps its previous contents."""
        if not self.user_id:
            with self._lock:
                self._tasks = []
                self._categories = []
                self._touch()
            return True

        self.loading = True
        ok = True
        try:
            try:
                tasks = task_service.fetch_tasks(self.user_id, client=self._client)
            except (RuntimeError, ValueError) as exc:
                self._set_error(str(exc))
                ok = False
            else:
                with self._lock:
                    self._tasks = tasks
                    self._touch()

            try:
                categories = task_service.fetch_categories(self.user_id, client=self._client)
            except (RuntimeError, ValueError) as exc:
                self._set_error(str(exc))
                ok = False
            else:
                with self._lock:
                    self._categories = categories
                    self._touch()
        finally:
            self.loading = False
        return ok

    refresh = load

    # ------------------------------------------------------------ tasks

    def create_task(self, form: Mapping[str, Any]) -> bool:
        if not self._authenticated():
            return False
        try:
            row = task_service.create_task(form, self.user_id, client=self._client)
        except (RuntimeError, ValueError) as exc:
            self._set_error(str(exc))
            return False
        with self._lock:
            if all(t.get("id") != row.get("id") for t in self._tasks):
                self._tasks.append(row)
            self._touch()
        return True

    def update_task(self, task_id: str, updates: Mapping[str, Any]) -> bool:
        if not self._authenticated():
            return False
        try:
            row = task_service.update_task(task_id, updates, self.user_id, client=self._client)
        except (RuntimeError, ValueError) as exc:
            self._set_error(str(exc))
            return False
        with self._lock:
            self._tasks = [row if t.get("id") == task_id else t for t in self._tasks]
            self._touch()
        return True

    def delete_task(self, task_id: str) -> bool:
        if not self._authenticated():
            return False
        try:
            task_service.delete_task(task_id, self.user_id, client=self._client)
        except (RuntimeError, ValueError) as exc:
            self._set_error(str(exc))
            return False
        with self._lock:
            self._tasks = [t for t in self._tasks if t.get("id") != task_id]
            self._touch()
        return True

    def reorder_tasks(self, source_index: int, destination_index: int) -> bool:
        """Move one task optimistically, persist the order, reload on failure."""
        if not self._authenticated():
            return False
        with self._lock:
            try:
                reordered = move_task(self._tasks, source_index, destination_index)
            except IndexError as exc:
                self._set_error(str(exc))
                return False
            self._tasks = reordered
            for position, task in enumerate(self._tasks, start=1):
                task["order_index"] = position
            task_ids = [t.get("id") for t in self._tasks]
            self._touch()

        try:
            task_service.reorder_tasks(task_ids, self.user_id, client=self._client)
        except (RuntimeError, ValueError) as exc:
            self._set_error(str(exc))
            self.load()
            return False
        return True

    def move_task_by_id(self, task_id: str, offset: int,
                        visible_ids: Optional[Sequence[str]] = None) -> bool:
        """Shift a task ``offset`` places among ``visible_ids`` (all tasks by default).

        The task takes the full-list position of the visible neighbour it
        passes, so tasks hidden by filters are stepped over.
        """
        with self._lock:
            order = [t.get("id") for t in self._tasks]
        if visible_ids is None:
            steps = order
        else:
            shown = set(visible_ids)
            steps = [i for i in order if i in shown]
        if task_id not in steps:
            self._set_error(f"Task {task_id} not found")
            return False
        position = steps.index(task_id)
        target = steps[max(0, min(len(steps) - 1, position + offset))]
        if target == task_id:
            return True
        return self.reorder_tasks(order.index(task_id), order.index(target))

    # ------------------------------------------------------------ categories

    def create_category(self, form: Mapping[str, Any]) -> bool:
        if not self._authenticated():
            return False
        try:
            row = task_service.create_category(form, self.user_id, client=self._client)
        except (RuntimeError, ValueError) as exc:
            self._set_error(str(exc))
            return False
        with self._lock:
            if all(c.get("id") != row.get("id") for c in self._categories):
                self._categories.append(row)
            self._touch()
        return True

    def update_category(self, category_id: str, updates: Mapping[str, Any]) -> bool:
        if not self._authenticated():
            return False
        try:
            row = task_service.update_category(
                category_id, updates, self.user_id, client=self._client
            )
        except (RuntimeError, ValueError) as exc:
            self._set_error(str(exc))
            return False
        with self._lock:
            self._categories = [row if c.get("id") == category_id else c for c in self._categories]
            self._touch()
        return True

    def delete_category(self, category_id: str) -> bool:
        if not self._authenticated():
            return False
        try:
            task_service.delete_category(category_id, self.user_id, client=self._client)
        except (RuntimeError, ValueError) as exc:
            self._set_error(str(exc))
            return False
        with self._lock:
            self._categories = [c for c in self._categories if c.get("id") != category_id]
            for task in self._tasks:
                if task.get("category_id") == category_id:
                    task["category_id"] = None
            self._touch()
        return True

    # ------------------------------------------------------------ realtime

    def apply_task_change(self, payload: Any) -> bool:
        """Merge one realtime task event. Returns ``True`` when state changed."""
        event = ChangeEvent.from_payload(payload)
        if event is None:
            return False
        with self._lock:
            changed = _merge(self._tasks, event, _by_order)
            if changed:
                self._touch()
            return changed

    def apply_category_change(self, payload: Any) -> bool:
        event = ChangeEvent.from_payload(payload)
        if event is None:
            return False
        with self._lock:
            changed = _merge(self._categories, event, _by_name)
            if changed:
                self._touch()
            return changed


def _merge(records: List[Dict[str, Any]], event: ChangeEvent, sort_key) -> bool:
    """Apply ``event`` to ``records`` in place, keyed by ``id``."""
    if event.event_type == INSERT:
        record_id = event.new.get("id")
        if record_id is None or any(r.get("id") == record_id for r in records):
            return False
        records.append(dict(event.new))
        records.sort(key=sort_key)
        return True

    if event.event_type == UPDATE:
        record_id = event.new.get("id")
        for record in records:
            if record.get("id") != record_id:
                continue
            if all(record.get(key) == value for key, value in event.new.items()):
                return False
            record.update(event.new)
            records.sort(key=sort_key)
            return True
        return False

    if event.event_type == DELETE:
        record_id = event.old.get("id")
        before = len(records)
        records[:] = [r for r in records if r.get("id") != record_id]
        return len(records) != before

    return False
