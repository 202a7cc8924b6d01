"""Streamlit dashboard: stats, categories and the task list.

UI concerns only; state lives in :class:`taskflow.task_store.TaskStore` and
bulk operations in :mod:`taskflow.data_management`.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

import plotly.graph_objects as go
import streamlit as st

from taskflow.app_state import get_store, notify, realtime_active
from taskflow.data_management import (
    BulkOperationResult,
    bulk_delete_tasks,
    bulk_set_category,
    bulk_set_completed,
    bulk_set_priority,
    validate_task_data,
)
from taskflow.db_tables import CATEGORY_COLORS, DEFAULT_CATEGORY_COLOR, DEFAULT_PRIORITY, PRIORITIES
from taskflow.supabase_client import current_user_id
from taskflow.task_filters import ALL_CATEGORIES, SORT_OPTIONS, TaskFilters, TaskStats, apply_filters
from taskflow.task_store import TaskStore
from taskflow.time_utils import format_ts, is_past, parse_datetime
from taskflow.ui.nav import go as go_to_page

# ---------------------------- Constants & Keys ---------------------------- #

PAGE_KEY_PREFIX = "dash_"
PRIORITY_ICONS = {"high": "🔴", "medium": "🟡", "low": "🟢"}
PRIORITY_COLORS = {"high": "#ef4444", "medium": "#f59e0b", "low": "#22c55e"}
SORT_LABELS = {
    "order_index": "Custom order",
    "created_at": "Newest first",
    "due_date": "Due date",
    "priority": "Priority",
    "title": "Title",
}


def k(suffix: str) -> str:
    return PAGE_KEY_PREFIX + suffix


SEARCH_KEY = k("search")
SHOW_DONE_KEY = k("show_completed")
CATEGORY_KEY = k("category")
PRIORITY_KEY = k("priority")
SORT_KEY = k("sort_by")
SELECTED_KEY = k("selected")


def init_state() -> None:
    ss = st.session_state
    ss.setdefault(SEARCH_KEY, "")
    ss.setdefault(SHOW_DONE_KEY, True)
    ss.setdefault(CATEGORY_KEY, ALL_CATEGORIES)
    ss.setdefault(PRIORITY_KEY, "")
    ss.setdefault(SORT_KEY, "order_index")
    ss.setdefault(SELECTED_KEY, set())
    ss.setdefault(k("edit_id"), None)
    ss.setdefault(k("delete_id"), None)


def current_filters() -> TaskFilters:
    ss = st.session_state
    return TaskFilters(
        search=ss.get(SEARCH_KEY, ""),
        show_completed=bool(ss.get(SHOW_DONE_KEY, True)),
        category=ss.get(CATEGORY_KEY) or ALL_CATEGORIES,
        priority=ss.get(PRIORITY_KEY) or None,
        sort_by=ss.get(SORT_KEY, "order_index"),
    )


def _category_lookup(categories: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {str(c.get("id")): c for c in categories}


def _clear_selection() -> None:
    st.session_state[SELECTED_KEY] = set()
    for key in [key for key in st.session_state if str(key).startswith(k("sel_"))]:
        del st.session_state[key]


def _report_failure(store: TaskStore, title: str) -> None:
    notify("error", title, store.error or "Please try again.")


def _report_bulk(result: BulkOperationResult, action: str) -> None:
    if result.failed:
        notify("warning", f"{action} partially failed", f"{result.success} done, {result.failed} failed")
    elif result.success:
        notify("success", action, f"{result.success} task(s) updated")
    for err in result.errors[:3]:
        notify("error", f"{action} error", err)


# ------------------------------ Rendering --------------------------------- #

def render_header(stats: TaskStats) -> None:
    st.title("✅ Dashboard")
    cols = st.columns(5)
    cols[0].metric("Total", stats.total)
    cols[1].metric("Completed", stats.completed, f"{stats.completion_rate}%", delta_color="off")
    cols[2].metric("Pending", stats.pending)
    cols[3].metric("Overdue", stats.overdue)
    cols[4].metric("Urgent", stats.urgent)


def render_priority_chart(stats: TaskStats) -> None:
    if not stats.total:
        return
    fig = go.Figure(
        go.Bar(
            x=[stats.by_priority.get(p, 0) for p in PRIORITIES],
            y=[p.title() for p in PRIORITIES],
            orientation="h",
            marker_color=[PRIORITY_COLORS[p] for p in PRIORITIES],
        )
    )
    fig.update_layout(height=180, margin=dict(l=10, r=10, t=10, b=10), xaxis_title="Tasks")
    st.plotly_chart(fig, use_container_width=True)


def render_categories(store: TaskStore, stats: TaskStats) -> None:
    categories = store.categories
    with st.expander("🏷️ Categories", expanded=False):
        options = [ALL_CATEGORIES] + [str(c.get("id")) for c in categories]
        lookup = _category_lookup(categories)

        def _label(value: str) -> str:
            if value == ALL_CATEGORIES:
                return f"All tasks ({stats.total})"
            cat = lookup.get(value, {})
            return f"{cat.get('name', 'Unknown')} ({stats.by_category.get(value, 0)})"

        if st.session_state.get(CATEGORY_KEY) not in options:
            st.session_state[CATEGORY_KEY] = ALL_CATEGORIES
        st.radio("Show", options, format_func=_label, key=CATEGORY_KEY, horizontal=True)

        with st.form(k("new_category"), clear_on_submit=True):
            c1, c2, c3 = st.columns([3, 1, 1])
            name = c1.text_input("New category", placeholder="e.g. Work")
            color = c2.color_picker("Colour", value=CATEGORY_COLORS[len(categories) % len(CATEGORY_COLORS)])
            c3.write("")
            if c3.form_submit_button("Add", use_container_width=True):
                if not name.strip():
                    st.warning("Category name is required.")
                elif store.create_category({"name": name, "color": color}):
                    notify("success", "Category Created", f"'{name.strip()}' added")
                    st.rerun()
                else:
                    _report_failure(store, "Create Failed")

        for cat in categories:
            cid = str(cat.get("id"))
            c1, c2, c3, c4 = st.columns([3, 1, 1, 1])
            new_name = c1.text_input("Name", value=cat.get("name", ""), key=k(f"cat_name_{cid}"),
                                     label_visibility="collapsed")
            new_color = c2.color_picker("Colour", value=cat.get("color") or DEFAULT_CATEGORY_COLOR,
                                        key=k(f"cat_color_{cid}"), label_visibility="collapsed")
            if c3.button("💾", key=k(f"cat_save_{cid}"), help="Save category"):
                if store.update_category(cid, {"name": new_name, "color": new_color}):
                    notify("success", "Category Updated", f"'{new_name.strip()}' saved")
                    st.rerun()
                else:
                    _report_failure(store, "Update Failed")
            if c4.button("🗑️", key=k(f"cat_del_{cid}"), help="Delete category"):
                if store.delete_category(cid):
                    notify("success", "Category Deleted", f"'{cat.get('name', '')}' removed")
                    st.rerun()
                else:
                    _report_failure(store, "Delete Failed")


def _category_select(label: str, categories: List[Dict[str, Any]], key: str,
                     current: Optional[str] = None) -> Optional[str]:
    options = [""] + [str(c.get("id")) for c in categories]
    lookup = _category_lookup(categories)
    index = options.index(current) if current in options else 0
    choice = st.selectbox(label, options, index=index, key=key,
                          format_func=lambda v: lookup.get(v, {}).get("name", "No category") if v else "No category")
    return choice or None


def _show_validation(form: Dict[str, Any]) -> bool:
    result = validate_task_data(form)
    for err in result.errors:
        st.error(err)
    for warning in result.warnings:
        st.warning(warning)
    return result.is_valid


def render_create_form(store: TaskStore) -> None:
    categories = store.categories
    with st.expander("➕ New task", expanded=not store.tasks):
        with st.form(k("create"), clear_on_submit=True):
            title = st.text_input("Title", placeholder="What needs to be done?")
            description = st.text_area("Description", height=80)
            c1, c2, c3 = st.columns(3)
            with c1:
                priority = st.selectbox("Priority", PRIORITIES, index=PRIORITIES.index(DEFAULT_PRIORITY),
                                        format_func=lambda p: f"{PRIORITY_ICONS[p]} {p.title()}")
            with c2:
                category_id = _category_select("Category", categories, k("create_category"))
            with c3:
                due: Optional[date] = st.date_input("Due date", value=None)
            submitted = st.form_submit_button("Create task", type="primary")

        if not submitted:
            return
        form = {
            "title": title,
            "description": description,
            "priority": priority,
            "category_id": category_id,
            "due_date": due.isoformat() if due else None,
        }
        if not _show_validation(form):
            return
        if store.create_task(form):
            notify("success", "Task Created", f"'{title.strip()}' added")
            st.rerun()
        else:
            _report_failure(store, "Create Failed")


def render_filters(store: TaskStore) -> None:
    c1, c2, c3, c4, c5 = st.columns([3, 1.4, 1.4, 1.2, 0.8])
    c1.text_input("Search", key=SEARCH_KEY, placeholder="Search title or description",
                  label_visibility="collapsed")
    c2.selectbox("Priority", [""] + list(PRIORITIES), key=PRIORITY_KEY, label_visibility="collapsed",
                 format_func=lambda p: f"{PRIORITY_ICONS[p]} {p.title()}" if p else "Any priority")
    c3.selectbox("Sort", SORT_OPTIONS, key=SORT_KEY, label_visibility="collapsed",
                 format_func=lambda s: SORT_LABELS.get(s, s))
    c4.toggle("Completed", key=SHOW_DONE_KEY)
    if c5.button("🔄", help="Reload from server", use_container_width=True):
        if store.load():
            notify("info", "Refreshed", "Tasks reloaded")
        else:
            _report_failure(store, "Refresh Failed")
        st.rerun()


def render_bulk_actions(store: TaskStore, user_id: str) -> None:
    selected = st.session_state.get(SELECTED_KEY) or set()
    known = {str(t.get("id")) for t in store.tasks}
    selected &= known
    st.session_state[SELECTED_KEY] = selected
    if not selected:
        return

    ids = sorted(selected)
    st.info(f"{len(ids)} task(s) selected")
    cols = st.columns([1, 1, 1.4, 1.6, 1, 1])
    result: Optional[BulkOperationResult] = None
    action = ""
    if cols[0].button("✔️ Complete", key=k("bulk_done")):
        result, action = bulk_set_completed(ids, True, user_id), "Tasks Completed"
    if cols[1].button("↩️ Reopen", key=k("bulk_open")):
        result, action = bulk_set_completed(ids, False, user_id), "Tasks Reopened"
    with cols[2]:
        priority = st.selectbox("Priority", PRIORITIES, key=k("bulk_priority"),
                                label_visibility="collapsed", format_func=lambda p: p.title())
        if st.button("Set priority", key=k("bulk_set_priority")):
            result, action = bulk_set_priority(ids, priority, user_id), "Priority Updated"
    with cols[3]:
        category_id = _category_select("Move to", store.categories, k("bulk_category"))
        if cols[3].button("Move", key=k("bulk_move")):
            result, action = bulk_set_category(ids, category_id, user_id), "Tasks Moved"
    if cols[4].button("🗑️ Delete", key=k("bulk_delete")):
        result, action = bulk_delete_tasks(ids, user_id), "Tasks Deleted"
    if cols[5].button("Clear", key=k("bulk_clear")):
        _clear_selection()
        st.rerun()

    if result is not None:
        _report_bulk(result, action)
        _clear_selection()
        store.load()
        st.rerun()


def _render_edit_form(store: TaskStore, task: Dict[str, Any]) -> None:
    tid = str(task.get("id"))
    due_current = parse_datetime(task.get("due_date"))
    with st.form(k(f"edit_{tid}")):
        title = st.text_input("Title", value=task.get("title") or "")
        description = st.text_area("Description", value=task.get("description") or "", height=80)
        c1, c2, c3 = st.columns(3)
        with c1:
            current_priority = task.get("priority") if task.get("priority") in PRIORITIES else DEFAULT_PRIORITY
            priority = st.selectbox("Priority", PRIORITIES, index=PRIORITIES.index(current_priority))
        with c2:
            category_id = _category_select("Category", store.categories, k(f"edit_cat_{tid}"),
                                           str(task.get("category_id") or ""))
        with c3:
            due = st.date_input("Due date", value=due_current.date() if due_current else None)
        s1, s2 = st.columns(2)
        save = s1.form_submit_button("Save", type="primary")
        cancel = s2.form_submit_button("Cancel")

    if cancel:
        st.session_state[k("edit_id")] = None
        st.rerun()
    if not save:
        return
    updates = {
        "title": title,
        "description": description.strip(),
        "priority": priority,
        "category_id": category_id,
        "due_date": due.isoformat() if due else None,
    }
    if not _show_validation(updates):
        return
    if store.update_task(tid, updates):
        st.session_state[k("edit_id")] = None
        notify("success", "Task Updated", f"'{title.strip()}' saved")
        st.rerun()
    else:
        _report_failure(store, "Update Failed")


def _render_task_row(store: TaskStore, task: Dict[str, Any], lookup: Dict[str, Dict[str, Any]],
                     visible_ids: Optional[List[str]]) -> None:
    tid = str(task.get("id"))
    done = bool(task.get("completed"))
    selected: set = st.session_state[SELECTED_KEY]

    cols = st.columns([0.35, 0.35, 5, 0.45, 0.45, 0.45, 0.45])
    picked = cols[0].checkbox("Select", value=tid in selected, key=k(f"sel_{tid}"),
                              label_visibility="collapsed")
    if picked:
        selected.add(tid)
    else:
        selected.discard(tid)

    toggled = cols[1].checkbox("Done", value=done, key=k(f"done_{tid}"), label_visibility="collapsed")
    if toggled != done:
        if store.update_task(tid, {"completed": toggled}):
            notify("success", "Task Completed" if toggled else "Task Reopened", task.get("title") or "")
        else:
            _report_failure(store, "Update Failed")
        st.rerun()

    with cols[2]:
        title = task.get("title") or ""
        priority = task.get("priority") or DEFAULT_PRIORITY
        st.markdown(f"{PRIORITY_ICONS.get(priority, '')} " + (f"~~{title}~~" if done else f"**{title}**"))
        meta: List[str] = []
        category = lookup.get(str(task.get("category_id") or ""))
        if category:
            meta.append(f"🏷️ {category.get('name', '')}")
        if task.get("due_date"):
            flag = " ⚠️ overdue" if not done and is_past(task.get("due_date")) else ""
            meta.append(f"📅 {format_ts(task.get('due_date'), '%Y-%m-%d')}{flag}")
        if meta:
            st.caption(" · ".join(meta))
        if task.get("description"):
            st.caption(task["description"])

    if visible_ids is not None:
        position = visible_ids.index(tid)
        if cols[3].button("⬆️", key=k(f"up_{tid}"), help="Move up", disabled=position == 0):
            if store.move_task_by_id(tid, -1, visible_ids):
                notify("success", "Tasks Reordered", "Task order saved")
            else:
                _report_failure(store, "Reorder Failed")
            st.rerun()
        if cols[4].button("⬇️", key=k(f"dn_{tid}"), help="Move down",
                          disabled=position == len(visible_ids) - 1):
            if store.move_task_by_id(tid, 1, visible_ids):
                notify("success", "Tasks Reordered", "Task order saved")
            else:
                _report_failure(store, "Reorder Failed")
            st.rerun()
    if cols[5].button("✏️", key=k(f"edit_btn_{tid}"), help="Edit"):
        st.session_state[k("edit_id")] = tid
        st.rerun()
    if cols[6].button("🗑️", key=k(f"del_btn_{tid}"), help="Delete"):
        st.session_state[k("delete_id")] = tid
        st.rerun()

    if st.session_state.get(k("delete_id")) == tid:
        st.warning(f"Delete '{task.get('title')}'? This cannot be undone.")
        d1, d2, _ = st.columns([1, 1, 4])
        if d1.button("Delete", type="primary", key=k(f"confirm_del_{tid}")):
            st.session_state[k("delete_id")] = None
            if store.delete_task(tid):
                selected.discard(tid)
                notify("success", "Task Deleted", task.get("title") or "")
            else:
                _report_failure(store, "Delete Failed")
            st.rerun()
        if d2.button("Cancel", key=k(f"cancel_del_{tid}")):
            st.session_state[k("delete_id")] = None
            st.rerun()

    if st.session_state.get(k("edit_id")) == tid:
        _render_edit_form(store, task)


def render_task_list(store: TaskStore, filters: TaskFilters) -> None:
    tasks = apply_filters(store.tasks, filters)
    if not tasks:
        if store.tasks:
            st.info("No tasks match the current filters.")
            return
        st.info("No tasks yet. Create your first one above or import a backup.")
        if st.button("Go to import", key=k("goto_import")):
            go_to_page("Data")
        return
    lookup = _category_lookup(store.categories)
    visible_ids: Optional[List[str]] = None
    if filters.sort_by == "order_index":
        visible_ids = [str(t.get("id")) for t in tasks]
    else:
        st.caption("Switch the sort to 'Custom order' to reorder tasks.")
    for task in tasks:
        _render_task_row(store, task, lookup, visible_ids)
        st.divider()


# ------------------------------- Entry ------------------------------------ #

def show_dashboard_page() -> None:
    init_state()
    user_id = current_user_id()
    store = get_store(user_id)

    if store.error:
        st.error(store.error)

    stats = store.stats
    render_header(stats)
    render_priority_chart(stats)
    render_categories(store, stats)
    render_create_form(store)

    st.subheader("Tasks")
    if realtime_active():
        st.caption("🟢 Live updates on")
    render_filters(store)
    if user_id:
        render_bulk_actions(store, user_id)
    render_task_list(store, current_filters())


__all__ = ["show_dashboard_page"]
