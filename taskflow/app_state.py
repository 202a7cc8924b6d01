"""Per-session wiring of the reconciliation store, realtime feeds and notifications."""
from __future__ import annotations

import logging
from typing import List, Optional

import streamlit as st

from taskflow.config import load_settings
from taskflow.notifications import NotificationCenter
from taskflow.services.realtime import (
    RealtimeSubscription,
    subscribe_to_categories,
    subscribe_to_tasks,
)
from taskflow.supabase_client import session_tokens
from taskflow.task_store import TaskStore

logger = logging.getLogger(__name__)

_STORE_KEY = "taskflow__store"
_NOTIFICATIONS_KEY = "taskflow__notifications"
_REALTIME_KEY = "taskflow__realtime"
_SEEN_VERSION_KEY = "taskflow__seen_version"
LIVE_POLL_SECONDS = 2


def get_notifications() -> NotificationCenter:
    center = st.session_state.get(_NOTIFICATIONS_KEY)
    if center is None:
        center = NotificationCenter(default_duration=load_settings().notification_duration)
        st.session_state[_NOTIFICATIONS_KEY] = center
    return center


def notify(kind: str, title: str, message: str = "", duration: Optional[float] = None) -> None:
    """Queue a notification; it shows as a toast on the next render tick."""
    get_notifications().add(kind, title, message, duration=duration)


def render_toasts() -> None:
    center = get_notifications()
    for notification in center.take_unshown():
        text = f"**{notification.title}**"
        if notification.message:
            text += f"  \n{notification.message}"
        st.toast(text, icon=notification.icon)
    center.prune()


def _stop_realtime() -> None:
    subs: List[RealtimeSubscription] = st.session_state.pop(_REALTIME_KEY, None) or []
    for sub in subs:
        sub.unsubscribe()


def _start_realtime(store: TaskStore) -> None:
    if not load_settings().realtime or not store.user_id:
        return
    subs: List[RealtimeSubscription] = st.session_state.get(_REALTIME_KEY) or []
    if subs and all(sub.active for sub in subs):
        return
    _stop_realtime()
    tokens = session_tokens()
    st.session_state[_REALTIME_KEY] = [
        subscribe_to_tasks(store.user_id, store.apply_task_change, tokens=tokens),
        subscribe_to_categories(store.user_id, store.apply_category_change, tokens=tokens),
    ]


def get_store(user_id: Optional[str]) -> TaskStore:
    """Return the session's store for ``user_id``, loading it on first use."""
    store: Optional[TaskStore] = st.session_state.get(_STORE_KEY)
    if store is None or store.user_id != user_id:
        _stop_realtime()
        store = TaskStore(user_id)
        store.load()
        st.session_state[_STORE_KEY] = store
    _start_realtime(store)
    return store


def realtime_active() -> bool:
    subs: List[RealtimeSubscription] = st.session_state.get(_REALTIME_KEY) or []
    return bool(subs) and all(sub.active for sub in subs)


def mark_rendered(store: TaskStore) -> None:
    st.session_state[_SEEN_VERSION_KEY] = store.version


@st.fragment(run_every=LIVE_POLL_SECONDS)
def watch_remote_changes(store: TaskStore) -> None:
    """Rerun the app once realtime events have changed the store since the last render."""
    if store.version != st.session_state.get(_SEEN_VERSION_KEY, store.version):
        st.rerun()


def reset_state() -> None:
    """Drop per-user state on sign-out."""
    _stop_realtime()
    st.session_state.pop(_STORE_KEY, None)
    st.session_state.pop(_SEEN_VERSION_KEY, None)
    get_notifications().clear_all()


__all__ = [
    "get_notifications",
    "get_store",
    "mark_rendered",
    "notify",
    "realtime_active",
    "render_toasts",
    "reset_state",
    "watch_remote_changes",
]
