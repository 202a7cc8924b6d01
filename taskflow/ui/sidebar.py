from __future__ import annotations

import re
from datetime import datetime
from html import escape
from typing import Callable, Dict, Iterable, List, Optional

import streamlit as st

from taskflow.gravatar import avatar_url as gravatar_avatar_url
from taskflow.notifications import NotificationCenter
from taskflow.ui.nav import CURRENT_PAGE_KEY, NAV_STATE_KEY, PENDING_NAV_KEY

_INBOX_LIMIT = 10

_SIDEBAR_CSS = """
<style>
.sb-header-card { padding: 0.4rem 0 0.8rem; }
.sb-title { font-size: 1.4rem; margin: 0; }
.sb-tagline { margin: 0; opacity: 0.7; font-size: 0.85rem; }
.sb-profile-card { display: flex; gap: 0.6rem; align-items: center; margin: 0.8rem 0 0.4rem; }
.sb-profile-avatar { width: 36px; height: 36px; border-radius: 50%; background: #3B82F6;
  color: #fff; display: flex; align-items: center; justify-content: center; font-weight: 600;
  overflow: hidden; }
.sb-profile-avatar img { width: 100%; height: 100%; object-fit: cover; }
.sb-profile-avatar:not(.has-image)::after { content: attr(data-initials); }
.sb-profile-name { font-weight: 600; }
.sb-profile-email { font-size: 0.8rem; opacity: 0.7; }
.sb-footer-line { margin-top: 1.2rem; font-size: 0.75rem; opacity: 0.6; display: flex; gap: 0.4rem; }
</style>
"""


# ----------------------------- Public API --------------------------------- #

def build_sidebar(
    *,
    current: str,
    nav_keys: Iterable[str],
    nav_labels: Dict[str, str],
    app_title: str,
    app_tagline: str,
    app_version: str,
    logout: Callable[[], None],
    notifications: Optional[NotificationCenter] = None,
) -> None:
    """Render navigation, the signed-in profile, the notification inbox and sign out."""
    nav_options: List[str] = list(nav_keys)

    with st.sidebar:
        st.markdown(_SIDEBAR_CSS, unsafe_allow_html=True)
        st.markdown(_build_header_html(app_title, app_tagline), unsafe_allow_html=True)

        if nav_options:
            _build_nav(current, nav_options, nav_labels)

        auth = st.session_state.get("auth", {})
        user = auth.get("user")
        if auth.get("authenticated") and user:
            st.markdown(_build_profile_html(user), unsafe_allow_html=True)
            if notifications is not None:
                _build_inbox(notifications)
            st.button(
                "Sign out",
                on_click=logout,
                type="secondary",
                key="sidebar-signout",
                use_container_width=True,
            )

        st.markdown(_build_footer_html(app_title, app_version), unsafe_allow_html=True)


__all__ = ["build_sidebar"]


# --------------------------- Internal helpers ------------------------------ #

def _build_header_html(title: str, tagline: str) -> str:
    tagline_html = f"<p class='sb-tagline'>{escape(tagline)}</p>" if tagline else ""
    return (
        f"""
        <div class='sb-header-card' role='banner'>
          <h1 class='sb-title'>✅ {escape(title or "")}</h1>
          {tagline_html}
        </div>
        """.strip()
    )


def _build_nav(current: str, options: List[str], display_map: Dict[str, str]) -> None:
    key = NAV_STATE_KEY

    pending = st.session_state.pop(PENDING_NAV_KEY, None)
    if pending in options:
        st.session_state[key] = pending

    selection = st.session_state.get(key)
    if selection not in options:
        st.session_state[key] = current if current in options else options[0]

    def _handle_change() -> None:
        target = st.session_state.get(key)
        if target in options:
            st.session_state[CURRENT_PAGE_KEY] = target

    st.radio(
        "Navigate",
        options=options,
        format_func=lambda k: display_map.get(k, k),
        key=key,
        label_visibility="collapsed",
        on_change=_handle_change,
    )


def _display_name(user: Dict[str, object]) -> str:
    metadata = user.get("user_metadata") or {}
    return (
        str(metadata.get("name") or "")
        or str(metadata.get("full_name") or "")
        or str(user.get("email") or "")
        or "TaskFlow user"
    )


def _build_profile_html(user: Dict[str, object]) -> str:
    name = _display_name(user)
    email = str(user.get("email") or "")
    metadata = user.get("user_metadata") or {}
    image = str(metadata.get("avatar_url") or "") or (gravatar_avatar_url(email, 72) or "")
    initials = _compute_initials(name) or "TF"
    avatar_classes = "sb-profile-avatar" + (" has-image" if image else "")
    avatar_inner = f"<img src='{escape(image)}' alt='' loading='lazy' decoding='async'/>" if image else ""
    email_line = f"<div class='sb-profile-email'>{escape(email)}</div>" if email and email != name else ""
    return (
        f"""
        <div class='sb-profile-card'>
          <div class='{avatar_classes}' data-initials='{escape(initials)}'>{avatar_inner}</div>
          <div class='sb-profile-meta'>
            <div class='sb-profile-name'>{escape(name)}</div>
            {email_line}
          </div>
        </div>
        """.strip()
    )


def _build_inbox(center: NotificationCenter) -> None:
    unread = center.unread_count
    label = f"🔔 Notifications ({unread})" if unread else "🔔 Notifications"
    with st.expander(label, expanded=False):
        items = center.notifications[:_INBOX_LIMIT]
        if not items:
            st.caption("No notifications")
            return
        for item in items:
            when = datetime.fromtimestamp(item.timestamp).strftime("%H:%M")
            marker = "" if item.read else "• "
            st.markdown(f"{item.icon} {marker}**{escape(item.title)}** · {when}")
            if item.message:
                st.caption(item.message)
        c1, c2 = st.columns(2)
        if c1.button("Mark all read", key="sidebar-notif-read", disabled=not unread):
            center.mark_all_as_read()
            st.rerun()
        if c2.button("Clear", key="sidebar-notif-clear"):
            center.clear_all()
            st.rerun()


def _build_footer_html(title: str, version: str) -> str:
    return (
        f"""
        <footer class='sb-footer-line' aria-label='Application version'>
          <span class='sb-footer-title'>{escape(title or "")}</span>
          <span class='sb-version'>v{escape(version or "")}</span>
        </footer>
        """.strip()
    )


# ----------------------------- Utilities ---------------------------------- #

_INITIALS_RE = re.compile(r"\w", re.UNICODE)


def _compute_initials(name: str, max_len: int = 2) -> str:
    """Extract up to max_len initials from name."""
    parts = [p for p in re.split(r"[\s@._-]+", name.strip()) if p]
    chars: List[str] = []
    for part in parts:
        m = _INITIALS_RE.search(part)
        if m:
            chars.append(m.group(0).upper())
        if len(chars) >= max_len:
            break
    return "".join(chars)[:max_len]
