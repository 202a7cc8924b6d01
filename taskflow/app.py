# file: taskflow/app.py
from __future__ import annotations

import sys
from pathlib import Path

import streamlit as st

# ``streamlit run taskflow/app.py`` executes this file as a script; make the
# project root importable so ``taskflow.*`` resolves to this checkout.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from taskflow.app_state import (  # noqa: E402
    get_notifications,
    get_store,
    mark_rendered,
    realtime_active,
    render_toasts,
    watch_remote_changes,
)
from taskflow.config import APP_TAGLINE, APP_TITLE, APP_VERSION, load_settings  # noqa: E402
from taskflow.dashboard_page import show_dashboard_page  # noqa: E402
from taskflow.data_page import show_data_page  # noqa: E402
from taskflow.logging_setup import configure_logging  # noqa: E402
from taskflow.login import login, logout  # noqa: E402
from taskflow.settings_page import show_settings_page  # noqa: E402
from taskflow.supabase_client import current_user_id  # noqa: E402
from taskflow.ui.nav import CURRENT_PAGE_KEY  # noqa: E402
from taskflow.ui.sidebar import build_sidebar  # noqa: E402

# --------- Nav
NAV_KEYS = ["Dashboard", "Data", "Settings"]
NAV_LABELS = {
    "Dashboard": "📋 Dashboard",
    "Data": "🗄️ Data",
    "Settings": "⚙️ Settings",
}
PAGE_FUNCS = {
    "Dashboard": show_dashboard_page,
    "Data": show_data_page,
    "Settings": show_settings_page,
}


def main() -> None:
    st.set_page_config(page_title=APP_TITLE, page_icon="✅", layout="wide", initial_sidebar_state="expanded")
    configure_logging(load_settings().log_level)

    login()

    if CURRENT_PAGE_KEY not in st.session_state:
        p = st.query_params.get("p", None)
        st.session_state[CURRENT_PAGE_KEY] = p if p in NAV_KEYS else NAV_KEYS[0]

    current = st.session_state.get(CURRENT_PAGE_KEY, NAV_KEYS[0])

    # load tasks and start live updates before any page renders
    store = get_store(current_user_id())

    build_sidebar(
        current=current,
        nav_keys=NAV_KEYS,
        nav_labels=NAV_LABELS,
        app_title=APP_TITLE,
        app_tagline=APP_TAGLINE,
        app_version=APP_VERSION,
        logout=logout,
        notifications=get_notifications(),
    )

    page_func = PAGE_FUNCS.get(current, lambda: st.error("Page not found."))
    page_func()
    render_toasts()

    mark_rendered(store)
    if realtime_active():
        watch_remote_changes(store)


if __name__ == "__main__":
    main()
