"""Data management page.

Backups are generated in-memory and offered as download buttons; imports
read an uploaded JSON backup. Supabase remains the source of truth.
"""

from __future__ import annotations

import streamlit as st

from taskflow.app_state import get_store, notify
from taskflow.data_management import (
    backup_filename,
    create_backup,
    csv_filename,
    get_data_stats,
    import_user_data,
    parse_import_data,
    tasks_to_csv,
)
from taskflow.supabase_client import current_user_id


def _render_stats(user_id: str) -> None:
    st.markdown("### 📊 Your data")
    stats = get_data_stats(user_id)
    if stats is None:
        st.caption("Statistics are unavailable right now.")
        return
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Tasks", stats["total_tasks"])
    c2.metric("Categories", stats["total_categories"])
    c3.metric("Completion", f"{stats['completion_rate']}%")
    c4.metric("Size", f"{stats['data_size_kb']} KB")
    st.caption(
        f"{stats['recent_tasks']} task(s) created in the last 30 days, "
        f"{stats['weekly_tasks']} in the last 7."
    )


def _render_export(user_id: str) -> None:
    st.markdown("### ⬇️ Export")
    store = get_store(user_id)
    c1, c2 = st.columns(2)
    with c1:
        if st.button("Prepare JSON backup", key="data__prepare_backup", use_container_width=True):
            ok, payload = create_backup(user_id)
            if ok:
                st.session_state["data__backup"] = payload
            else:
                notify("error", "Export Failed", payload)
        payload = st.session_state.get("data__backup")
        if payload:
            st.download_button(
                "Download JSON",
                payload.encode("utf-8"),
                file_name=backup_filename(),
                mime="application/json",
                key="data__download_json",
                use_container_width=True,
            )
    with c2:
        csv = tasks_to_csv(store.tasks, store.categories).encode("utf-8")
        st.download_button(
            "Download CSV",
            csv,
            file_name=csv_filename(),
            mime="text/csv",
            key="data__download_csv",
            use_container_width=True,
            disabled=not store.tasks,
        )


def _render_import(user_id: str) -> None:
    st.markdown("### ⬆️ Import")
    uploaded = st.file_uploader("TaskFlow backup (.json)", type=["json"], key="data__upload")
    c1, c2 = st.columns(2)
    skip_duplicates = c1.checkbox("Skip duplicates", value=True, key="data__skip_dupes")
    update_existing = c2.checkbox(
        "Update existing", value=False, key="data__update_existing", disabled=skip_duplicates
    )
    if uploaded is None:
        return
    if not st.button("Import", type="primary", key="data__import"):
        return

    text = uploaded.getvalue().decode("utf-8", errors="replace")
    data, errors = parse_import_data(text)
    if data is None:
        st.error("The file is not a valid TaskFlow backup.")
        for err in errors:
            st.caption(f"• {err}")
        return

    with st.spinner("Importing…"):
        stats = import_user_data(
            data,
            user_id,
            skip_duplicates=skip_duplicates,
            update_existing=update_existing and not skip_duplicates,
        )

    summary = (
        f"{stats.tasks_imported} task(s) and {stats.categories_imported} categor(ies) imported; "
        f"{stats.tasks_skipped} task(s) and {stats.categories_skipped} categor(ies) skipped."
    )
    if stats.errors:
        notify("warning", "Import Finished With Errors", summary)
        with st.expander(f"{len(stats.errors)} import error(s)"):
            for err in stats.errors:
                st.caption(f"• {err}")
    else:
        notify("success", "Import Complete", summary)
    get_store(user_id).load()
    st.session_state.pop("data__backup", None)


def show_data_page() -> None:
    st.title("🗄️ Data")
    user_id = current_user_id()
    if not user_id:
        st.warning("Sign in to manage your data.")
        return
    _render_stats(user_id)
    st.divider()
    _render_export(user_id)
    st.divider()
    _render_import(user_id)


__all__ = ["show_data_page"]
