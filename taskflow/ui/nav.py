"""Page switching for the TaskFlow sidebar."""

import streamlit as st

NAV_STATE_KEY = "sidebar_nav"
CURRENT_PAGE_KEY = "current_page"
PENDING_NAV_KEY = "sidebar_nav_pending"


def go(page: str) -> None:
    """Switch to the given page by updating session state and forcing a rerun."""
    st.session_state[CURRENT_PAGE_KEY] = page
    # the nav radio may already be rendered this run; the sidebar applies this next run
    st.session_state[PENDING_NAV_KEY] = page
    st.rerun()


__all__ = ["go"]
