from __future__ import annotations

import streamlit as st

from taskflow.app_state import notify
from taskflow.errors import AuthenticationError
from taskflow.gravatar import avatar_url, gravatar_url
from taskflow.supabase_client import current_user, update_password, update_profile

_MIN_PASSWORD_LEN = 6


def _render_profile(user: dict) -> None:
    st.markdown("### 👤 Profile")
    email = str(user.get("email") or "")
    metadata = user.get("user_metadata") or {}
    name = metadata.get("name") or metadata.get("full_name") or ""

    c1, c2 = st.columns([1, 4])
    with c1:
        image = metadata.get("avatar_url") or avatar_url(email, 96) or gravatar_url(email, 96, "mp")
        if image:
            st.image(image, width=96)
    with c2:
        st.markdown(f"**{name or email}**")
        if email:
            st.caption(email)
        if user.get("created_at"):
            st.caption(f"Member since {str(user['created_at'])[:10]}")
        st.caption("Avatars come from [Gravatar](https://gravatar.com).")

    with st.form("settings__profile"):
        new_name = st.text_input("Display name", value=name, max_chars=100)
        submitted = st.form_submit_button("Save profile")
    if not submitted:
        return
    try:
        update_profile(new_name)
    except AuthenticationError as exc:
        notify("error", "Profile Update Failed", str(exc))
        return
    notify("success", "Profile Updated", "Profile updated successfully!")
    st.rerun()


def _render_password_form() -> None:
    st.markdown("### 🔒 Change password")
    with st.form("settings__password", clear_on_submit=True):
        password = st.text_input("New password", type="password", autocomplete="new-password")
        confirm = st.text_input("Confirm password", type="password", autocomplete="new-password")
        submitted = st.form_submit_button("Update password", type="primary")
    if not submitted:
        return
    if len(password) < _MIN_PASSWORD_LEN:
        st.warning(f"Password must be at least {_MIN_PASSWORD_LEN} characters.")
        return
    if password != confirm:
        st.warning("Passwords do not match.")
        return
    try:
        update_password(password)
    except AuthenticationError as exc:
        notify("error", "Password Update Failed", str(exc))
        return
    notify("success", "Password Updated", "Your password has been changed.")


def show_settings_page() -> None:
    st.title("⚙️ Settings")
    user = current_user()
    if not user:
        st.warning("Sign in to view your settings.")
        return
    _render_profile(user)
    st.divider()
    _render_password_form()


__all__ = ["show_settings_page"]
