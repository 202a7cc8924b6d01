"""Streamlit authentication gate backed by Supabase auth."""

from __future__ import annotations

import logging
from typing import Dict

import streamlit as st

from taskflow.app_state import notify, reset_state
from taskflow.config import APP_TAGLINE, APP_TITLE
from taskflow.errors import AuthenticationError
from taskflow.supabase_client import (
    OAUTH_PROVIDERS,
    current_user,
    exchange_oauth_code,
    oauth_sign_in_url,
    reset_password,
    sign_in as supabase_sign_in,
    sign_out as supabase_sign_out,
    sign_up as supabase_sign_up,
    update_password,
)

logger = logging.getLogger(__name__)

_LAST_EMAIL_KEY = "login__last_email"
_RECOVERY_KEY = "login__recovery"
_OAUTH_URL_KEY = "login__oauth_url"
_MIN_PASSWORD_LEN = 6

_PROVIDER_LABELS = {"google": "Continue with Google", "github": "Continue with GitHub"}


def _ensure_auth_state() -> Dict[str, object]:
    return st.session_state.setdefault("auth", {"authenticated": False, "user": None})


def logout() -> None:
    """Terminate the Supabase session and drop per-user state."""
    supabase_sign_out()
    reset_state()
    st.session_state.pop(_RECOVERY_KEY, None)


def _validate_credentials(email: str, password: str) -> bool:
    if not email:
        st.warning("Email is required.")
        return False
    if not password:
        st.warning("Password is required.")
        return False
    return True


def _handle_callback() -> None:
    """Finish OAuth and password-recovery redirects that carry a ``code``."""
    params = st.query_params
    code = params.get("code")
    if not code:
        return
    flow = params.get("flow", "oauth")
    ref = params.get("ref")
    st.query_params.clear()
    st.session_state.pop(_OAUTH_URL_KEY, None)
    try:
        exchange_oauth_code(code, ref)
    except AuthenticationError as exc:
        st.session_state["auth"]["last_error"] = str(exc)
        return
    if flow == "recovery":
        st.session_state[_RECOVERY_KEY] = True
    else:
        notify("success", "Signed in", "Welcome back!")


def _render_sign_in() -> None:
    with st.form("login_form", clear_on_submit=False):
        email = st.text_input(
            "Email",
            value=st.session_state.get(_LAST_EMAIL_KEY, ""),
            autocomplete="email",
            placeholder="you@example.com",
        )
        password = st.text_input(
            "Password",
            type="password",
            autocomplete="current-password",
            placeholder="Enter your password",
        )
        submitted = st.form_submit_button("Sign in", type="primary", use_container_width=True)

    if not submitted:
        return
    email = email.strip()
    st.session_state[_LAST_EMAIL_KEY] = email
    if not _validate_credentials(email, password):
        return
    try:
        supabase_sign_in(email=email, password=password)
    except AuthenticationError as exc:
        st.error(str(exc))
        return
    notify("success", "Signed in", "Welcome back!")
    st.rerun()


def _render_sign_up() -> None:
    with st.form("signup_form", clear_on_submit=False):
        name = st.text_input("Name", placeholder="Your name")
        email = st.text_input("Email", autocomplete="email", placeholder="you@example.com")
        password = st.text_input("Password", type="password", autocomplete="new-password")
        confirm = st.text_input("Confirm password", type="password", autocomplete="new-password")
        submitted = st.form_submit_button("Create account", type="primary", use_container_width=True)

    if not submitted:
        return
    email = email.strip()
    if not _validate_credentials(email, password):
        return
    if len(password) < _MIN_PASSWORD_LEN:
        st.warning(f"Password must be at least {_MIN_PASSWORD_LEN} characters.")
        return
    if password != confirm:
        st.warning("Passwords do not match.")
        return
    try:
        message = supabase_sign_up(email, password, name.strip())
    except AuthenticationError as exc:
        st.error(str(exc))
        return
    if message:
        st.info(message)
        return
    notify("success", "Account created", "Welcome to TaskFlow!")
    st.rerun()


def _render_forgot_password() -> None:
    with st.form("forgot_form"):
        email = st.text_input("Email", autocomplete="email", placeholder="you@example.com")
        submitted = st.form_submit_button("Send reset link", use_container_width=True)
    if not submitted:
        return
    email = email.strip()
    if not email:
        st.warning("Email is required.")
        return
    try:
        st.success(reset_password(email))
    except AuthenticationError as exc:
        st.error(str(exc))


def _render_oauth_buttons() -> None:
    """Build the provider URL only on click; each call replaces the stored PKCE verifier."""
    st.caption("Or continue with")
    cols = st.columns(len(OAUTH_PROVIDERS))
    for col, provider in zip(cols, OAUTH_PROVIDERS):
        label = _PROVIDER_LABELS.get(provider, provider.title())
        if col.button(label, key=f"login__oauth_{provider}", use_container_width=True):
            try:
                st.session_state[_OAUTH_URL_KEY] = (provider, oauth_sign_in_url(provider))
            except AuthenticationError as exc:
                logger.warning("OAuth provider %s unavailable: %s", provider, exc)
                st.error(str(exc))
    pending = st.session_state.get(_OAUTH_URL_KEY)
    if pending:
        provider, url = pending
        st.link_button(f"Open {provider.title()} sign-in", url, type="primary", use_container_width=True)


def _render_recovery() -> None:
    """Let a user who followed a reset link choose a new password."""
    st.markdown("### Choose a new password")
    with st.form("recovery_form"):
        password = st.text_input("New password", type="password", autocomplete="new-password")
        confirm = st.text_input("Confirm password", type="password", autocomplete="new-password")
        submitted = st.form_submit_button("Update password", type="primary")
    if not submitted:
        st.stop()
    if len(password) < _MIN_PASSWORD_LEN or password != confirm:
        st.warning(f"Passwords must match and be at least {_MIN_PASSWORD_LEN} characters.")
        st.stop()
    try:
        update_password(password)
    except AuthenticationError as exc:
        st.error(str(exc))
        st.stop()
    st.session_state.pop(_RECOVERY_KEY, None)
    notify("success", "Password updated", "Your password has been changed.")
    st.rerun()


def login(title: str = APP_TITLE) -> None:
    """Render the authentication forms and stop the script until signed in."""

    auth_state = _ensure_auth_state()
    _handle_callback()

    if current_user():
        if st.session_state.get(_RECOVERY_KEY):
            _render_recovery()
        return

    last_error = auth_state.pop("last_error", None)

    _, center, _ = st.columns([1, 2, 1])
    with center:
        st.markdown(f"## {title}")
        st.caption(APP_TAGLINE)
        if last_error:
            st.warning(last_error)
        tab_in, tab_up, tab_reset = st.tabs(["Sign in", "Sign up", "Forgot password"])
        with tab_in:
            _render_sign_in()
        with tab_up:
            _render_sign_up()
        with tab_reset:
            _render_forgot_password()
        _render_oauth_buttons()

    st.stop()


__all__ = ["login", "logout"]
