"""Supabase client and authentication helpers for TaskFlow."""

from __future__ import annotations

import logging
import secrets
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

import streamlit as st
from supabase import AuthApiError, AuthError

from taskflow.config import load_settings
from taskflow.errors import AuthenticationError
from taskflow.utils.supa import SupabaseConfigError, SupabaseConnectionError, create_supabase_client

__all__ = [
    "get_client",
    "sign_in",
    "sign_up",
    "sign_out",
    "reset_password",
    "update_password",
    "update_profile",
    "oauth_sign_in_url",
    "exchange_oauth_code",
    "get_current_user",
    "current_user",
    "current_user_id",
    "is_authenticated",
    "session_value",
    "session_tokens",
]

logger = logging.getLogger(__name__)

_AUTH_STATE_KEY = "auth"
_SESSION_STATE_KEY = "supabase_session"
_CLIENT_STATE_KEY = "supabase_client"
_VERIFIER_SUFFIX = "-code-verifier"
_HANDOFF_TTL_SECONDS = 600.0
_EXPIRED_MSG = "Your session expired. Please sign in again."

OAUTH_PROVIDERS = ("google", "github")


def session_value(session: Any, key: str) -> Any:
    """Safely retrieve values from Supabase session objects or dicts."""

    if session is None:
        return None

    if hasattr(session, key):
        return getattr(session, key)

    if isinstance(session, dict):
        return session.get(key)

    return None


def _ensure_auth_state() -> Dict[str, Any]:
    """Return the mutable auth state dict stored in Streamlit session state."""
    auth = st.session_state.setdefault(_AUTH_STATE_KEY, {})
    auth.setdefault("authenticated", False)
    auth.setdefault("user", None)
    return auth


def _serialize_user(user: Any) -> Optional[Dict[str, Any]]:
    """Convert Supabase user model objects to plain dictionaries."""
    if user is None:
        return None
    if isinstance(user, dict):
        return user
    dump = getattr(user, "model_dump", None)
    if callable(dump):
        data = dump(mode="json")
        if isinstance(data, dict):
            return data
    snapshot: Dict[str, Any] = {}
    for attr in ("id", "email", "user_metadata", "app_metadata", "created_at", "updated_at"):
        value = getattr(user, attr, None)
        if value is not None:
            snapshot[attr] = value
    return snapshot or None


def _store_session(session: Any, user: Any | None = None) -> None:
    """Persist access and refresh tokens plus user metadata in session state."""
    access_token = session_value(session, "access_token")
    refresh_token = session_value(session, "refresh_token")
    session_data: Dict[str, str] = {}
    if access_token:
        session_data["access_token"] = access_token
    if refresh_token:
        session_data["refresh_token"] = refresh_token
    if session_data:
        st.session_state[_SESSION_STATE_KEY] = session_data
    auth = _ensure_auth_state()
    auth["authenticated"] = True
    auth["user"] = _serialize_user(user or session_value(session, "user"))
    auth.pop("last_error", None)


def _clear_session_state(reason: Optional[str] = None) -> None:
    """Reset cached Supabase session data and auth flags."""
    had_tokens = st.session_state.pop(_SESSION_STATE_KEY, None) is not None
    auth = _ensure_auth_state()
    auth["authenticated"] = False
    auth["user"] = None
    if reason and had_tokens:
        auth["last_error"] = reason
    else:
        auth.pop("last_error", None)


def _safe_get_session(client) -> Any | None:
    """Fetch the current Supabase session, clearing state on Auth API errors."""
    try:
        return client.auth.get_session()
    except AuthApiError as exc:
        logger.warning("Supabase get_session failed: %s", exc)
        _clear_session_state(_EXPIRED_MSG)
        return None


def _apply_saved_session(client) -> None:
    """Sync Supabase client auth with tokens stored in session state."""
    current = _safe_get_session(client)
    stored = st.session_state.get(_SESSION_STATE_KEY)
    current_access = session_value(current, "access_token") if current else None

    if stored:
        access_token = stored.get("access_token")
        refresh_token = stored.get("refresh_token")
        if access_token and refresh_token and access_token != current_access:
            try:
                response = client.auth.set_session(access_token, refresh_token)
            except AuthError as exc:
                logger.warning("Supabase set_session failed: %s", exc)
                _clear_session_state(_EXPIRED_MSG)
                return
            session = getattr(response, "session", None)
            if session and session_value(session, "access_token"):
                _store_session(session, getattr(response, "user", None))
                return

    current = _safe_get_session(client)
    if current and session_value(current, "access_token"):
        _store_session(current, session_value(current, "user"))
        return

    if stored:
        _clear_session_state(_EXPIRED_MSG)
    else:
        _clear_session_state()


def get_client():
    """Return this browser session's Supabase client, restoring saved auth when present.

    One client per session: its auth tokens and PKCE state belong to that
    session only.
    """
    client = st.session_state.get(_CLIENT_STATE_KEY)
    if client is None:
        try:
            client = create_supabase_client()
        except (SupabaseConfigError, SupabaseConnectionError) as exc:
            st.error(str(exc))
            st.stop()
            raise
        st.session_state[_CLIENT_STATE_KEY] = client
    _apply_saved_session(client)
    return client


class VerifierHandoff:
    """PKCE verifiers parked under the ``ref`` carried by OAuth redirect URLs.

    The provider redirects back into a new browser session, whose client never
    saw the verifier created when the sign-in started. Entries expire after
    ``ttl`` seconds and can be claimed once.
    """

    def __init__(self, ttl: float = _HANDOFF_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._items: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def park(self, ref: str, verifier: str) -> None:
        with self._lock:
            self._expire()
            self._items[ref] = (verifier, self._clock())

    def claim(self, ref: Optional[str]) -> Optional[str]:
        if not ref:
            return None
        with self._lock:
            self._expire()
            item = self._items.pop(ref, None)
        return item[0] if item else None

    def _expire(self) -> None:
        cutoff = self._clock() - self._ttl
        for ref in [r for r, (_, parked) in self._items.items() if parked < cutoff]:
            del self._items[ref]


_HANDOFF = VerifierHandoff()


def _pending_verifier(client) -> Optional[str]:
    """Read the PKCE verifier the auth client just stored, if any."""
    storage = getattr(getattr(client, "options", None), "storage", None)
    items = getattr(storage, "storage", None) or {}
    for key, value in items.items():
        if key.endswith(_VERIFIER_SUFFIX):
            return value
    return None


def _auth_failure(context: str, exc: AuthError, fallback: str) -> AuthenticationError:
    logger.error("%s failed: %s", context, exc)
    message = getattr(exc, "message", None) or str(exc) or fallback
    return AuthenticationError(message, code=getattr(exc, "code", None))


def sign_in(email: str, password: str):
    """Authenticate with Supabase email/password and cache the session tokens."""
    try:
        response = get_client().auth.sign_in_with_password({"email": email, "password": password})
    except AuthApiError as exc:
        logger.info("Supabase sign_in rejected for %s: %s", email, exc)
        raise AuthenticationError("Invalid email or password. Please try again.") from exc
    except AuthError as exc:
        raise _auth_failure("Sign in", exc, "Authentication failed. Please try again.") from exc
    session = getattr(response, "session", None)
    if session and session_value(session, "access_token"):
        _store_session(session, getattr(response, "user", None))
    else:
        _clear_session_state()
        raise AuthenticationError("Supabase did not return a valid session. Please try again.")
    return response


def sign_up(email: str, password: str, name: str = "") -> Optional[str]:
    """Register a new account.

    Returns an informational message when Supabase requires email
    confirmation before a session is issued.
    """
    try:
        response = get_client().auth.sign_up(
            {"email": email, "password": password, "options": {"data": {"name": name or ""}}}
        )
    except AuthError as exc:
        raise _auth_failure("Sign up", exc, "Failed to create user account") from exc
    user = getattr(response, "user", None)
    if user is None:
        raise AuthenticationError("Failed to create user account")
    session = getattr(response, "session", None)
    if not session:
        return "Please check your email for a confirmation link."
    _store_session(session, user)
    return None


def sign_out() -> None:
    """Sign out from Supabase and clear cached session tokens."""
    client = get_client()
    try:
        client.auth.sign_out()
    except AuthError as exc:
        logger.warning("Supabase sign_out failed: %s", exc)
    finally:
        _clear_session_state()


def reset_password(email: str) -> str:
    redirect = load_settings().password_reset_url
    try:
        get_client().auth.reset_password_for_email(email, {"redirect_to": redirect})
    except AuthError as exc:
        raise _auth_failure("Reset password", exc, "Unable to send the reset email.") from exc
    return "Password reset email sent. Please check your inbox."


def update_password(new_password: str) -> None:
    try:
        get_client().auth.update_user({"password": new_password})
    except AuthError as exc:
        raise _auth_failure("Update password", exc, "Unable to update the password.") from exc


def update_profile(name: str) -> Optional[Dict[str, Any]]:
    """Store ``name`` in the user metadata and refresh the cached user."""
    try:
        response = get_client().auth.update_user({"data": {"name": name.strip()}})
    except AuthError as exc:
        raise _auth_failure("Update profile", exc, "Failed to update profile.") from exc
    user = _serialize_user(getattr(response, "user", None))
    if user:
        _ensure_auth_state()["user"] = user
    return user


def oauth_sign_in_url(provider: str) -> str:
    """Return the provider authorization URL for an OAuth sign-in."""
    if provider not in OAUTH_PROVIDERS:
        raise ValueError(f"Unsupported OAuth provider: {provider}")
    client = get_client()
    ref = secrets.token_urlsafe(16)
    redirect = f"{load_settings().oauth_redirect_url}&ref={ref}"
    try:
        response = client.auth.sign_in_with_oauth(
            {"provider": provider, "options": {"redirect_to": redirect}}
        )
    except AuthError as exc:
        raise _auth_failure("OAuth sign in", exc, "Unable to start OAuth sign in.") from exc
    verifier = _pending_verifier(client)
    if verifier:
        _HANDOFF.park(ref, verifier)
    return str(getattr(response, "url", "") or "")


def exchange_oauth_code(code: str, ref: Optional[str] = None) -> None:
    """Complete an OAuth callback by exchanging ``code`` for a session.

    ``ref`` names the verifier parked when the sign-in started; without one the
    client falls back to the verifier in its own storage.
    """
    params: Dict[str, str] = {"auth_code": code}
    verifier = _HANDOFF.claim(ref)
    if verifier:
        params["code_verifier"] = verifier
    try:
        response = get_client().auth.exchange_code_for_session(params)
    except AuthError as exc:
        raise _auth_failure("OAuth callback", exc, "Unable to complete OAuth sign in.") from exc
    session = getattr(response, "session", None)
    if not session or not session_value(session, "access_token"):
        raise AuthenticationError("OAuth sign in did not return a session.")
    _store_session(session, getattr(response, "user", None))


def get_current_user() -> Optional[Dict[str, Any]]:
    """Ask Supabase for the user behind the current session."""
    try:
        response = get_client().auth.get_user()
    except AuthError as exc:
        logger.warning("Get current user failed: %s", exc)
        return None
    return _serialize_user(getattr(response, "user", None)) if response else None


def current_user() -> Optional[Dict[str, Any]]:
    """Return the user cached in session state without a network call."""
    auth = st.session_state.get(_AUTH_STATE_KEY) or {}
    if not auth.get("authenticated"):
        return None
    return auth.get("user")


def current_user_id() -> Optional[str]:
    user = current_user() or {}
    user_id = user.get("id")
    return str(user_id) if user_id else None


def is_authenticated() -> bool:
    return get_current_user() is not None


def session_tokens() -> Optional[Dict[str, str]]:
    """Return a copy of the stored access/refresh tokens, if any."""
    stored = st.session_state.get(_SESSION_STATE_KEY)
    return dict(stored) if stored else None
