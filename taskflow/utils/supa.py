from __future__ import annotations
from typing import Any, Dict, Optional
import logging
import os

import httpx

try:
    import streamlit as st
except Exception:  # pragma: no cover - allow headless usage (tests / CLI)
    st = None

from supabase import (
    AsyncClient,
    AsyncClientOptions,
    Client,
    ClientOptions,
    SupabaseException,
    acreate_client,
    create_client,
)

logger = logging.getLogger(__name__)


class SupabaseConfigError(RuntimeError):
    """Raised when Supabase credentials are missing from secrets or env."""


class SupabaseConnectionError(RuntimeError):
    """Raised when the client cannot reach Supabase within the timeout window."""


_MISSING_CONFIG_MSG = (
    "Supabase secrets missing. Add `[supabase].url` and `[supabase].anon_key` to "
    "`.streamlit/secrets.toml` or set SUPABASE_URL and SUPABASE_ANON_KEY environment "
    "variables."
)

_TIMEOUT = httpx.Timeout(10.0, connect=5.0)


def read_supabase_config() -> Dict[str, str]:
    """
    Prefer Streamlit secrets:
      st.secrets["supabase"]["url"]
      st.secrets["supabase"]["anon_key"]

    Fallback to env:
      SUPABASE_URL
      SUPABASE_ANON_KEY
    """
    url = None
    key = None

    if st is not None:
        try:
            url = st.secrets["supabase"]["url"]
            key = st.secrets["supabase"]["anon_key"]
        except Exception:
            pass

    url = url or os.getenv("SUPABASE_URL")
    key = key or os.getenv("SUPABASE_ANON_KEY")

    if not url or not key:
        raise SupabaseConfigError(_MISSING_CONFIG_MSG)

    return {"url": url, "anon_key": key}


def _build_client_options() -> ClientOptions:
    """Return Supabase client options with tighter HTTP timeouts.

    PKCE is required so OAuth callbacks come back with an exchangeable code.
    """

    return ClientOptions(
        httpx_client=httpx.Client(timeout=_TIMEOUT),
        postgrest_client_timeout=_TIMEOUT,
        storage_client_timeout=_TIMEOUT,
        function_client_timeout=_TIMEOUT,
        flow_type="pkce",
    )


def _close_http(options: ClientOptions) -> None:
    client = getattr(options, "httpx_client", None)
    if client is not None:
        client.close()


def create_supabase_client() -> Client:
    cfg = read_supabase_config()
    options = _build_client_options()
    try:
        return create_client(cfg["url"], cfg["anon_key"], options=options)
    except SupabaseException as exc:
        _close_http(options)
        raise SupabaseConfigError(str(exc) or _MISSING_CONFIG_MSG) from exc
    except httpx.HTTPStatusError as exc:
        _close_http(options)
        status = exc.response.status_code if exc.response is not None else "unknown"
        body = None
        if exc.response is not None:
            try:
                body = exc.response.text
            except httpx.ResponseNotRead:  # pragma: no cover
                body = None
        if body:
            preview = body.strip().replace("\n", " ")[:200]
            logger.error("Supabase client HTTP error: %s -> %s", status, preview)
        else:
            logger.error("Supabase client HTTP error: %s -> %s", status, exc)
        raise SupabaseConfigError(
            "Supabase responded with HTTP "
            f"{status}. Verify the Supabase URL/anon key in your Streamlit secrets or environment."
        ) from exc
    except httpx.HTTPError as exc:
        _close_http(options)
        logger.error("Supabase client connection failed: %s", exc)
        raise SupabaseConnectionError(
            "Unable to reach Supabase right now. Check your internet connection and try again."
        ) from exc


async def create_async_supabase_client() -> AsyncClient:  # pragma: no cover - network
    """Return a fresh async client; realtime channels are only available there."""
    cfg = read_supabase_config()
    options = AsyncClientOptions(
        postgrest_client_timeout=_TIMEOUT,
        storage_client_timeout=_TIMEOUT,
        function_client_timeout=_TIMEOUT,
    )
    try:
        return await acreate_client(cfg["url"], cfg["anon_key"], options=options)
    except SupabaseException as exc:
        raise SupabaseConfigError(str(exc) or _MISSING_CONFIG_MSG) from exc
    except httpx.HTTPError as exc:
        raise SupabaseConnectionError(
            "Unable to reach Supabase right now. Check your internet connection and try again."
        ) from exc


def first_row(rows: Any) -> Optional[Dict[str, Any]]:
    """
    PostgREST Python client returns `.data` as list-like.
    Return the first dict or None.
    """
    if rows is None:
        return None
    data = getattr(rows, "data", rows)
    if isinstance(data, list) and data:
        first = data[0]
        return first if isinstance(first, dict) else None
    if isinstance(data, dict):
        return data
    return None


__all__ = [
    "first_row",
    "read_supabase_config",
    "create_supabase_client",
    "create_async_supabase_client",
    "SupabaseConfigError",
    "SupabaseConnectionError",
]
