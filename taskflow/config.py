"""Application settings for TaskFlow.

Values are looked up in Streamlit secrets under ``[taskflow]`` first and then
in ``TASKFLOW_*`` environment variables, the same order used for the Supabase
credentials in :mod:`taskflow.utils.supa`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional

try:
    import streamlit as st
except Exception:  # pragma: no cover - allow headless usage (tests / CLI)
    st = None

APP_TITLE = "TaskFlow"
APP_TAGLINE = "Organize your work"
APP_VERSION = "1.0.0"

_SECTION = "taskflow"
_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    site_url: str = "http://localhost:8501"
    realtime: bool = True
    log_level: str = "INFO"
    notification_duration: float = 5.0

    @property
    def oauth_redirect_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/?flow=oauth"

    @property
    def password_reset_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/?flow=recovery"


def _read_value(key: str) -> Optional[Any]:
    if st is not None:
        try:
            return st.secrets[_SECTION][key]
        except Exception:
            pass
    return os.getenv(f"TASKFLOW_{key.upper()}")


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def _as_float(value: Any, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def load_settings() -> Settings:
    defaults = Settings()
    return Settings(
        site_url=str(_read_value("site_url") or defaults.site_url),
        realtime=_as_bool(_read_value("realtime"), defaults.realtime),
        log_level=str(_read_value("log_level") or defaults.log_level).upper(),
        notification_duration=_as_float(
            _read_value("notification_duration"), defaults.notification_duration
        ),
    )


__all__ = ["APP_TITLE", "APP_TAGLINE", "APP_VERSION", "Settings", "load_settings"]
