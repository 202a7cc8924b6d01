"""Exception types shared by the service layer and the UI."""

from __future__ import annotations

from typing import Optional

import httpx
from postgrest.exceptions import APIError


class TaskError(RuntimeError):
    """Raised when a task or category operation fails on Supabase."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details
        self.hint = hint


class AuthenticationError(RuntimeError):
    """Raised when a Supabase auth call fails; message is safe to show."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


def format_api_error(context: str, exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    hint = getattr(exc, "hint", "")
    details = getattr(exc, "details", "")
    parts = [f"{context}: {message}"]
    if details:
        parts.append(str(details))
    if hint:
        parts.append(str(hint))
    return " | ".join(parts)


def task_error_from_api(context: str, exc: Exception) -> TaskError:
    return TaskError(
        format_api_error(context, exc),
        code=getattr(exc, "code", None),
        details=getattr(exc, "details", None),
        hint=getattr(exc, "hint", None),
    )


# Failures of a PostgREST call: rejected by the server or never answered.
REMOTE_ERRORS = (APIError, httpx.HTTPError)


__all__ = ["REMOTE_ERRORS", "TaskError", "AuthenticationError", "format_api_error", "task_error_from_api"]
