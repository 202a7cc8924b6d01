"""Gravatar avatar URLs for signed-in users."""
from __future__ import annotations

import hashlib
import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)

GRAVATAR_BASE = "https://www.gravatar.com/avatar/"


def email_hash(email: str) -> str:
    return hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()


def gravatar_url(email: Optional[str], size: int = 80, default_image: str = "404") -> str:
    """Return the Gravatar URL for ``email``; ``default_image`` is Gravatar's ``d`` parameter."""
    if not email:
        return ""
    query = urlencode({"s": size, "d": default_image, "r": "g"})
    return f"{GRAVATAR_BASE}{email_hash(email)}?{query}"


@lru_cache(maxsize=256)
def gravatar_exists(email: Optional[str], timeout: float = 3.0) -> bool:
    if not email:
        return False
    try:
        response = httpx.head(gravatar_url(email, 80, "404"), timeout=timeout)
    except httpx.HTTPError as exc:
        logger.warning("Failed to check Gravatar: %s", exc)
        return False
    return response.status_code == 200


def avatar_url(email: Optional[str], size: int = 80) -> Optional[str]:
    """Gravatar URL when the address has one, else ``None``."""
    if not email or not gravatar_exists(email):
        return None
    return gravatar_url(email, size, "mp")


__all__ = ["email_hash", "gravatar_url", "gravatar_exists", "avatar_url"]
