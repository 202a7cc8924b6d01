"""Realtime change feeds for tasks and categories.

The synchronous Supabase client has no realtime support, so each
subscription runs an async client on its own daemon thread and hands
normalised :class:`~taskflow.change_events.ChangeEvent` objects to a plain
callback. Callbacks therefore run off the Streamlit script thread and must
only touch thread-safe state (see :class:`taskflow.task_store.TaskStore`).
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, Optional

from taskflow.change_events import ChangeEvent
from taskflow.db_tables import CATEGORIES, TASKS
from taskflow.utils.supa import create_async_supabase_client

__all__ = ["RealtimeSubscription", "subscribe_to_tasks", "subscribe_to_categories"]

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]


class RealtimeSubscription:
    """Background listener for ``postgres_changes`` on one table, scoped to a user."""

    def __init__(
        self,
        table: str,
        user_id: str,
        callback: ChangeCallback,
        *,
        tokens: Optional[Dict[str, str]] = None,
        client_factory: Callable[[], Awaitable[Any]] = create_async_supabase_client,
        poll_interval: float = 0.5,
    ) -> None:
        if not user_id:
            raise ValueError("user_id required")
        self.table = table
        self.user_id = user_id
        self.channel_name = f"{table}-changes"
        self._callback = callback
        self._tokens = tokens or {}
        self._client_factory = client_factory
        self._poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def filter(self) -> str:
        return f"user_id=eq.{self.user_id}"

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def dispatch(self, payload: Any) -> None:
        """Normalise one raw payload and forward it; unknown events are dropped."""
        event = ChangeEvent.from_payload(payload)
        if event is None:
            logger.debug("Ignoring %s payload without a known event type", self.table)
            return
        try:
            self._callback(event)
        except Exception:
            logger.exception("Realtime callback for %s failed", self.table)

    def start(self) -> "RealtimeSubscription":
        if self._thread is not None:
            return self
        self._thread = threading.Thread(
            target=self._thread_main,
            name=f"taskflow-realtime-{self.table}",
            daemon=True,
        )
        self._thread.start()
        return self

    def unsubscribe(self, timeout: float = 2.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _thread_main(self) -> None:  # pragma: no cover - network
        try:
            asyncio.run(self._run())
        except Exception:
            logger.exception("Realtime listener for %s stopped", self.table)

    async def _run(self) -> None:  # pragma: no cover - network
        client = await self._client_factory()
        access = self._tokens.get("access_token")
        refresh = self._tokens.get("refresh_token")
        if access and refresh:
            await client.auth.set_session(access, refresh)

        channel = client.channel(self.channel_name)
        channel.on_postgres_changes(
            "*",
            schema="public",
            table=self.table,
            filter=self.filter,
            callback=self.dispatch,
        )
        await channel.subscribe()
        logger.info("Subscribed to %s changes for user %s", self.table, self.user_id)
        try:
            while not self._stop.is_set():
                await asyncio.sleep(self._poll_interval)
        finally:
            await client.remove_channel(channel)
            logger.info("Unsubscribed from %s changes", self.table)


def subscribe_to_tasks(
    user_id: str, callback: ChangeCallback, *, tokens: Optional[Dict[str, str]] = None
) -> RealtimeSubscription:
    return RealtimeSubscription(TASKS, user_id, callback, tokens=tokens).start()


def subscribe_to_categories(
    user_id: str, callback: ChangeCallback, *, tokens: Optional[Dict[str, str]] = None
) -> RealtimeSubscription:
    return RealtimeSubscription(CATEGORIES, user_id, callback, tokens=tokens).start()
