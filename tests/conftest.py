# tests/conftest.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from taskflow.task_store import TaskStore

from .fakes import FakeClient

USER_ID = "user-1"


class FakeClock:
    """Manually advanced clock for TTL-based behaviour."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def user_id() -> str:
    return USER_ID


@pytest.fixture()
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(client: FakeClient, clock: FakeClock) -> TaskStore:
    return TaskStore(USER_ID, client=client, clock=clock)


@pytest.fixture()
def fake_st(monkeypatch) -> SimpleNamespace:
    """Streamlit stand-in with a plain dict as session state."""
    fake = SimpleNamespace(session_state={})
    import taskflow.supabase_client as supabase_client

    monkeypatch.setattr(supabase_client, "st", fake)
    return fake
