import pytest

from taskflow.change_events import INSERT
from taskflow.services.realtime import RealtimeSubscription


def test_filter_scopes_to_user():
    sub = RealtimeSubscription("tasks", "u-1", lambda event: None)
    assert sub.filter == "user_id=eq.u-1"
    assert sub.channel_name == "tasks-changes"
    assert sub.active is False


def test_requires_user():
    with pytest.raises(ValueError):
        RealtimeSubscription("tasks", "", lambda event: None)


def test_dispatch_normalises_and_forwards():
    received = []
    sub = RealtimeSubscription("tasks", "u-1", received.append)

    sub.dispatch({"data": {"type": "INSERT", "record": {"id": "t1"}}})
    sub.dispatch({"eventType": "SOMETHING"})

    assert len(received) == 1
    assert received[0].event_type == INSERT
    assert received[0].record_id == "t1"


def test_dispatch_logs_callback_errors(caplog):
    def boom(event):
        raise RuntimeError("callback broke")

    sub = RealtimeSubscription("categories", "u-1", boom)
    sub.dispatch({"eventType": "DELETE", "old": {"id": "c1"}})

    assert "Realtime callback for categories failed" in caplog.text


def test_unsubscribe_without_start_is_noop():
    sub = RealtimeSubscription("tasks", "u-1", lambda event: None)
    sub.unsubscribe()
    assert sub.active is False
