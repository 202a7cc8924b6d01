import pytest

from taskflow.errors import TaskError
from taskflow.services import tasks as svc

from .fakes import make_category, make_task


def test_fetch_tasks_orders_by_order_index(client, user_id):
    make_task(client, user_id, title="b", order_index=2)
    make_task(client, user_id, title="a", order_index=1)
    make_task(client, "someone-else", title="x", order_index=0)

    titles = [t["title"] for t in svc.fetch_tasks(user_id, client=client)]
    assert titles == ["a", "b"]


def test_fetch_tasks_requires_user(client):
    with pytest.raises(ValueError):
        svc.fetch_tasks("", client=client)


def test_fetch_tasks_wraps_api_error(client, user_id):
    client.fail("tasks", "select", "permission denied", code="42501")
    with pytest.raises(TaskError) as excinfo:
        svc.fetch_tasks(user_id, client=client)
    assert excinfo.value.code == "42501"
    assert str(excinfo.value).startswith("Fetch tasks: permission denied")


def test_fetch_tasks_wraps_transport_error(client, user_id):
    client.fail("tasks", "select", "connection refused", transport=True)
    with pytest.raises(TaskError) as excinfo:
        svc.fetch_tasks(user_id, client=client)
    assert "connection refused" in str(excinfo.value)


def test_create_task_appends_with_next_order_index(client, user_id):
    make_task(client, user_id, order_index=4)
    row = svc.create_task({"title": "  Write report  ", "description": " draft "}, user_id, client=client)

    assert row["title"] == "Write report"
    assert row["description"] == "draft"
    assert row["completed"] is False
    assert row["priority"] == "medium"
    assert row["category_id"] is None
    assert row["order_index"] == 5


def test_create_first_task_starts_at_one(client, user_id):
    row = svc.create_task({"title": "First"}, user_id, client=client)
    assert row["order_index"] == 1


def test_create_task_rejects_bad_input(client, user_id):
    with pytest.raises(ValueError):
        svc.create_task({"title": "   "}, user_id, client=client)
    with pytest.raises(ValueError):
        svc.create_task({"title": "ok", "priority": "urgent"}, user_id, client=client)


def test_update_task_only_sends_known_fields(client, user_id):
    task = make_task(client, user_id, title="Old", priority="low")
    row = svc.update_task(task["id"], {"title": " New ", "bogus": 1}, user_id, client=client)

    assert row["title"] == "New"
    assert row["priority"] == "low"
    assert "bogus" not in row
    assert row["updated_at"] != task["updated_at"]


def test_update_task_none_clears_value(client, user_id):
    task = make_task(client, user_id, due_date="2030-01-01")
    row = svc.update_task(task["id"], {"due_date": None}, user_id, client=client)
    assert row["due_date"] is None


def test_update_task_scoped_to_user(client, user_id):
    task = make_task(client, "other-user")
    with pytest.raises(TaskError):
        svc.update_task(task["id"], {"title": "mine now"}, user_id, client=client)


def test_delete_task(client, user_id):
    task = make_task(client, user_id)
    svc.delete_task(task["id"], user_id, client=client)
    assert client.db["tasks"] == []


def test_reorder_tasks_writes_positions(client, user_id):
    a = make_task(client, user_id, title="a")
    b = make_task(client, user_id, title="b")
    c = make_task(client, user_id, title="c")

    svc.reorder_tasks([c["id"], a["id"], b["id"]], user_id, client=client)

    order = {row["title"]: row["order_index"] for row in client.db["tasks"]}
    assert order == {"c": 1, "a": 2, "b": 3}


def test_reorder_tasks_attempts_every_row_then_raises(client, user_id):
    a = make_task(client, user_id, title="a")
    b = make_task(client, user_id, title="b")
    client.fail("tasks", "update", "conflict", when=("id", a["id"]))

    with pytest.raises(TaskError):
        svc.reorder_tasks([b["id"], a["id"]], user_id, client=client)

    rows = {row["title"]: row["order_index"] for row in client.db["tasks"]}
    assert rows["b"] == 1


def test_category_crud(client, user_id):
    cat = svc.create_category({"name": " Work "}, user_id, client=client)
    assert cat["name"] == "Work"
    assert cat["color"] == "#6b7280"

    updated = svc.update_category(cat["id"], {"color": "#ef4444"}, user_id, client=client)
    assert updated["color"] == "#ef4444"
    assert updated["name"] == "Work"

    assert [c["id"] for c in svc.fetch_categories(user_id, client=client)] == [cat["id"]]


def test_update_category_rejects_blank_name(client, user_id):
    cat = make_category(client, user_id)
    with pytest.raises(ValueError):
        svc.update_category(cat["id"], {"name": "  "}, user_id, client=client)


def test_delete_category_detaches_tasks(client, user_id):
    cat = make_category(client, user_id)
    task = make_task(client, user_id, category_id=cat["id"])

    svc.delete_category(cat["id"], user_id, client=client)

    assert client.db["categories"] == []
    assert client.db["tasks"][0]["id"] == task["id"]
    assert client.db["tasks"][0]["category_id"] is None
