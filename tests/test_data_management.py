import json
from datetime import date, timedelta
from io import StringIO

import pandas as pd

from taskflow import data_management as dm
from taskflow.time_utils import utc_now

from .fakes import make_category, make_task


# ---------------- validation ----------------

def test_validate_requires_title():
    result = dm.validate_task_data({"title": "   "})
    assert result.is_valid is False
    assert "Task title cannot be empty" in result.errors

    result = dm.validate_task_data({})
    assert result.errors == ["Task title is required and must be a string"]


def test_validate_limits_and_warnings():
    result = dm.validate_task_data({"title": "x" * 256})
    assert "Task title must be 255 characters or less" in result.errors

    result = dm.validate_task_data({"title": "ab", "description": "d" * 2001})
    assert result.warnings == ["Task title is very short - consider being more descriptive"]
    assert "Task description must be 2000 characters or less" in result.errors


def test_validate_priority_and_due_date():
    assert not dm.validate_task_data({"title": "Valid", "priority": "urgent"}).is_valid
    assert not dm.validate_task_data({"title": "Valid", "due_date": "not a date"}).is_valid

    past = dm.validate_task_data({"title": "Valid", "due_date": "2001-01-01"})
    assert past.is_valid and past.warnings == ["Due date is in the past"]

    far = (utc_now() + timedelta(days=800)).date().isoformat()
    result = dm.validate_task_data({"title": "Valid", "due_date": far})
    assert result.is_valid
    assert result.warnings[0].startswith("Due date is more than a year away")


def test_sanitize_task_data():
    clean = dm.sanitize_task_data({
        "title": "  Hello  ",
        "description": "  " + "d" * 2100,
        "priority": "urgent",
        "category_id": "cat",
        "due_date": "2030-05-01",
        "extra": True,
    })
    assert clean["title"] == "Hello"
    assert len(clean["description"]) == 2000
    assert "priority" not in clean
    assert clean["category_id"] == "cat"
    assert clean["due_date"].startswith("2030-05-01T00:00:00")
    assert "extra" not in clean
    assert "due_date" not in dm.sanitize_task_data({"title": "x", "due_date": "garbage"})


# ---------------- bulk ----------------

def test_bulk_delete_counts_each_item(client, user_id):
    a = make_task(client, user_id)
    b = make_task(client, user_id)
    client.fail("tasks", "delete", "locked", when=("id", b["id"]))

    result = dm.bulk_delete_tasks([a["id"], b["id"]], user_id, client=client)

    assert (result.success, result.failed) == (1, 1)
    assert "locked" in result.errors[0]
    assert [r["id"] for r in client.db["tasks"]] == [b["id"]]


def test_bulk_delete_survives_transport_error(client, user_id):
    a, b, c = (make_task(client, user_id) for _ in range(3))
    client.fail("tasks", "delete", "connection refused", when=("id", b["id"]), transport=True)

    result = dm.bulk_delete_tasks([a["id"], b["id"], c["id"]], user_id, client=client)

    assert (result.success, result.failed) == (2, 1)
    assert "connection refused" in result.errors[0]
    assert [r["id"] for r in client.db["tasks"]] == [b["id"]]


def test_bulk_update_survives_transport_error(client, user_id):
    a = make_task(client, user_id)
    b = make_task(client, user_id)
    client.fail("tasks", "update", "timed out", when=("id", a["id"]), transport=True)

    result = dm.bulk_set_completed([a["id"], b["id"]], True, user_id, client=client)

    assert (result.success, result.failed) == (1, 1)
    assert "timed out" in result.errors[0]


def test_bulk_requires_input(client, user_id):
    result = dm.bulk_delete_tasks([], user_id, client=client)
    assert (result.success, result.failed, len(result.errors)) == (0, 0, 1)
    result = dm.bulk_update_tasks([("x", {})], "", client=client)
    assert (result.success, result.failed, len(result.errors)) == (0, 0, 1)


def test_bulk_update_missing_task_fails_independently(client, user_id):
    a = make_task(client, user_id)
    result = dm.bulk_update_tasks([(a["id"], {"title": "Renamed"}), ("missing", {"title": "x"})],
                                  user_id, client=client)
    assert (result.success, result.failed) == (1, 1)
    assert client.db["tasks"][0]["title"] == "Renamed"


def test_bulk_helpers(client, user_id):
    cat = make_category(client, user_id)
    ids = [make_task(client, user_id)["id"] for _ in range(3)]

    assert dm.bulk_set_completed(ids, True, user_id, client=client).success == 3
    assert dm.bulk_set_priority(ids, "high", user_id, client=client).success == 3
    assert dm.bulk_set_category(ids, cat["id"], user_id, client=client).success == 3
    assert dm.bulk_set_priority(ids, "urgent", user_id, client=client).success == 0

    rows = client.db["tasks"]
    assert all(r["completed"] and r["priority"] == "high" and r["category_id"] == cat["id"] for r in rows)


# ---------------- export ----------------

def test_export_user_data_and_json(client, user_id):
    make_category(client, user_id, name="Work")
    make_task(client, user_id, title="old")
    make_task(client, user_id, title="new")

    data = dm.export_user_data(user_id, client=client)
    assert [t["title"] for t in data.tasks] == ["new", "old"]

    payload = json.loads(dm.export_to_json(data))
    assert set(payload) == {"tasks", "categories", "exportedAt", "version"}
    assert payload["version"] == "1.0"


def test_export_failure_returns_none(client, user_id):
    client.fail("tasks", "select", times=2)
    assert dm.export_user_data(user_id, client=client) is None
    ok, message = dm.create_backup(user_id, client=client)
    assert ok is False and message == "Failed to export user data"


def test_export_transport_failure_returns_none(client, user_id):
    client.fail("categories", "select", "connection refused", transport=True)
    assert dm.export_user_data(user_id, client=client) is None


def test_tasks_to_csv():
    tasks = [
        {"title": "A", "completed": True, "priority": None, "category_id": "c1"},
        {"title": "B", "completed": False, "priority": "low", "category_id": "gone"},
        {"title": "C", "completed": False, "priority": "high", "category_id": None},
    ]
    text = dm.tasks_to_csv(tasks, [{"id": "c1", "name": "Work"}])
    df = pd.read_csv(StringIO(text), keep_default_na=False)

    assert list(df.columns) == dm.CSV_HEADERS
    assert list(df["Completed"]) == ["Yes", "No", "No"]
    assert list(df["Priority"]) == ["medium", "low", "high"]
    assert list(df["Category"]) == ["Work", "Unknown", ""]


def test_filenames():
    day = date(2024, 5, 6)
    assert dm.backup_filename(day) == "taskflow-backup-2024-05-06.json"
    assert dm.csv_filename(day) == "taskflow-tasks-2024-05-06.csv"


# ---------------- import ----------------

def test_parse_import_errors():
    assert dm.parse_import_data("{nope") == (None, ["Invalid JSON format"])
    assert dm.parse_import_data("[]") == (None, ["Invalid data format"])
    data, errors = dm.parse_import_data(json.dumps({"tasks": {}, "categories": "x"}))
    assert data is None
    assert errors == ["Tasks data must be an array", "Categories data must be an array"]

    doc = {"tasks": [{"title": "ok"}, {"priority": "urgent"}], "categories": [{"color": "#fff"}]}
    data, errors = dm.parse_import_data(json.dumps(doc))
    assert errors == [
        "Task 2: Missing or invalid title",
        "Task 2: Invalid priority value",
        "Category 1: Missing or invalid name",
    ]


def test_import_remaps_categories_and_appends_tasks(client, user_id):
    make_task(client, user_id, title="existing", order_index=1)
    doc = {
        "tasks": [
            {"title": "Imported", "category_id": "old-cat", "completed": True, "priority": "high"},
            {"title": "No category"},
        ],
        "categories": [{"id": "old-cat", "name": "Work", "color": "#ef4444"}],
        "exportedAt": "2024-01-01T00:00:00Z",
        "version": "1.0",
    }
    data, errors = dm.parse_import_data(json.dumps(doc))
    assert errors == []

    stats = dm.import_user_data(data, user_id, client=client)

    assert (stats.tasks_imported, stats.categories_imported, stats.errors) == (2, 1, [])
    new_cat = client.db["categories"][0]
    assert new_cat["user_id"] == user_id and new_cat["color"] == "#ef4444"
    imported = {r["title"]: r for r in client.db["tasks"]}
    assert imported["Imported"]["category_id"] == new_cat["id"]
    assert imported["Imported"]["completed"] is True
    assert imported["Imported"]["order_index"] == 2
    assert imported["No category"]["order_index"] == 3


def test_import_skip_duplicates(client, user_id):
    make_category(client, user_id, name="Work")
    make_task(client, user_id, title="Same")
    data = dm.ExportData(tasks=[{"title": "Same"}], categories=[{"name": "Work"}])

    stats = dm.import_user_data(data, user_id, skip_duplicates=True, client=client)

    assert (stats.tasks_skipped, stats.categories_skipped) == (1, 1)
    assert len(client.db["tasks"]) == 1
    assert len(client.db["categories"]) == 1


def test_import_update_existing(client, user_id):
    make_category(client, user_id, name="Work", color="#000000")
    make_task(client, user_id, title="Same", priority="low")
    data = dm.ExportData(
        tasks=[{"title": "Same", "priority": "high"}],
        categories=[{"name": "Work"}],
    )

    stats = dm.import_user_data(data, user_id, update_existing=True, client=client)

    assert stats.tasks_imported == 1
    assert client.db["categories"][0]["color"] == "#3B82F6"
    assert client.db["tasks"][0]["priority"] == "high"
    assert len(client.db["tasks"]) == 1


def test_import_collects_item_errors(client, user_id):
    client.fail("tasks", "insert", "quota exceeded")
    data = dm.ExportData(tasks=[{"title": "A"}, {"title": ""}, {"title": "B"}], categories=[])

    stats = dm.import_user_data(data, user_id, client=client)

    assert stats.tasks_imported == 1
    assert stats.tasks_skipped == 2
    assert len(stats.errors) == 2
    assert any("quota exceeded" in e for e in stats.errors)


def test_import_collects_transport_errors(client, user_id):
    client.fail("categories", "select", "connection refused", transport=True)
    client.fail("tasks", "insert", "connection refused", transport=True)
    data = dm.ExportData(
        tasks=[{"title": "A"}, {"title": "B"}],
        categories=[{"id": "old", "name": "Work"}],
    )

    stats = dm.import_user_data(data, user_id, client=client)

    assert stats.categories_imported == 0
    assert stats.tasks_imported == 1
    assert stats.tasks_skipped == 1
    assert len(stats.errors) == 2
    assert all("connection refused" in e for e in stats.errors)
    assert [r["title"] for r in client.db["tasks"]] == ["B"]


def test_get_data_stats(client, user_id):
    make_category(client, user_id)
    make_task(client, user_id, completed=True, created_at=utc_now().isoformat())
    make_task(client, user_id, created_at=(utc_now() - timedelta(days=10)).isoformat())
    make_task(client, user_id, created_at="2001-01-01T00:00:00+00:00")

    stats = dm.get_data_stats(user_id, client=client)

    assert stats["total_tasks"] == 3
    assert stats["total_categories"] == 1
    assert stats["completed_tasks"] == 1
    assert stats["completion_rate"] == 33
    assert stats["recent_tasks"] == 2
    assert stats["weekly_tasks"] == 1
    assert stats["data_size_kb"] >= 0
    assert type(stats["recent_tasks"]) is int
    assert json.loads(json.dumps(stats)) == stats


def test_get_data_stats_failure(client, user_id):
    client.fail("categories", "select")
    assert dm.get_data_stats(user_id, client=client) is None


def test_get_data_stats_transport_failure(client, user_id):
    client.fail("tasks", "select", "timed out", transport=True)
    assert dm.get_data_stats(user_id, client=client) is None
