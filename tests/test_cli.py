import json
from types import SimpleNamespace

import pytest
from supabase import AuthError

from taskflow import cli

from .fakes import FakeClient, make_category, make_task


class FakeAuth:
    def __init__(self, user_id="user-1", error=None):
        self.user_id = user_id
        self.error = error
        self.credentials = None

    def sign_in_with_password(self, credentials):
        self.credentials = credentials
        if self.error is not None:
            raise self.error
        return SimpleNamespace(user=SimpleNamespace(id=self.user_id), session=None)


@pytest.fixture()
def fake_client():
    client = FakeClient()
    client.auth = FakeAuth()
    return client


def _run(client, *argv):
    return cli.main(["--email", "me@example.com", "--password", "pw", *argv], client_factory=lambda: client)


def test_missing_credentials(monkeypatch, fake_client, capsys):
    monkeypatch.delenv("TASKFLOW_EMAIL", raising=False)
    monkeypatch.delenv("TASKFLOW_PASSWORD", raising=False)
    assert cli.main(["stats"], client_factory=lambda: fake_client) == 2
    assert "TASKFLOW_EMAIL" in capsys.readouterr().out


def test_credentials_from_environment(monkeypatch, fake_client):
    monkeypatch.setenv("TASKFLOW_EMAIL", "env@example.com")
    monkeypatch.setenv("TASKFLOW_PASSWORD", "envpw")
    client, user_id = cli.authenticate(None, None, lambda: fake_client)
    assert user_id == "user-1"
    assert fake_client.auth.credentials == {"email": "env@example.com", "password": "envpw"}


def test_sign_in_failure(fake_client, capsys):
    fake_client.auth.error = AuthError("Invalid login credentials", "invalid_credentials")
    assert _run(fake_client, "stats") == 2
    assert "Invalid login credentials" in capsys.readouterr().out


def test_export_json_to_file(fake_client, tmp_path):
    make_task(fake_client, "user-1", title="Backup me")
    out = tmp_path / "backup.json"

    assert _run(fake_client, "export", "--output", str(out)) == 0

    payload = json.loads(out.read_text(encoding="utf-8"))
    assert [t["title"] for t in payload["tasks"]] == ["Backup me"]
    assert payload["version"] == "1.0"


def test_export_csv_to_stdout(fake_client, capsys):
    cat = make_category(fake_client, "user-1", name="Work")
    make_task(fake_client, "user-1", title="Report", category_id=cat["id"], completed=True)

    assert _run(fake_client, "export", "--format", "csv", "-o", "-") == 0

    out = capsys.readouterr().out
    assert out.startswith("Title,Description,Completed")
    assert "Report,,Yes,medium,Work" in out


def test_import_command(fake_client, tmp_path, capsys):
    backup = tmp_path / "in.json"
    backup.write_text(json.dumps({"tasks": [{"title": "From file"}], "categories": []}), encoding="utf-8")

    assert _run(fake_client, "import", str(backup), "--skip-duplicates") == 0
    assert fake_client.db["tasks"][0]["title"] == "From file"
    assert "Imported 1 tasks" in capsys.readouterr().out


def test_import_invalid_file(fake_client, tmp_path, capsys):
    backup = tmp_path / "bad.json"
    backup.write_text("{broken", encoding="utf-8")
    assert _run(fake_client, "import", str(backup)) == 1
    assert "Invalid JSON format" in capsys.readouterr().out


def test_stats_command(fake_client, capsys):
    make_task(fake_client, "user-1", completed=True)
    assert _run(fake_client, "stats") == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["total_tasks"] == 1
    assert stats["completion_rate"] == 100
