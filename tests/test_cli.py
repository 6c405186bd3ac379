"""Tests for the command-line interface."""

import json
import os

import pytest
from click.testing import CliRunner

from conftest import write_doc
from neorg_task_sync.cli import main
from neorg_task_sync.config import Config
from neorg_task_sync.credential_manager import ACCESS_TOKEN, CLIENT_ID, CLIENT_SECRET, REFRESH_TOKEN


class FakeCredentials:
    """Credential manager keeping values in a dict."""

    def __init__(self):
        self.values = {}

    def store_credential(self, key, value):
        self.values[key] = value
        return True

    def get_credential(self, key):
        return self.values.get(key)

    def delete_credential(self, key):
        return self.values.pop(key, None) is not None

    def env_var(self, key):
        return f"NEORG_TASK_SYNC_GOOGLE_{key.upper()}"

    def is_keyring_available(self):
        return True

    def import_client_secret(self, path):
        with open(path, encoding="utf-8") as handle:
            section = json.load(handle)["installed"]
        stored = {CLIENT_ID: section[CLIENT_ID], CLIENT_SECRET: section[CLIENT_SECRET]}
        self.values.update(stored)
        return stored


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    for key in list(os.environ):
        if key.startswith("NEORG_TASK_SYNC_"):
            monkeypatch.delenv(key)
    Config._instance = None
    yield
    Config._instance = None


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("tasklist: list1\nmax_retries: 0\nsection_todos_till_end_of_day: Today\n", encoding="utf-8")
    return path


@pytest.fixture
def credentials():
    return FakeCredentials()


@pytest.fixture
def invoke(config_path, store, credentials):
    runner = CliRunner()

    def invoke(*args, input=None):
        obj = {"store_factory": lambda: store, "credentials_factory": lambda: credentials}
        return runner.invoke(main, ["--config", str(config_path)] + list(args), obj=obj, input=input)

    return invoke


class TestSyncCommand:
    """Test the sync command."""

    def test_sync(self, invoke, store, tmp_path):
        doc = write_doc(tmp_path / "a.norg", "* TODOs\n  - ( ) one\n")
        store.add("from phone")

        result = invoke("sync", str(doc))

        assert result.exit_code == 0, result.output
        assert "a.norg" in result.output
        text = doc.read_text(encoding="utf-8")
        assert "one %#taskid" in text
        assert "from phone %#taskid" in text
        assert store.closed

    def test_sync_flags(self, invoke, store, tmp_path):
        doc = write_doc(tmp_path / "a.norg", "* TODOs\n  - ( ) one\n")
        store.add("from phone")

        result = invoke("sync", "--without-push", "-l", str(doc))

        assert result.exit_code == 0, result.output
        assert doc.read_text(encoding="utf-8") == "* TODOs\n  - ( ) one\n"
        assert store.mutations == []

    def test_sync_requires_target(self, invoke):
        result = invoke("sync")
        assert result.exit_code == 2

    def test_sync_partial_failure(self, invoke, store, transient_error, tmp_path):
        doc = write_doc(tmp_path / "a.norg", "* TODOs\n  - ( ) one\n")
        store.fail["insert"] = transient_error

        result = invoke("sync", str(doc))

        assert result.exit_code == 1
        assert "service unavailable" in result.output

    def test_sync_missing_file(self, invoke, tmp_path):
        result = invoke("sync", str(tmp_path / "missing.norg"))

        assert result.exit_code == 1
        assert "no such file" in result.output

    def test_sync_auth_error(self, invoke, store, auth_error, tmp_path):
        doc = write_doc(tmp_path / "a.norg", "* TODOs\n  - ( ) one\n")
        store.fail["list"] = auth_error

        result = invoke("sync", str(doc))

        assert result.exit_code == 1
        assert "Authentication error" in result.output
        assert doc.read_text(encoding="utf-8") == "* TODOs\n  - ( ) one\n"

    def test_sync_without_tasklist(self, invoke, config_path, tmp_path):
        config_path.write_text("", encoding="utf-8")
        doc = write_doc(tmp_path / "a.norg", "* TODOs\n")

        result = invoke("sync", str(doc))

        assert result.exit_code == 1
        assert "No task list configured" in result.output

    def test_invalid_config(self, invoke, config_path, tmp_path):
        config_path.write_text("bogus: 1\n", encoding="utf-8")
        doc = write_doc(tmp_path / "a.norg", "* TODOs\n")

        result = invoke("sync", str(doc))

        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestInspectCommands:
    """Test parse and tasks."""

    def test_parse_json(self, invoke, tmp_path):
        doc = write_doc(tmp_path / "a.norg", "* TODOs\n  - (x) one %#taskid t1%\n* Today\n  - ( ) two\n")

        result = invoke("parse", "--json", str(doc))

        assert result.exit_code == 0, result.output
        tasks = json.loads(result.output)
        assert [(t["text"], t["completed"], t["identity"], t["section"]) for t in tasks] == [
            ("one", True, "t1", "TODOs"),
            ("two", False, None, "Today"),
        ]
        assert tasks[1]["due"] is not None
        assert tasks[0]["line"] == 2

    def test_parse_table(self, invoke, tmp_path):
        doc = write_doc(tmp_path / "a.norg", "* TODOs\n  - ( ) one\n")

        result = invoke("parse", str(doc))

        assert result.exit_code == 0, result.output
        assert "one" in result.output

    def test_parse_rejects_other_extension(self, invoke, tmp_path):
        doc = write_doc(tmp_path / "a.txt", "* TODOs\n  - ( ) one\n")

        assert invoke("parse", str(doc)).exit_code == 1
        assert invoke("parse", "--force-norg", "--json", str(doc)).exit_code == 0

    def test_tasks_json(self, invoke, store):
        store.add("open task", remote_id="r1")
        store.add("gone", remote_id="r2", deleted=True)

        result = invoke("tasks", "--json")

        assert result.exit_code == 0, result.output
        assert [t["id"] for t in json.loads(result.output)] == ["r1"]

    def test_tasks_all(self, invoke, store):
        store.add("gone", remote_id="r2", deleted=True)

        result = invoke("tasks", "--json", "--all")

        assert [t["deleted"] for t in json.loads(result.output)] == [True]


class TestConfigCommands:
    """Test config subcommands."""

    def test_show(self, invoke):
        result = invoke("config", "show")
        assert result.exit_code == 0, result.output
        assert "tasklist: list1" in result.output

    def test_tasklist_get_and_set(self, invoke, config_path):
        assert invoke("config", "tasklist", "get").output.strip() == "list1"

        result = invoke("config", "tasklist", "set", "list2")

        assert result.exit_code == 0, result.output
        assert Config.read(config_path).tasklist == "list2"
        assert Config.read(config_path).max_retries == 0
        assert invoke("config", "tasklist", "get").output.strip() == "list2"

    def test_tasklist_list(self, invoke):
        result = invoke("config", "tasklist", "list", "--json")
        assert json.loads(result.output) == {"list1": "My Tasks", "list2": "Work"}

        result = invoke("config", "tasklist", "list")
        assert result.exit_code == 0, result.output
        assert "Work" in result.output


class TestAuthCommands:
    """Test credential commands."""

    def test_set_token(self, invoke, credentials):
        result = invoke("auth", "set-token", "--access-token", "a", "--refresh-token", "r")

        assert result.exit_code == 0, result.output
        assert credentials.values == {ACCESS_TOKEN: "a", REFRESH_TOKEN: "r"}

    def test_set_token_prompts(self, invoke, credentials):
        result = invoke("auth", "set-token", input="secret\n")

        assert result.exit_code == 0, result.output
        assert credentials.values == {ACCESS_TOKEN: "secret"}
        assert "secret" not in result.output

    def test_import_client_secret(self, invoke, credentials, tmp_path):
        path = tmp_path / "client_secret.json"
        path.write_text(json.dumps({"installed": {"client_id": "cid", "client_secret": "cs"}}), encoding="utf-8")

        result = invoke("auth", "import-client-secret", str(path))

        assert result.exit_code == 0, result.output
        assert credentials.values == {CLIENT_ID: "cid", CLIENT_SECRET: "cs"}

    def test_status_and_logout(self, invoke, credentials):
        credentials.values[ACCESS_TOKEN] = "a"

        result = invoke("auth", "status")
        assert result.exit_code == 0, result.output
        assert "NEORG_TASK_SYNC_GOOGLE_ACCESS_TOKEN" in result.output

        result = invoke("auth", "logout")
        assert result.exit_code == 0, result.output
        assert credentials.values == {}
