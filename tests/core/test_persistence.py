"""Tests for session metadata persistence."""

import json

import pytest

from taskterm.core.errors import SessionStoreError
from taskterm.core.session import SessionData, SessionStore


class TestSessionData:
    """Tests for SessionData conversion."""

    def test_round_trip_known_keys(self):
        data = {
            "taskPath": "/work/tasks/42",
            "claudeSessionId": "3f9c",
            "activeTab": "terminal",
            "terminalStopped": False,
        }

        session = SessionData.from_dict(data)

        assert session.claude_session_id == "3f9c"
        assert session.active_tab == "terminal"
        assert session.terminal_stopped is False
        assert session.to_dict() == data

    def test_unknown_keys_preserved(self):
        session = SessionData.from_dict({"claudeSessionId": "s", "draft": "notes"})

        assert session.extra == {"draft": "notes"}
        assert session.to_dict() == {"claudeSessionId": "s", "draft": "notes"}

    def test_invalid_values_dropped(self):
        session = SessionData.from_dict({"activeTab": "settings", "terminalStopped": "yes"})

        assert session.active_tab is None
        assert session.terminal_stopped is None
        assert session.to_dict() == {}

    def test_empty(self):
        assert SessionData().to_dict() == {}


class TestSessionStore:
    """Tests for the file-backed store."""

    @pytest.fixture
    def store(self, tmp_path):
        return SessionStore(tmp_path / "sessions")

    def test_load_missing_is_empty(self, store):
        assert store.load("nothing").to_dict() == {}

    def test_save_and_load(self, store):
        store.save("task-1", SessionData(claude_session_id="abc", active_tab="plan"))

        loaded = store.load("task-1")

        assert loaded.claude_session_id == "abc"
        assert loaded.active_tab == "plan"
        assert store.path_for("task-1").exists()

    def test_save_overwrites(self, store):
        store.save("task-1", SessionData(claude_session_id="old"))
        store.save("task-1", SessionData(claude_session_id="new"))

        assert store.load("task-1").claude_session_id == "new"
        assert store.list_task_ids() == ["task-1"]

    def test_no_temp_files_left(self, store):
        store.save("task-1", SessionData(claude_session_id="abc"))

        assert [p.name for p in store.directory.iterdir()] == ["task-1.json"]

    def test_delete(self, store):
        store.save("task-1", SessionData(claude_session_id="abc"))

        assert store.delete("task-1") is True
        assert store.delete("task-1") is False
        assert store.load("task-1").to_dict() == {}

    def test_corrupt_file_loads_empty(self, store):
        store.directory.mkdir(parents=True)
        store.path_for("task-1").write_text("{not json")

        assert store.load("task-1").to_dict() == {}

    def test_non_object_file_loads_empty(self, store):
        store.directory.mkdir(parents=True)
        store.path_for("task-1").write_text(json.dumps(["a", "b"]))

        assert store.load("task-1").to_dict() == {}

    def test_rejects_path_task_ids(self, store):
        with pytest.raises(ValueError):
            store.path_for("../escape")

    def test_save_failure_raises_store_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        store = SessionStore(blocker / "sessions")

        with pytest.raises(SessionStoreError):
            store.save("task-1", SessionData(claude_session_id="abc"))

    def test_list_task_ids_without_directory(self, store):
        assert store.list_task_ids() == []
