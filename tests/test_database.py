"""Tests for the key-value stores and the database manager."""

import json

from pomopilot.core.database import DatabaseManager, InMemoryStore, JsonFileStore
from pomopilot.core.models import Session, TimerSettings


def test_settings_round_trip_through_store():
    store = InMemoryStore()
    database = DatabaseManager(store)

    assert database.save_settings(TimerSettings(work_minutes=45, use_voice_interaction=True))

    assert json.loads(store.get("timerSettings"))["workMinutes"] == 45
    loaded = database.load_settings()
    assert loaded.work_minutes == 45
    assert loaded.use_voice_interaction is True


def test_missing_or_corrupt_settings_use_defaults():
    assert DatabaseManager(InMemoryStore()).load_settings() == TimerSettings.default()

    database = DatabaseManager(InMemoryStore({"timerSettings": "{not json"}))
    assert database.load_settings() == TimerSettings.default()
    assert database.stats.error_count == 1


def test_load_sessions_skips_malformed_entries():
    payload = json.dumps([
        {"id": "s1", "startTime": "2026-10-18T09:00:00", "endTime": "2026-10-18T10:00:00"},
        42,
        {"id": "s2", "startTime": "2026-10-18T11:00:00"},
    ])
    database = DatabaseManager(InMemoryStore({"savedSessions": payload}))

    sessions = database.load_sessions()

    assert [s.id for s in sessions] == ["s1", "s2"]
    assert sessions[0].is_completed
    assert not sessions[1].is_completed
    assert database.stats.skipped_records == 1


def test_sessions_that_are_not_a_list_start_fresh():
    database = DatabaseManager(InMemoryStore({"savedSessions": json.dumps({"id": "x"})}))
    assert database.load_sessions() == []


def test_json_file_store_persists_between_instances(tmp_path):
    path = tmp_path / "data" / "pomopilot.json"
    database = DatabaseManager(JsonFileStore(path))
    session = Session.create()
    database.save_sessions([session])

    reopened = DatabaseManager(JsonFileStore(path))

    assert [s.id for s in reopened.load_sessions()] == [session.id]
    assert not path.with_suffix(".tmp").exists()
    assert not path.with_suffix(".prev").exists()


def test_json_file_store_moves_corrupt_file_aside(tmp_path):
    path = tmp_path / "pomopilot.json"
    path.write_text("{broken", encoding="utf-8")

    store = JsonFileStore(path)

    assert store.keys() == []
    assert path.with_suffix(".corrupt").exists()
    assert not path.exists()


def test_json_file_store_survives_invalid_utf8(tmp_path):
    path = tmp_path / "pomopilot.json"
    path.write_bytes(b'{"savedSessions": "\xff\xfe"}')

    store = JsonFileStore(path)

    assert store.keys() == []
    assert path.with_suffix(".corrupt").exists()
    assert DatabaseManager(store).load_sessions() == []


def test_clear_sessions_removes_key(tmp_path):
    store = JsonFileStore(tmp_path / "pomopilot.json")
    database = DatabaseManager(store)
    database.save_sessions([Session.create()])

    assert database.clear_sessions()

    assert "savedSessions" not in JsonFileStore(tmp_path / "pomopilot.json").keys()
