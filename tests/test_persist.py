"""Tests for the persistence adapter and its backends."""

import json
import time

from stashx import FileBackend, MemoryBackend, PersistenceError, store
from stashx import persist

from conftest import wait_for


class CountingBackend(MemoryBackend):
    def __init__(self):
        super().__init__()
        self.writes = []

    def set_item(self, key, value):
        self.writes.append((key, value))
        super().set_item(key, value)


class FailingBackend(MemoryBackend):
    def set_item(self, key, value):
        raise OSError("quota exceeded")


class BrokenReadBackend(MemoryBackend):
    def get_item(self, key):
        raise KeyError(key)


class TestRoundTrip:
    def test_writes_json_after_debounce(self):
        backend = MemoryBackend()
        persisted = store({"a": 0}).to_persisted(backend, "k")
        persisted.set({"a": 1})
        assert wait_for(lambda: backend.get_item("k") is not None)
        assert json.loads(backend.get_item("k")) == {"a": 1}

    def test_restart_prefers_stored_value(self):
        backend = MemoryBackend()
        first = store({"a": 0}).to_persisted(backend, "k")
        first.set({"a": 1})
        assert wait_for(lambda: backend.get_item("k") is not None)

        second = store({"a": 99}).to_persisted(backend, "k")
        assert second.get() == {"a": 1}

    def test_absent_key_uses_current_value(self):
        source = store({"theme": "dark"})
        persisted = source["theme"].to_persisted(MemoryBackend(), "theme")
        assert persisted.get() == "dark"

    def test_returns_a_new_store(self):
        source = store({"a": 1})
        persisted = source.to_persisted(MemoryBackend(), "k")
        assert persisted.store_id != source.store_id
        persisted.set({"a": 2})
        assert source.get() == {"a": 1}

    def test_nested_writes_persist_whole_value(self):
        backend = MemoryBackend()
        persisted = store({"user": {"name": "Ada"}, "n": 1}).to_persisted(backend, "k")
        persisted["user"]["name"].set("Grace")
        assert wait_for(lambda: backend.get_item("k") is not None)
        assert json.loads(backend.get_item("k")) == {"user": {"name": "Grace"}, "n": 1}


class TestNull:
    def test_null_is_stored_and_restored(self):
        backend = MemoryBackend()
        first = store("initial").to_persisted(backend, "k")
        first.set(None)
        assert wait_for(lambda: backend.get_item("k") == "null")

        second = store("fresh initial").to_persisted(backend, "k")
        assert second.get() is None

    def test_absent_is_not_null(self):
        backend = MemoryBackend()
        assert store("fresh initial").to_persisted(backend, "missing").get() == "fresh initial"


class TestDebounce:
    def test_burst_produces_one_write(self):
        backend = CountingBackend()
        persisted = store(0).to_persisted(backend, "n", debounce=0.05)
        for n in range(1, 6):
            persisted.set(n)
        assert wait_for(lambda: backend.writes)
        time.sleep(0.1)  # quiet period
        assert backend.writes == [("n", "5")]

    def test_separate_bursts_write_twice(self):
        backend = CountingBackend()
        persisted = store(0).to_persisted(backend, "n", debounce=0.01)
        persisted.set(1)
        assert wait_for(lambda: len(backend.writes) == 1)
        persisted.set(2)
        assert wait_for(lambda: len(backend.writes) == 2)
        assert backend.writes == [("n", "1"), ("n", "2")]


class TestFailures:
    def test_unreadable_value_falls_back(self, reported):
        backend = MemoryBackend()
        backend.set_item("k", "{not json")
        persisted = store({"ok": True}).to_persisted(backend, "k")
        assert persisted.get() == {"ok": True}
        assert isinstance(reported[0], PersistenceError)
        assert reported[0].key == "k"

    def test_backend_read_error_falls_back(self, reported):
        persisted = store({"ok": True}).to_persisted(BrokenReadBackend(), "k")
        assert persisted.get() == {"ok": True}
        assert isinstance(reported[0], PersistenceError)
        assert isinstance(reported[0].cause, KeyError)

    def test_unserializable_value_is_skipped(self, reported):
        backend = MemoryBackend()
        persisted = store([]).to_persisted(backend, "k")
        persisted.set({1, 2})
        assert wait_for(lambda: reported)
        assert isinstance(reported[0], PersistenceError)
        assert isinstance(reported[0].cause, TypeError)
        assert persisted.get() == {1, 2}
        assert backend.get_item("k") is None

    def test_storage_failure_is_reported(self, reported):
        persisted = store(0).to_persisted(FailingBackend(), "k")
        persisted.set(1)
        assert wait_for(lambda: reported)
        assert isinstance(reported[0].cause, OSError)
        assert persisted.get() == 1


class TestFileBackend:
    def test_round_trip_on_disk(self, tmp_path):
        path = tmp_path / "state" / "storage.json"
        persisted = store({"count": 0}).to_persisted(FileBackend(path), "counter")
        persisted["count"].set(3)
        assert wait_for(path.exists)
        assert wait_for(lambda: FileBackend(path).get_item("counter") is not None)

        restored = store({"count": 0}).to_persisted(FileBackend(path), "counter")
        assert restored.get() == {"count": 3}

    def test_keeps_other_keys(self, tmp_path):
        backend = FileBackend(tmp_path / "storage.json")
        backend.set_item("a", "1")
        backend.set_item("b", "2")
        assert backend.get_item("a") == "1"
        assert backend.get_item("b") == "2"
        assert backend.get_item("c") is None

    def test_missing_file_reads_as_absent(self, tmp_path):
        assert FileBackend(tmp_path / "nope.json").get_item("k") is None


class TestDefaultBackends:
    def test_to_session(self):
        persist.session_storage.clear()
        persisted = store({"temp": "data"}).to_session("my-session")
        persisted.set({"temp": "new data"})
        assert wait_for(lambda: persist.session_storage.get_item("my-session") is not None)
        assert json.loads(persist.session_storage.get_item("my-session")) == {"temp": "new data"}

    def test_to_local_uses_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "local.json"
        monkeypatch.setenv(persist.STORAGE_PATH_ENV, str(path))
        persist.set_local_storage(None)
        try:
            persisted = store({"persisted": False}).to_local("my-key")
            persisted.set({"persisted": True})
            assert wait_for(lambda: FileBackend(path).get_item("my-key") is not None)
            assert json.loads(FileBackend(path).get_item("my-key")) == {"persisted": True}
        finally:
            persist.set_local_storage(None)
