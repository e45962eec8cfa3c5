"""
Unit tests for the key-value stores and the persisted host configuration.
"""

import json

import pytest

from friendfinder.directory import FriendDirectory
from friendfinder.errors import StorageUnavailable
from friendfinder.storage import JsonFileStore, MemoryStore, StoredHostConfig


class TestMemoryStore:

    def test_put_get(self):
        store = MemoryStore()
        assert store.get("ns", "key") is None
        store.put("ns", "key", b"\x00\x01")
        assert store.get("ns", "key") == b"\x00\x01"

    def test_offline(self):
        store = MemoryStore()
        store.available = False
        with pytest.raises(StorageUnavailable):
            store.get("ns", "key")
        with pytest.raises(StorageUnavailable):
            store.put("ns", "key", b"")


class TestJsonFileStore:

    def test_put_get(self, tmp_path):
        path = tmp_path / "data" / "store.json"
        store = JsonFileStore(str(path))

        assert store.get("ns", "key") is None
        store.put("ns", "key", b"\xff\x00blob")
        store.put("other", "key", b"x")

        assert JsonFileStore(str(path)).get("ns", "key") == b"\xff\x00blob"
        assert set(json.loads(path.read_text())) == {"ns", "other"}
        assert not (tmp_path / "data" / "store.json.tmp").exists()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        with pytest.raises(StorageUnavailable):
            JsonFileStore(str(path)).get("ns", "key")

    def test_unexpected_content(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(StorageUnavailable):
            JsonFileStore(str(path)).get("ns", "key")

    def test_directory_survives_restart(self, tmp_path):
        path = str(tmp_path / "store.json")
        FriendDirectory(JsonFileStore(path)).upsert(0x1234, 7, bytes(16))

        reloaded = FriendDirectory(JsonFileStore(path))
        assert reloaded.load()
        assert 0x1234 in reloaded

    def test_corrupt_file_keeps_directory_in_ram(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("garbage")
        directory = FriendDirectory(JsonFileStore(str(path)))

        assert not directory.load()
        assert not directory.persistent


class TestStoredHostConfig:

    def test_default_when_empty(self):
        assert StoredHostConfig(MemoryStore(), 120).get_sample_interval() == 120

    def test_persists_interval(self):
        store = MemoryStore()
        StoredHostConfig(store, 120).set_sample_interval(30)
        assert StoredHostConfig(store, 120).get_sample_interval() == 30

    def test_unreadable_value_uses_default(self):
        store = MemoryStore()
        store.put(StoredHostConfig.NAMESPACE, StoredHostConfig.KEY, b"fast")
        assert StoredHostConfig(store, 120).get_sample_interval() == 120

    def test_reload_notifies_listeners(self):
        host = StoredHostConfig(MemoryStore(), 120)
        seen = []
        host.on_reload(seen.append)

        host.set_sample_interval(2)
        assert seen == []
        host.reload()
        assert seen == [2]

    def test_write_failure_keeps_value_in_memory(self):
        store = MemoryStore()
        host = StoredHostConfig(store, 120)
        store.available = False

        host.set_sample_interval(2)
        assert host.get_sample_interval() == 2
