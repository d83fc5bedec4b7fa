"""Key-value store tests."""

import json

import pytest

from mapsync.core.interfaces import KeyValueStore
from mapsync.infrastructure.storage import JsonFileStore, MemoryStore


def test_memory_store_contract():
    store = MemoryStore({"a": "1"})
    assert isinstance(store, KeyValueStore)
    assert store.get_item("a") == "1"
    assert store.get_item("missing") is None

    store.set_item("b", "2")
    store.remove_item("a")
    store.remove_item("never-there")
    assert store.keys() == ["b"]


def test_json_file_store_persists(tmp_path):
    path = tmp_path / "nested" / "store.json"
    store = JsonFileStore(path)
    assert store.get_item("k") is None

    store.set_item("k", '{"version": 2}')
    assert json.loads(path.read_text(encoding="utf-8")) == {"k": '{"version": 2}'}

    reopened = JsonFileStore(path)
    assert reopened.get_item("k") == '{"version": 2}'

    reopened.remove_item("k")
    assert JsonFileStore(path).keys() == []


def test_json_file_store_rejects_non_object(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        JsonFileStore(path).get_item("k")
