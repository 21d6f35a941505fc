import pytest

from frenchmaster.errors import MalformedPersistedState
from frenchmaster.kvstore import JsonFileKeyValueStore, MemoryKeyValueStore, decode_json, read_json, write_json


def test_json_file_store_persists_across_instances(tmp_path):
    path = tmp_path / "kv" / "state.json"
    first = JsonFileKeyValueStore(path)
    write_json(first, "french-learning-words-seen-guest", {"word-1": 10})
    second = JsonFileKeyValueStore(path)
    assert read_json(second, "french-learning-words-seen-guest", {}, dict) == {"word-1": 10}
    second.remove_item("french-learning-words-seen-guest")
    assert JsonFileKeyValueStore(path).keys() == []


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{broken", encoding="utf-8")
    assert JsonFileKeyValueStore(path).keys() == []


def test_decode_json_raises_on_garbage():
    with pytest.raises(MalformedPersistedState):
        decode_json("[1, 2", "key")
    assert decode_json(None, "key") is None


def test_read_json_returns_default_for_wrong_shape():
    kv = MemoryKeyValueStore({"a": "[1, 2]", "b": "oops"})
    assert read_json(kv, "a", {}, dict) == {}
    assert read_json(kv, "b", [], list) == []
    assert read_json(kv, "a", [], list) == [1, 2]
    assert read_json(kv, "missing", "fallback") == "fallback"


def test_failed_write_leaves_no_temp_file(tmp_path, monkeypatch):
    path = tmp_path / "state.json"
    kv = JsonFileKeyValueStore(path)
    kv.set_item("a", "1")

    def broken_dump(*args, **kwargs):
        raise ValueError("cannot serialize")

    monkeypatch.setattr("frenchmaster.kvstore.json.dump", broken_dump)
    with pytest.raises(ValueError):
        kv.set_item("b", "2")
    assert sorted(entry.name for entry in tmp_path.iterdir()) == ["state.json"]
    assert JsonFileKeyValueStore(path).keys() == ["a"]


def test_flush_writes_a_snapshot_of_the_data(tmp_path, monkeypatch):
    kv = JsonFileKeyValueStore(tmp_path / "state.json")
    kv.set_item("a", "1")
    dumped = []

    def recording_dump(obj, handle, **kwargs):
        dumped.append(obj)
        handle.write("{}")

    monkeypatch.setattr("frenchmaster.kvstore.json.dump", recording_dump)
    kv.set_item("b", "2")
    assert dumped[0] == {"a": "1", "b": "2"}
    assert dumped[0] is not kv._data
