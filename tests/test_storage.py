import pytest

from jlpt_quiz.errors import StorageFailure
from jlpt_quiz.storage import LocalStorage


def test_set_get_remove(tmp_path):
    storage = LocalStorage(tmp_path / "kv")
    assert storage.get_item("greeting") is None

    storage.set_item("greeting", '"こんにちは"')
    assert storage.get_item("greeting") == '"こんにちは"'
    assert storage.keys() == ["greeting"]

    storage.remove_item("greeting")
    storage.remove_item("greeting")
    assert storage.get_item("greeting") is None


def test_overwrite_replaces_whole_value_and_leaves_no_temp_files(tmp_path):
    storage = LocalStorage(tmp_path)
    storage.set_item("k", "x" * 100)
    storage.set_item("k", "y")
    assert storage.get_item("k") == "y"
    assert [p.name for p in tmp_path.iterdir()] == ["k.json"]


def test_quota_counts_other_keys_but_not_the_replaced_value(tmp_path):
    storage = LocalStorage(tmp_path, quota_bytes=10)
    storage.set_item("a", "12345")
    storage.set_item("a", "1234567890")
    with pytest.raises(StorageFailure):
        storage.set_item("b", "1")
    assert storage.get_item("b") is None
    assert storage.used_bytes() == 10


@pytest.mark.parametrize("key", ["../escape", "a/b", ""])
def test_invalid_keys(tmp_path, key):
    with pytest.raises(ValueError):
        LocalStorage(tmp_path).get_item(key)
