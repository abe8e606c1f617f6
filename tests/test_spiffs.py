import json

import pytest

from wattmon.spiffs import FlashStore


@pytest.fixture
def store(tmp_path):
    return FlashStore(tmp_path / "flash")


def test_write_read_round_trip(store):
    written = store.write("/config/notes.txt", "hello flash")
    assert written == len("hello flash")
    assert store.read("/config/notes.txt") == "hello flash"


def test_append_extends_file(store):
    store.write("/log.txt", "abc")
    store.write("/log.txt", b"def", append=True)
    assert store.read("/log.txt") == "abcdef"
    assert store.file_size("/log.txt") == len("abcdef")


def test_overwrite_replaces_contents(store):
    store.write("/a.txt", "first version")
    store.write("/a.txt", "second")
    assert store.read("/a.txt") == "second"


def test_missing_file(store):
    assert store.read("/nothing.txt") == ""
    assert store.file_size("/nothing.txt") == 0
    assert store.exists("/nothing.txt") is False


def test_exists_after_write(store):
    store.write("/x/y.txt", "")
    assert store.exists("/x/y.txt") is True


def test_remove_by_prefix(store):
    store.write("/config/device/burden.txt", "[1]")
    store.write("/config/device/other.txt", "2")
    store.write("/keep.txt", "3")
    assert store.remove("/config/device") is True
    assert store.exists("/config/device/burden.txt") is False
    assert store.exists("/config/device/other.txt") is False
    assert store.read("/keep.txt") == "3"


def test_directory_lists_dirs_once_and_files(store):
    store.write("/config/a.txt", "1")
    store.write("/config/device/burden.txt", "2")
    store.write("/config/device/x.txt", "3")
    store.write("/other/z.txt", "4")
    listing = json.loads(store.directory("/config"))
    assert listing == [
        {"type": "file", "name": "a.txt"},
        {"type": "dir", "name": "device"},
    ]


def test_directory_empty_store(store):
    assert json.loads(store.directory("/config")) == []


def test_format_erases_everything(store):
    store.write("/a.txt", "1")
    store.write("/b/c.txt", "2")
    assert store.format() is True
    assert store.exists("/a.txt") is False
    assert json.loads(store.directory("/b")) == []


def test_invalid_path_rejected(store):
    with pytest.raises(ValueError):
        store.write("/../escape.txt", "x")