import json
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from espbrew.storage import METADATA_FILE, Store, default_store

JPEG_HEADER = bytes([0xFF, 0xD8, 0xFF, 0xE0])


def test_new_store_creates_base_dir(tmp_path):
    base = tmp_path / "captures"
    store = Store(base)
    assert store.base_dir == base
    assert base.is_dir()


def test_date_dir_is_inside_base(tmp_path):
    store = Store(tmp_path)
    date_dir = store.date_dir()
    assert date_dir.is_dir()
    assert date_dir.parent == tmp_path
    assert date_dir.name == datetime.now().strftime("%Y-%m-%d")


def test_generate_filename(tmp_path):
    store = Store(tmp_path)
    path = store.generate_filename("test-camera-abc123def456", "jpg")
    assert path.suffix == ".jpg"
    assert "test-cam" in path.name
    assert path.name.startswith("cam-test-cam-")
    assert tmp_path in path.parents


@pytest.mark.parametrize("fmt", ["", "jpeg"])
def test_generate_filename_normalizes_jpeg(tmp_path, fmt):
    store = Store(tmp_path)
    assert store.generate_filename("cam", fmt).suffix == ".jpg"


def test_generate_filename_keeps_png(tmp_path):
    store = Store(tmp_path)
    assert store.generate_filename("cam", "png").suffix == ".png"


def test_save_writes_file_and_metadata(tmp_path):
    store = Store(tmp_path)
    path = store.save("cam-test-001", "jpg", JPEG_HEADER)
    assert path.read_bytes() == JPEG_HEADER
    assert (path.parent / METADATA_FILE).is_file()


def test_save_metadata_layout(tmp_path):
    store = Store(tmp_path)
    path = store.save("cam-test-001", "jpg", JPEG_HEADER)
    raw = json.loads((path.parent / METADATA_FILE).read_text())
    entry = raw["cam-test-001"]
    assert entry["camera_id"] == "cam-test-001"
    assert entry["captures"][0]["filename"] == path.name
    assert entry["captures"][0]["size_bytes"] == len(JPEG_HEADER)
    assert entry["captures"][0]["format"] == "jpg"


def test_list_captures(tmp_path):
    store = Store(tmp_path)
    for _ in range(3):
        store.save("cam-list-test", "jpg", JPEG_HEADER)

    captures = store.list_captures(datetime.now())
    assert len(captures) == 3
    for capture in captures:
        assert capture.camera_id == "cam-list-test"
        assert capture.format == "jpg"
        assert capture.size_bytes == len(JPEG_HEADER)


def test_list_captures_for_empty_day(tmp_path):
    store = Store(tmp_path)
    assert store.list_captures(datetime(2001, 1, 1)) == []


def test_list_captures_with_corrupt_metadata(tmp_path):
    store = Store(tmp_path)
    (store.date_dir() / METADATA_FILE).write_text("not json")
    with pytest.raises(ValueError):
        store.list_captures(datetime.now())


def test_save_survives_corrupt_metadata(tmp_path):
    store = Store(tmp_path)
    (store.date_dir() / METADATA_FILE).write_text("not json")
    path = store.save("cam", "jpg", JPEG_HEADER)
    assert path.read_bytes() == JPEG_HEADER


def test_cleanup_old(tmp_path):
    store = Store(tmp_path)

    old_date = datetime.now() - timedelta(hours=48)
    old_dir = tmp_path / old_date.strftime("%Y-%m-%d")
    old_dir.mkdir()
    (old_dir / "test.jpg").write_bytes(b"old")
    (old_dir / METADATA_FILE).write_text("{}")

    new_dir = store.date_dir()
    (new_dir / "test.jpg").write_bytes(b"new")

    removed = store.cleanup_old(timedelta(hours=24))

    assert removed == 1
    assert not old_dir.exists()
    assert new_dir.is_dir()


def test_cleanup_ignores_non_date_entries(tmp_path):
    store = Store(tmp_path)
    other = tmp_path / "not-a-date"
    other.mkdir()
    (tmp_path / "loose.jpg").write_bytes(b"x")
    store.cleanup_old(timedelta(0))
    assert other.is_dir()
    assert (tmp_path / "loose.jpg").is_file()


def test_relative_path(tmp_path):
    store = Store(tmp_path)
    path = store.save("cam", "jpg", JPEG_HEADER)
    rel = store.relative_path(path)
    assert tmp_path / rel == path
    assert rel.parts[0] == path.parent.name


def test_default_store(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))
    store = default_store()
    expected = Path.home() / ".espbrew" / "captures"
    assert store.base_dir == expected
    assert expected.is_dir()