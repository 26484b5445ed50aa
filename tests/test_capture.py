import io
import subprocess
import sys
from datetime import date
from pathlib import Path
from unittest import mock

import pytest
from PIL import Image

from espbrew.capture import (
    CaptureError,
    CaptureRequest,
    Capturer,
    capture,
    capturer_with_default_store,
    frame_to_jpeg,
    image_dimensions,
)
from espbrew.discovery import Discoverer
from espbrew.storage import Store


def _jpeg(width, height):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (10, 120, 200)).save(buffer, format="JPEG")
    return buffer.getvalue()


def _fake_tool(payload, calls, returncode=0):
    def run(cmd, **kwargs):
        calls.append((list(cmd), kwargs))
        if returncode == 0:
            Path(cmd[-1]).write_bytes(payload)
        return subprocess.CompletedProcess(cmd, returncode, stdout=b"device busy")

    return run


def _no_cameras():
    return Discoverer(enumerate_devices=lambda: [])


@pytest.fixture
def store(tmp_path):
    return Store(tmp_path / "captures")


def test_new_capturer_keeps_store(store):
    capturer = Capturer(store, _no_cameras())
    assert capturer.store is store


def test_capturer_with_default_store(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))
    capturer = capturer_with_default_store()
    assert capturer.store.base_dir == tmp_path / ".espbrew" / "captures"
    assert capturer.store.base_dir.is_dir()


def test_capture_linux_fills_defaults_and_saves(store):
    payload = _jpeg(640, 480)
    calls = []
    with mock.patch.object(sys, "platform", "linux"), \
            mock.patch("shutil.which", return_value="/usr/bin/fswebcam"), \
            mock.patch("subprocess.run", side_effect=_fake_tool(payload, calls)):
        result = Capturer(store, _no_cameras()).capture(
            CaptureRequest(width=640, height=480)
        )

    assert result.format == "jpg"
    assert (result.width, result.height) == (640, 480)
    assert result.size == len(payload)
    assert result.data == payload
    assert Path(result.path).read_bytes() == payload
    assert Path(result.path).is_relative_to(store.base_dir)

    cmd, kwargs = calls[0]
    assert cmd[0] == "/usr/bin/fswebcam"
    assert cmd[1:8] == ["-r", "640x480", "--jpeg", "85", "-q", "-S", "10"]
    assert kwargs["timeout"] == 5.0


def test_capture_records_metadata_for_default_camera(store):
    calls = []
    with mock.patch.object(sys, "platform", "linux"), \
            mock.patch("shutil.which", return_value="/usr/bin/fswebcam"), \
            mock.patch("subprocess.run", side_effect=_fake_tool(_jpeg(8, 8), calls)):
        result = Capturer(store, _no_cameras()).capture(CaptureRequest())

    captures = store.list_captures(date.today())
    assert [c.camera_id for c in captures] == ["default"]
    assert captures[0].filename == Path(result.path).name
    assert Path(result.path).name.startswith("cam-default-")


def test_capture_uses_first_discovered_camera(store):
    discoverer = Discoverer(enumerate_devices=lambda: [("cam-test-001", "Fake Cam")])
    calls = []
    with mock.patch.object(sys, "platform", "linux"), \
            mock.patch("shutil.which", return_value="/usr/bin/fswebcam"), \
            mock.patch("subprocess.run", side_effect=_fake_tool(_jpeg(8, 8), calls)):
        Capturer(store, discoverer).capture(CaptureRequest())

    captures = store.list_captures(date.today())
    assert [c.camera_id for c in captures] == ["cam-test-001"]


def test_capture_explicit_options(store):
    calls = []
    with mock.patch.object(sys, "platform", "linux"), \
            mock.patch("shutil.which", return_value="/usr/bin/fswebcam"), \
            mock.patch("subprocess.run", side_effect=_fake_tool(_jpeg(8, 8), calls)):
        result = Capturer(store, _no_cameras()).capture(
            CaptureRequest(camera_id="cam-001", quality=90, format="png", timeout=10)
        )

    cmd, kwargs = calls[0]
    assert cmd[cmd.index("--jpeg") + 1] == "90"
    assert kwargs["timeout"] == 10
    assert result.format == "png"
    assert Path(result.path).suffix == ".png"


def test_capture_macos_uses_imagesnap(store):
    calls = []
    with mock.patch.object(sys, "platform", "darwin"), \
            mock.patch("shutil.which", return_value="/opt/bin/imagesnap"), \
            mock.patch("subprocess.run", side_effect=_fake_tool(_jpeg(32, 24), calls)):
        result = Capturer(store, _no_cameras()).capture(CaptureRequest(camera_id="cam-001"))

    cmd, _ = calls[0]
    assert cmd[0] == "/opt/bin/imagesnap"
    assert len(cmd) == 2
    assert (result.width, result.height) == (32, 24)


def test_capture_missing_tool(store):
    with mock.patch.object(sys, "platform", "linux"), \
            mock.patch("shutil.which", return_value=None):
        with pytest.raises(CaptureError, match="fswebcam not found"):
            Capturer(store, _no_cameras()).capture(CaptureRequest(camera_id="cam-001"))


def test_capture_tool_failure(store):
    calls = []
    with mock.patch.object(sys, "platform", "linux"), \
            mock.patch("shutil.which", return_value="/usr/bin/fswebcam"), \
            mock.patch("subprocess.run", side_effect=_fake_tool(b"", calls, returncode=1)):
        with pytest.raises(CaptureError, match="device busy"):
            Capturer(store, _no_cameras()).capture(CaptureRequest(camera_id="cam-001"))
    assert list(store.base_dir.rglob("*.jpg")) == []


def test_capture_timeout(store):
    def slow(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    with mock.patch.object(sys, "platform", "linux"), \
            mock.patch("shutil.which", return_value="/usr/bin/fswebcam"), \
            mock.patch("subprocess.run", side_effect=slow):
        with pytest.raises(CaptureError, match="timed out"):
            Capturer(store, _no_cameras()).capture(
                CaptureRequest(camera_id="cam-001", timeout=0.1)
            )


def test_capture_windows_unsupported(store):
    with mock.patch.object(sys, "platform", "win32"):
        with pytest.raises(CaptureError, match="Windows"):
            Capturer(store, _no_cameras()).capture(CaptureRequest(camera_id="cam-001"))


def test_capture_unknown_platform(store):
    with mock.patch.object(sys, "platform", "sunos5"):
        with pytest.raises(CaptureError, match="unsupported platform: sunos5"):
            Capturer(store, _no_cameras()).capture(CaptureRequest(camera_id="cam-001"))


def test_capture_keeps_undecodable_data(store):
    payload = b"\xff\xd8\xff\xe0not really"
    calls = []
    with mock.patch.object(sys, "platform", "linux"), \
            mock.patch("shutil.which", return_value="/usr/bin/fswebcam"), \
            mock.patch("subprocess.run", side_effect=_fake_tool(payload, calls)):
        result = Capturer(store, _no_cameras()).capture(CaptureRequest(camera_id="cam-001"))

    assert (result.width, result.height) == (0, 0)
    assert result.data == payload
    assert result.size == len(payload)


def test_capture_convenience_function(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))
    calls = []
    with mock.patch.object(sys, "platform", "linux"), \
            mock.patch("shutil.which", return_value="/usr/bin/fswebcam"), \
            mock.patch("subprocess.run", side_effect=_fake_tool(_jpeg(640, 480), calls)):
        result = capture("cam-001", 640, 480)

    assert Path(result.path).is_relative_to(tmp_path / ".espbrew" / "captures")
    assert (result.width, result.height) == (640, 480)
    assert calls[0][0][2] == "640x480"


def test_frame_to_jpeg_round_trip():
    data = frame_to_jpeg(Image.new("RGB", (32, 16), (255, 0, 0)), 90)
    assert data[:2] == b"\xff\xd8"
    assert image_dimensions(data) == (32, 16)


def test_frame_to_jpeg_converts_alpha():
    data = frame_to_jpeg(Image.new("RGBA", (5, 7), (0, 0, 0, 128)), 50)
    assert image_dimensions(data) == (5, 7)


def test_image_dimensions_of_truncated_header():
    assert image_dimensions(b"\xff\xd8\xff\xe0") == (0, 0)


def test_image_dimensions_rejects_png():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buffer, format="PNG")
    assert image_dimensions(buffer.getvalue()) == (0, 0)