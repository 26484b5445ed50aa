"""Camera discovery."""

from __future__ import annotations

import logging
import re
import sys
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from .camera import CameraInfo, VideoFormat, detect_backend

log = logging.getLogger(__name__)

Enumerator = Callable[[], Iterable[tuple[str, str]]]

_SYSFS_VIDEO = Path("/sys/class/video4linux")

_COMMON_FORMATS = (
    VideoFormat(640, 480, "YUYV"),
    VideoFormat(1280, 720, "YUYV"),
    VideoFormat(1920, 1080, "YUYV"),
    VideoFormat(640, 480, "MJPG"),
    VideoFormat(1280, 720, "MJPG"),
    VideoFormat(1920, 1080, "MJPG"),
)


def _node_number(path: Path) -> int:
    match = re.search(r"(\d+)$", path.name)
    return int(match.group(1)) if match else -1


def _enumerate_video_devices() -> Iterable[tuple[str, str]]:
    """Yield (device_id, label) pairs of video capture devices on this host."""
    if not sys.platform.startswith("linux") or not _SYSFS_VIDEO.is_dir():
        return
    for entry in sorted(_SYSFS_VIDEO.glob("video*"), key=_node_number):
        try:
            index_file = entry / "index"
            if index_file.exists() and index_file.read_text().strip() != "0":
                continue
            label = (entry / "name").read_text().strip()
        except OSError as exc:
            log.debug("Skipping %s: %s", entry, exc)
            continue
        yield f"/dev/{entry.name}", label


def _to_camera_info(device_id: str, label: str) -> CameraInfo:
    if not label:
        raise ValueError("device has no label")
    return CameraInfo(
        id=device_id,
        name=label,
        path=device_id,
        backend=detect_backend(device_id),
        formats=list(_COMMON_FORMATS),
    )


class Discoverer:
    """Finds cameras and remembers them by ID."""

    def __init__(self, enumerate_devices: Enumerator | None = None) -> None:
        self._enumerate = enumerate_devices or _enumerate_video_devices
        self._lock = threading.RLock()
        self._cameras: dict[str, CameraInfo] = {}

    def discover(self) -> list[CameraInfo]:
        """Scan for cameras and return those found."""
        with self._lock:
            log.debug("Scanning for cameras...")
            cameras = []
            for device_id, label in self._enumerate():
                try:
                    info = _to_camera_info(device_id, label)
                except ValueError as exc:
                    log.warning("Failed to get camera info for %s: %s", device_id, exc)
                    continue
                self._cameras[info.id] = info
                cameras.append(info)
            log.info("Camera discovery completed: %d found on %s", len(cameras), sys.platform)
            return cameras

    def get_by_id(self, camera_id: str) -> CameraInfo | None:
        """Return a previously discovered camera, or None."""
        with self._lock:
            return self._cameras.get(camera_id)

    def list(self) -> list[CameraInfo]:
        """Return every camera discovered so far."""
        with self._lock:
            return list(self._cameras.values())

    def refresh(self) -> list[CameraInfo]:
        """Scan again."""
        return self.discover()


def discover() -> list[CameraInfo]:
    """Discover cameras with a fresh discoverer."""
    return Discoverer().discover()