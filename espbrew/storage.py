"""On-disk storage of captured images with per-day metadata."""

from __future__ import annotations

import json
import logging
import re
import shutil
import threading
from dataclasses import dataclass, field
from datetime import date as _date
from datetime import datetime, timedelta, timezone
from pathlib import Path

log = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"
_DATE_DIR_FORMAT = "%Y-%m-%d"
_FRACTION = re.compile(r"\.(\d+)")


def _now() -> datetime:
    return datetime.now().astimezone()


def _format_time(moment: datetime) -> str:
    return moment.isoformat()


def _parse_time(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return datetime.fromisoformat(text)


@dataclass
class CaptureMetadata:
    """A single capture record."""

    filename: str
    timestamp: datetime
    camera_id: str
    format: str
    size_bytes: int

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "timestamp": _format_time(self.timestamp),
            "camera_id": self.camera_id,
            "format": self.format,
            "size_bytes": self.size_bytes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CaptureMetadata:
        return cls(
            filename=data.get("filename", ""),
            timestamp=_parse_time(data["timestamp"]),
            camera_id=data.get("camera_id", ""),
            format=data.get("format", ""),
            size_bytes=int(data.get("size_bytes", 0)),
        )


@dataclass
class CameraMetadata:
    """All capture records of one camera for one day."""

    camera_id: str
    created_at: datetime
    camera_name: str = ""
    captures: list[CaptureMetadata] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "camera_id": self.camera_id,
            "camera_name": self.camera_name,
            "created_at": _format_time(self.created_at),
            "captures": [c.to_dict() for c in self.captures],
        }

    @classmethod
    def from_dict(cls, data: dict) -> CameraMetadata:
        return cls(
            camera_id=data.get("camera_id", ""),
            camera_name=data.get("camera_name", ""),
            created_at=_parse_time(data["created_at"]),
            captures=[CaptureMetadata.from_dict(c) for c in data.get("captures") or []],
        )


class Store:
    """Stores captured images under dated directories."""

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def date_dir(self) -> Path:
        """Return today's capture directory, creating it if needed."""
        path = self.base_dir / _now().strftime(_DATE_DIR_FORMAT)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def generate_filename(self, camera_id: str, fmt: str) -> Path:
        """Build a timestamped file path for a new capture."""
        directory = self.date_dir()
        short_id = camera_id[:8]
        timestamp = _now().strftime("%Y%m%d-%H%M%S")
        ext = "jpg" if fmt in ("", "jpeg") else fmt
        return directory / f"cam-{short_id}-{timestamp}.{ext}"

    def save(self, camera_id: str, fmt: str, data: bytes) -> Path:
        """Write image data to a new file and record it in the metadata."""
        with self._lock:
            path = self.generate_filename(camera_id, fmt)
            path.write_bytes(data)
            try:
                self._update_metadata(camera_id, path, fmt, len(data))
            except (OSError, ValueError, KeyError) as exc:
                log.warning("Failed to update metadata: %s", exc)
            log.info("Image saved: %s (%d bytes)", path, len(data))
            return path

    def list_captures(self, date: _date | datetime) -> list[CaptureMetadata]:
        """Return all capture records for the given day."""
        directory = self.base_dir / date.strftime(_DATE_DIR_FORMAT)
        metadata = self._load_metadata(directory)
        return [capture for camera in metadata.values() for capture in camera.captures]

    def cleanup_old(self, older_than: timedelta) -> int:
        """Remove day directories older than the given age; return how many."""
        with self._lock:
            cutoff = datetime.now(timezone.utc) - older_than
            removed = 0
            for entry in self.base_dir.iterdir():
                if not entry.is_dir():
                    continue
                try:
                    day = datetime.strptime(entry.name, _DATE_DIR_FORMAT)
                except ValueError:
                    continue
                if day.replace(tzinfo=timezone.utc) < cutoff:
                    try:
                        shutil.rmtree(entry)
                    except OSError as exc:
                        log.warning("Failed to remove old captures %s: %s", entry.name, exc)
                    else:
                        removed += 1
                        log.debug("Removed old captures %s", entry.name)
            if removed:
                log.info("Cleaned up %d old capture directories", removed)
            return removed

    def relative_path(self, full_path: str | Path) -> Path:
        """Return the path of a file relative to the base directory."""
        return Path(full_path).relative_to(self.base_dir)

    def _metadata_path(self, directory: Path) -> Path:
        return directory / METADATA_FILE

    def _load_metadata(self, directory: Path) -> dict[str, CameraMetadata]:
        path = self._metadata_path(directory)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        raw = json.loads(text)
        if raw is None:
            return {}
        return {key: CameraMetadata.from_dict(value) for key, value in raw.items()}

    def _save_metadata(self, directory: Path, metadata: dict[str, CameraMetadata]) -> None:
        payload = {key: value.to_dict() for key, value in metadata.items()}
        self._metadata_path(directory).write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def _update_metadata(self, camera_id: str, path: Path, fmt: str, size: int) -> None:
        directory = self.date_dir()
        metadata = self._load_metadata(directory)
        camera = metadata.get(camera_id)
        if camera is None:
            camera = CameraMetadata(camera_id=camera_id, created_at=_now())
            metadata[camera_id] = camera
        camera.captures.append(
            CaptureMetadata(
                filename=path.name,
                timestamp=_now(),
                camera_id=camera_id,
                format=fmt,
                size_bytes=size,
            )
        )
        self._save_metadata(directory, metadata)


def default_store() -> Store:
    """Return a store rooted at ~/.espbrew/captures."""
    return Store(Path.home() / ".espbrew" / "captures")