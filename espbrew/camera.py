"""Camera descriptions and backend detection."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Backend(str, Enum):
    """Platform camera backend."""

    V4L2 = "v4l2"
    AVFOUNDATION = "avfoundation"
    DIRECTSHOW = "directshow"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class VideoFormat:
    """A video format a camera supports."""

    width: int
    height: int
    pixel_format: str

    def __str__(self) -> str:
        return f"{self.width}x{self.height}/{self.pixel_format}"


@dataclass
class CameraInfo:
    """A discovered camera."""

    id: str = ""
    name: str = ""
    path: str = ""
    backend: Backend = Backend.UNKNOWN
    formats: list[VideoFormat] = field(default_factory=list)
    node_id: str = ""

    def is_available(self) -> bool:
        """True when the camera has both an ID and a name."""
        return bool(self.id) and bool(self.name)

    def get_best_format(self, width: int, height: int) -> VideoFormat | None:
        """Return the exact format for the size, else the largest one."""
        if not self.formats:
            return None
        for fmt in self.formats:
            if fmt.width == width and fmt.height == height:
                return fmt
        return max(self.formats, key=lambda f: f.width * f.height)


def detect_backend(device_id: str) -> Backend:
    """Guess the camera backend from a device path or ID."""
    ident = device_id.lower()

    if any(marker in ident for marker in ("\\?\\", "@device:", "usb#vid_", "usb\\")):
        return Backend.DIRECTSHOW
    if "/dev/video" in ident:
        return Backend.V4L2
    if ident.startswith("0x") or "facetime" in ident:
        return Backend.AVFOUNDATION
    return Backend.UNKNOWN