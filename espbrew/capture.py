"""Still image capture through the platform's command-line camera tools."""

from __future__ import annotations

import io
import logging
import shutil
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from PIL import Image

from .discovery import Discoverer
from .storage import Store, default_store

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_QUALITY = 85
DEFAULT_FORMAT = "jpg"
DEFAULT_CAMERA_ID = "default"

_CAPTURE_FILENAME = "espbrew-capture.jpg"
_INSTALL_HINTS = {
    "imagesnap": "install with 'brew install imagesnap'",
    "fswebcam": "install with 'sudo apt install fswebcam'",
}


class CaptureError(Exception):
    """Raised when an image cannot be captured, encoded or saved."""


@dataclass
class CaptureRequest:
    """Capture parameters; zero or empty values mean the defaults."""

    camera_id: str = ""
    width: int = 0
    height: int = 0
    format: str = ""
    quality: int = 0
    timeout: float = 0.0


@dataclass
class CaptureResult:
    """A captured image and where it was saved."""

    path: Path
    data: bytes
    format: str
    width: int
    height: int
    size: int
    timestamp: datetime = field(default_factory=lambda: datetime.now().astimezone())


def image_dimensions(data: bytes) -> tuple[int, int]:
    """Return (width, height) of JPEG data, or (0, 0) if it cannot be decoded."""
    try:
        with Image.open(io.BytesIO(data), formats=["JPEG"]) as image:
            image.load()
            return image.size
    except (OSError, SyntaxError, ValueError):
        return 0, 0


def frame_to_jpeg(image: Image.Image, quality: int) -> bytes:
    """Encode an image as JPEG bytes with the given quality."""
    if image.mode not in ("RGB", "L", "CMYK"):
        image = image.convert("RGB")
    buffer = io.BytesIO()
    try:
        image.save(buffer, format="JPEG", quality=quality)
    except (OSError, ValueError) as exc:
        raise CaptureError(f"encode JPEG: {exc}") from exc
    return buffer.getvalue()


def _run_tool(tool: str, args: list[str], timeout: float) -> bytes:
    """Run a capture tool that writes a JPEG file and return the file's bytes."""
    executable = shutil.which(tool)
    if executable is None:
        raise CaptureError(f"{tool} not found: {_INSTALL_HINTS[tool]}")

    with tempfile.TemporaryDirectory(prefix="espbrew-") as tmp:
        output = Path(tmp) / _CAPTURE_FILENAME
        command = [executable, *args, str(output)]
        try:
            completed = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise CaptureError(f"{tool} timed out after {timeout:g}s") from exc
        except OSError as exc:
            raise CaptureError(f"{tool} failed: {exc}") from exc

        if completed.returncode != 0:
            text = (completed.stdout or b"").decode("utf-8", errors="replace")
            raise CaptureError(
                f"{tool} failed: exit status {completed.returncode}, output: {text}"
            )

        try:
            return output.read_bytes()
        except OSError as exc:
            raise CaptureError(f"read capture file: {exc}") from exc


def _capture_platform(width: int, height: int, quality: int, timeout: float) -> bytes:
    platform = sys.platform
    if platform == "darwin":
        # imagesnap picks the default camera when none is named.
        return _run_tool("imagesnap", [], timeout)
    if platform.startswith("linux"):
        args = [
            "-r", f"{width}x{height}",
            "--jpeg", str(quality),
            "-q",
            "-S", "10",
        ]
        return _run_tool("fswebcam", args, timeout)
    if platform in ("win32", "cygwin"):
        raise CaptureError("Windows capture is not supported; consider using ffmpeg")
    raise CaptureError(f"unsupported platform: {platform}")


class Capturer:
    """Captures images and stores them."""

    def __init__(self, store: Store, discoverer: Discoverer | None = None) -> None:
        self.store = store
        self.discoverer = discoverer if discoverer is not None else Discoverer()

    def _resolve_camera(self, camera_id: str) -> str:
        if camera_id:
            return camera_id
        try:
            cameras = self.discoverer.discover()
        except OSError as exc:
            log.debug("Camera discovery failed: %s", exc)
            cameras = []
        if cameras:
            log.info("Using discovered camera: %s", cameras[0].name)
            return cameras[0].id
        log.debug("No cameras discovered, using platform default")
        return DEFAULT_CAMERA_ID

    def capture(self, request: CaptureRequest) -> CaptureResult:
        """Capture one image as the request describes and save it."""
        timeout = request.timeout or DEFAULT_TIMEOUT
        quality = request.quality or DEFAULT_QUALITY
        fmt = request.format or DEFAULT_FORMAT

        camera_id = self._resolve_camera(request.camera_id)
        log.info(
            "Capturing image: camera=%s width=%d height=%d",
            camera_id, request.width, request.height,
        )

        data = _capture_platform(request.width, request.height, quality, timeout)
        width, height = image_dimensions(data)

        try:
            path = self.store.save(camera_id, fmt, data)
        except OSError as exc:
            raise CaptureError(f"save image: {exc}") from exc

        result = CaptureResult(
            path=path,
            data=data,
            format=fmt,
            width=width,
            height=height,
            size=len(data),
        )
        log.info(
            "Capture completed: %s (%dx%d, %d bytes)",
            path, result.width, result.height, result.size,
        )
        return result


def capturer_with_default_store() -> Capturer:
    """Return a capturer that saves to ~/.espbrew/captures."""
    return Capturer(default_store(), Discoverer())


def capture(camera_id: str = "", width: int = 0, height: int = 0) -> CaptureResult:
    """Capture an image with default settings into the default store."""
    request = CaptureRequest(
        camera_id=camera_id,
        width=width,
        height=height,
        format=DEFAULT_FORMAT,
        quality=DEFAULT_QUALITY,
        timeout=DEFAULT_TIMEOUT,
    )
    return capturer_with_default_store().capture(request)