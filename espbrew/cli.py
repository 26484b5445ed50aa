"""Command line for capturing camera images and managing saved captures."""

from __future__ import annotations

import argparse
import logging
import os
import re
import shutil
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from fractions import Fraction
from pathlib import Path

from .capture import (
    DEFAULT_FORMAT,
    DEFAULT_QUALITY,
    CaptureError,
    CaptureRequest,
    capturer_with_default_store,
)
from .discovery import Discoverer

log = logging.getLogger(__name__)

CAPTURE_EXTENSIONS = (".jpg", ".jpeg", ".png")
_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_NANOSECOND = 1
_MICROSECOND = 1000 * _NANOSECOND
_MILLISECOND = 1000 * _MICROSECOND
_SECOND = 1000 * _MILLISECOND
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE

_UNITS = {
    "ns": _NANOSECOND,
    "us": _MICROSECOND,
    "\u00b5s": _MICROSECOND,
    "\u03bcs": _MICROSECOND,
    "ms": _MILLISECOND,
    "s": _SECOND,
    "m": _MINUTE,
    "h": _HOUR,
}
_SEGMENT = re.compile(r"([0-9]*)(?:\.([0-9]*))?([^0-9.]*)")


@dataclass
class CaptureFile:
    """A saved capture, with its path relative to the captures directory."""

    path: str
    filename: str
    size: int
    mod_time: datetime


def format_bytes(b: int) -> str:
    """Render a byte count with binary units, e.g. "1.5 KB"."""
    unit = 1024
    if b < unit:
        return f"{b} B"
    div, exp = unit, 0
    n = b // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{b / div:.1f} {'KMGTPE'[exp]}B"


def captures_dir() -> Path:
    """Return the directory captures are saved in."""
    return Path.home() / ".espbrew" / "captures"


def list_captures(base_dir: str | Path | None = None) -> list[CaptureFile]:
    """Return the image files under the captures directory, newest first."""
    root = Path(base_dir) if base_dir is not None else captures_dir()
    found: list[CaptureFile] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            if Path(name).suffix.lower() not in CAPTURE_EXTENSIONS:
                continue
            full = Path(dirpath) / name
            try:
                info = full.stat()
                rel = full.relative_to(root)
            except (OSError, ValueError):
                continue
            found.append(
                CaptureFile(
                    path=str(rel),
                    filename=name,
                    size=info.st_size,
                    mod_time=datetime.fromtimestamp(info.st_mtime).astimezone(),
                )
            )
    found.sort(key=lambda c: c.mod_time, reverse=True)
    return found


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "300ms", "1.5h" or "2h45m".

    Valid units are ns, us (or µs), ms, s, m and h; days are not accepted.
    """
    invalid = ValueError(f'time: invalid duration "{text}"')
    body = text
    negative = False
    if body[:1] in ("+", "-"):
        negative = body[0] == "-"
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise invalid

    total = Fraction(0)
    pos = 0
    while pos < len(body):
        match = _SEGMENT.match(body, pos)
        whole, frac, unit = match.group(1), match.group(2), match.group(3)
        if not whole and not frac:
            raise invalid
        if not unit:
            raise ValueError(f'time: missing unit in duration "{text}"')
        if unit not in _UNITS:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{text}"')
        value = Fraction(int(whole or "0"))
        if frac:
            value += Fraction(int(frac), 10 ** len(frac))
        total += value * _UNITS[unit]
        pos = match.end()

    if negative:
        total = -total
    return timedelta(microseconds=float(total / _MICROSECOND))


def _class_char(pattern: str, j: int, escapes: bool) -> tuple[str, int]:
    if j >= len(pattern) or pattern[j] in "-]":
        raise ValueError("syntax error in pattern")
    if pattern[j] == "\\" and escapes:
        j += 1
        if j >= len(pattern):
            raise ValueError("syntax error in pattern")
    return pattern[j], j + 1


def _translate(pattern: str) -> str:
    """Turn a shell file name pattern into a regular expression.

    "*" and "?" never match the path separator.
    """
    sep = re.escape(os.sep)
    escapes = os.sep != "\\"
    out: list[str] = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "*":
            out.append(f"[^{sep}]*")
            i += 1
        elif c == "?":
            out.append(f"[^{sep}]")
            i += 1
        elif c == "\\" and escapes:
            if i + 1 >= len(pattern):
                raise ValueError("syntax error in pattern")
            out.append(re.escape(pattern[i + 1]))
            i += 2
        elif c == "[":
            j = i + 1
            negate = j < len(pattern) and pattern[j] == "^"
            if negate:
                j += 1
            ranges: list[str] = []
            first = True
            while True:
                if j >= len(pattern):
                    raise ValueError("syntax error in pattern")
                if pattern[j] == "]" and not first:
                    j += 1
                    break
                first = False
                lo, j = _class_char(pattern, j, escapes)
                hi = lo
                if j < len(pattern) and pattern[j] == "-":
                    hi, j = _class_char(pattern, j + 1, escapes)
                if lo <= hi:
                    ranges.append(f"{re.escape(lo)}-{re.escape(hi)}")
            if ranges:
                out.append("[" + ("^" if negate else "") + "".join(ranges) + "]")
            else:
                out.append("." if negate else "(?!)")
            i = j
        else:
            out.append(re.escape(c))
            i += 1
    return "".join(out)


def select_captures(
    captures: list[CaptureFile],
    pattern: str | None = None,
    delete_all: bool = False,
    older_than: timedelta | None = None,
    now: datetime | None = None,
) -> list[CaptureFile]:
    """Choose the captures to delete: all, those older than an age, or by pattern."""
    if delete_all:
        return list(captures)
    if older_than is not None:
        cutoff = (now or datetime.now().astimezone()) - older_than
        return [c for c in captures if c.mod_time < cutoff]
    if pattern:
        try:
            regex = re.compile(_translate(pattern), re.DOTALL)
        except (ValueError, re.error) as exc:
            raise ValueError(f"invalid pattern: {exc}") from exc
        return [c for c in captures if regex.fullmatch(c.path)]
    raise ValueError("specify a pattern, --all, or --older-than")


def _list_cameras() -> None:
    cameras = Discoverer().discover()
    if not cameras:
        log.info("No cameras found")
        return
    log.info("Available cameras:")
    for number, cam in enumerate(cameras, start=1):
        log.info("  %d. %s", number, cam.name)
        log.info("     ID:     %s", cam.id)
        log.info("     Backend: %s", cam.backend)


def _run_capture(args: argparse.Namespace) -> None:
    if args.list:
        _list_cameras()

    capturer = capturer_with_default_store()
    request = CaptureRequest(
        camera_id=args.camera_id,
        width=args.width,
        height=args.height,
        format=args.format,
        quality=args.quality,
        timeout=args.timeout.total_seconds(),
    )
    log.info(
        "Capturing image: camera=%s width=%d height=%d format=%s",
        request.camera_id, request.width, request.height, request.format,
    )
    try:
        result = capturer.capture(request)
    except CaptureError as exc:
        raise CaptureError(f"capture failed: {exc}") from exc

    if args.output:
        try:
            shutil.copyfile(result.path, args.output)
        except OSError as exc:
            raise OSError(f"copy to output file: {exc}") from exc
        log.info("Image copied from %s to %s", result.path, args.output)
    else:
        log.info(
            "Image captured: %s (%dx%d, %d bytes)",
            result.path, result.width, result.height, result.size,
        )


def _run_captures_list(args: argparse.Namespace) -> None:
    captures = list_captures()
    if not captures:
        log.info("No captures found")
        return
    log.info("Found %d captures:", len(captures))
    for number, cap in enumerate(captures, start=1):
        log.info("  %d. %s", number, cap.path)
        log.info(
            "     Size: %s, Modified: %s",
            format_bytes(cap.size), cap.mod_time.strftime(_TIME_FORMAT),
        )


def _confirm(prompt: str) -> bool:
    try:
        answer = input(prompt)
    except EOFError:
        answer = ""
    words = answer.split()
    return bool(words) and words[0].lower() == "y"


def _run_captures_delete(args: argparse.Namespace) -> None:
    base = captures_dir()
    captures = list_captures(base)
    if not captures:
        log.info("No captures found")
        return

    older_than = None
    if not args.all and args.older_than:
        try:
            older_than = parse_duration(args.older_than)
        except ValueError as exc:
            raise ValueError(f"parse duration: {exc}") from exc

    to_delete = select_captures(
        captures, pattern=args.pattern, delete_all=args.all, older_than=older_than
    )
    if not to_delete:
        log.info("No captures matched the criteria")
        return

    log.info("Will delete %d captures:", len(to_delete))
    for cap in to_delete:
        log.info("  - %s", cap.path)

    if not args.yes and not _confirm("Continue? (y/N): "):
        log.info("Cancelled")
        return

    for cap in to_delete:
        try:
            (base / cap.path).unlink()
        except OSError as exc:
            log.error("Failed to delete %s: %s", cap.path, exc)
        else:
            log.info("Deleted %s", cap.path)
    log.info("Deleted %d captures", len(to_delete))


def _duration_arg(text: str) -> timedelta:
    try:
        return parse_duration(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="espbrew", description="ESP32 cluster flashing tool")
    commands = parser.add_subparsers(dest="command")

    capture = commands.add_parser(
        "capture",
        help="Capture image from camera",
        description=(
            "Capture an image from a camera and save it to a file. Without an output "
            "file the image is saved to ~/.espbrew/captures/ with a timestamped name."
        ),
    )
    capture.add_argument("output", nargs="?", help="Output file")
    capture.add_argument("--camera-id", default="", help="Camera ID (default: first available)")
    capture.add_argument("--width", type=int, default=1280, help="Image width")
    capture.add_argument("--height", type=int, default=720, help="Image height")
    capture.add_argument("--format", default=DEFAULT_FORMAT, help="Output format (jpg, png)")
    capture.add_argument("--quality", type=int, default=DEFAULT_QUALITY, help="JPEG quality (1-100)")
    capture.add_argument(
        "--timeout", type=_duration_arg, default=timedelta(seconds=5), help="Capture timeout"
    )
    capture.add_argument("--list", action="store_true", help="List cameras before capturing")
    capture.set_defaults(handler=_run_capture)

    captures = commands.add_parser(
        "captures",
        help="Manage captured images",
        description="List, view, or delete captured images from ~/.espbrew/captures/",
    )
    captures.set_defaults(handler=None, subparser=captures)
    sub = captures.add_subparsers(dest="captures_command")

    listing = sub.add_parser("list", help="List captured images")
    listing.set_defaults(handler=_run_captures_list)

    delete = sub.add_parser(
        "delete",
        help="Delete captured images",
        description=(
            "Delete captured images whose relative path (e.g. 2026-05-27/cam-xxx.jpg) "
            "matches a pattern, all of them, or those older than a duration."
        ),
    )
    delete.add_argument("pattern", nargs="?", help="Pattern matched against the relative path")
    delete.add_argument("--all", action="store_true", help="Delete all captures")
    delete.add_argument(
        "--older-than", default="", help="Delete captures older than duration (e.g. 24h)"
    )
    delete.add_argument("--yes", action="store_true", help="Skip confirmation")
    delete.set_defaults(handler=_run_captures_delete)

    parser.set_defaults(handler=None, subparser=parser)
    return parser


def _configure_logging() -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")


def main(argv: list[str] | None = None) -> int:
    """Run the command line and return the exit status."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging()

    if args.handler is None:
        args.subparser.print_help()
        return 0

    try:
        args.handler(args)
    except (CaptureError, ValueError, LookupError, OSError) as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())