"""Parsing and formatting helpers for flash commands."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

log = logging.getLogger(__name__)

_BYTES_PER_LINE = 16
_MAX_U32 = 0xFFFFFFFF
_MAX_U64 = 0xFFFFFFFFFFFFFFFF
_HEX_DIGITS = re.compile(r"[0-9a-fA-F_]+")


def parse_hex(s: str) -> int:
    """Parse a hexadecimal number that fits in 32 bits.

    Leading blanks are skipped and scanning stops at the first character
    that is not a hex digit, so "0x1000" reads as 0.
    """
    text = s.lstrip(" \t\r")
    match = _HEX_DIGITS.match(text)
    if match is None:
        raise ValueError(f"parse hex: expected hexadecimal integer in {s!r}")
    digits = match.group(0)
    if "_" in digits:
        raise ValueError(f"parse hex: invalid syntax {digits!r}")
    value = int(digits, 16)
    if value > _MAX_U64:
        raise ValueError(f"parse hex: value out of range {digits!r}")
    if value > _MAX_U32:
        raise ValueError(f"value too large: {s}")
    return value


def hex_dump_lines(data: bytes, lines: int) -> list[str]:
    """Return up to ``lines`` full 16-byte hex dump lines of ``data``."""
    count = min(len(data) // _BYTES_PER_LINE, lines)
    result = []
    for index in range(count):
        offset = index * _BYTES_PER_LINE
        chunk = data[offset : offset + _BYTES_PER_LINE]
        hex_part = "".join(f"{b:02x} " for b in chunk)
        ascii_part = "".join(chr(b) if 32 <= b <= 126 else "." for b in chunk)
        result.append(f"  0x{offset:04x}: {hex_part:<48} {ascii_part}")
    return result


def _system_ports() -> list[str]:
    from serial.tools import list_ports

    return [port.device for port in list_ports.comports()]


def find_device_port(ports: Iterable[str] | None = None) -> str:
    """Pick the serial port most likely to hold an ESP device.

    USB and ACM ports win; otherwise a cu.* or tty.* port that is not a
    Bluetooth port; otherwise the first port. With no list given, the
    ports of this host are used.
    """
    candidates = list(_system_ports() if ports is None else ports)
    if not candidates:
        raise LookupError("no serial ports found")

    for port in candidates:
        lower = port.lower()
        if "usb" in lower or "acm" in lower:
            return port

    for port in candidates:
        lower = port.lower()
        if ("cu." in lower or "tty." in lower) and "bluetooth" not in lower:
            return port

    log.debug("No ESP-specific port found, using first available port")
    return candidates[0]