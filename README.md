# espbrew

Tools for an ESP32 development bench: grab still images from a camera
pointed at your boards, keep them organised on disk and tidy them up
later. The package also has small helpers for hex numbers, hex dumps of
flash contents and picking the serial port an ESP board is most likely
on.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

Capturing runs a platform tool that must be on the `PATH`:

- macOS: `imagesnap` (always uses the default camera)
- Linux: `fswebcam` (run with the requested resolution and JPEG quality)

Capturing on Windows is not supported and raises `CaptureError`.

## Command line

The `espbrew` command has two subcommands, `capture` and `captures`.

### Capture an image

```
espbrew capture
espbrew capture --list
espbrew capture --camera-id cam-001 --width 1920 --height 1080
espbrew capture --quality 90 --timeout 10s
espbrew capture my-photo.jpg
```

Each image is saved under `~/.espbrew/captures/`, in a directory per day
(`YYYY-MM-DD`), with a name such as `cam-<first 8 characters of the
camera id>-20260527-143000.jpg`. A `metadata.json` in the day's directory
records every capture. When an output file is given, the saved image is
also copied there.

Options:

- `--camera-id` (default: the first camera found, else `default`)
- `--width` (default 1280), `--height` (default 720)
- `--format` (default `jpg`); it sets the extension of the saved file,
  the data is whatever JPEG the capture tool wrote
- `--quality` (default 85)
- `--timeout` (default `5s`)
- `--list`: list the cameras found before capturing

Cameras are found by reading `/sys/class/video4linux` on Linux; on other
systems none are listed.

### Manage captures

```
espbrew captures list
espbrew captures delete "2026-05-27/cam-*"
espbrew captures delete --older-than 24h
espbrew captures delete --all --yes
```

`list` shows `.jpg`, `.jpeg` and `.png` files under the captures
directory, newest first. `delete` picks files by one of `--all`,
`--older-than DURATION` or a pattern matched against the path relative
to the captures directory (`*` and `?` do not cross `/`). Durations use
the units `ns`, `us`, `ms`, `s`, `m` and `h`, e.g. `1.5h` or `2h45m`;
days are not accepted. Deletion asks `Continue? (y/N)` unless `--yes` is
given.

## Library use

```python
from datetime import date, timedelta

from espbrew.camera import CameraInfo, VideoFormat, detect_backend
from espbrew.storage import Store
from espbrew.formatting import parse_hex, hex_dump_lines, find_device_port

detect_backend("/dev/video0")            # Backend.V4L2
parse_hex("10000")                       # 0x10000

store = Store("/tmp/captures")
path = store.save("cam-001", "jpg", b"\xff\xd8\xff\xe0")
store.list_captures(date.today())        # [CaptureMetadata(...)]
store.cleanup_old(timedelta(days=7))     # number of day directories removed

hex_dump_lines(b"0123456789abcdef", 4)   # ["  0x0000: 30 31 ... 0123456789abcdef"]
find_device_port(["/dev/ttyS0", "/dev/ttyUSB0"])   # "/dev/ttyUSB0"
```

- `espbrew.camera`: `Backend`, `VideoFormat`, `CameraInfo` (with
  `is_available()` and `get_best_format(width, height)`),
  `detect_backend()`.
- `espbrew.storage`: `Store` (`date_dir`, `generate_filename`, `save`,
  `list_captures`, `cleanup_old`, `relative_path`), `CaptureMetadata`,
  `CameraMetadata`, `default_store()`.
- `espbrew.discovery`: `Discoverer` (`discover`, `get_by_id`, `list`,
  `refresh`; it can be given its own device enumerator) and `discover()`.
- `espbrew.capture`: `Capturer`, `CaptureRequest`, `CaptureResult`,
  `CaptureError`, `capture()`, `capturer_with_default_store()`,
  `frame_to_jpeg()`, `image_dimensions()`.
- `espbrew.formatting`: `parse_hex()`, `hex_dump_lines()`,
  `find_device_port()` (with no list, the serial ports of this host).

## What it does not do

espbrew does not talk to ESP devices: it does not flash, erase or read
flash memory, open a serial monitor, keep a device inventory, or run a
cluster server. The helpers in `espbrew.formatting` only parse and
format values for such work.