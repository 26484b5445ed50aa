[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "espbrew"
version = "0.1.0"
description = "Camera capture, capture storage and flash helper utilities for an ESP32 development bench"
requires-python = ">=3.10"
keywords = ["esp32", "espressif", "camera", "capture", "embedded", "hexdump"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems",
    "Topic :: Multimedia :: Graphics :: Capture",
]
dependencies = [
    "pillow",
    "pyserial",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
espbrew = "espbrew.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["espbrew"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
