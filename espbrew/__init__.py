"""Camera capture, capture storage and hex/serial-port helpers for an ESP32 bench."""

__version__ = "0.1.0"

__all__ = ["__version__"]