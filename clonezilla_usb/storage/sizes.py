"""Byte-count helpers shared by validation, transfer and error messages."""

from __future__ import annotations

_UNITS = (
    ("TB", 1024**4),
    ("GB", 1024**3),
    ("MB", 1024**2),
    ("KB", 1024),
)


def format_bytes(size_bytes) -> str:
    """Format a byte count with whole units (1023 -> "1023B", 1024 -> "1KB")."""
    if size_bytes is None:
        return "0B"
    size = int(size_bytes)
    for unit, factor in _UNITS:
        if size >= factor:
            return f"{size // factor}{unit}"
    return f"{size}B"

