from __future__ import annotations

from typing import Iterable

from clonezilla_usb.domain.models import BlockDevice
from clonezilla_usb.storage.sizes import format_bytes


HEADERS = ("DEVICE", "SIZE", "TYPE", "MODEL", "MOUNTED", "NOTES")


def _notes(device: BlockDevice) -> str:
    tags = []
    if device.removable:
        tags.append("[USB/SD]")
    if device.system_disk:
        tags.append("[SYSTEM]")
    return " ".join(tags)


def format_device_table(devices: Iterable[BlockDevice]) -> list[str]:
    """Render block devices as aligned table lines, header first."""
    rows = [HEADERS]
    for device in devices:
        rows.append(
            (
                device.path,
                format_bytes(device.size_bytes),
                "disk",
                device.model or "-",
                "yes" if device.is_mounted else "no",
                _notes(device),
            )
        )
    widths = [max(len(row[col]) for row in rows) for col in range(len(HEADERS))]
    return [
        "  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip()
        for row in rows
    ]
