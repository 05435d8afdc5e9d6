"""Settings and fixed defaults for the USB setup tool."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


PROG_NAME = "clonezilla-usb-setup"

SETTINGS_PATH = Path(
    os.environ.get(
        "CLONEZILLA_USB_SETTINGS_PATH",
        Path("/etc") / PROG_NAME / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
LIVE_BASE_URL = (
    "https://sourceforge.net/projects/clonezilla/files/clonezilla_live_stable"
)
INTERNET_CHECK_URL = "https://www.google.com"

PARTITION_START = "1MiB"
PARTITION_END = "513MiB"
PARTITION_END_BYTES = 513 * 1024**2
MIN_DEVICE_SIZE = 8 * 1024**3
WIPE_SIZE = "1M"

MAX_RETRIES = 3
DOWNLOAD_TIMEOUT_SECONDS = 300
DOWNLOAD_RETRY_DELAY_SECONDS = 5
INTERNET_CHECK_TIMEOUT_SECONDS = 10
INTERNET_RETRY_DELAY_SECONDS = 3
PARTITION_SETTLE_SECONDS = 5
UNMOUNT_TIMEOUT_SECONDS = 10
HTTP_PROBE_TIMEOUT_SECONDS = 10

# Extra headroom required when the remote size cannot be determined
UNKNOWN_SIZE_HEADROOM = 100 * 1024**2

MOUNT_POINT = Path("/mnt/usb")
ZIP_NAME = "clonezilla-live.zip"
BACKUP_NAME = "backup.zip"
CHECKSUM_SUFFIX = ".sha256"

LIVE_LABEL = "CLONEZILLA"
BACKUP_LABEL = "BACKUP"

DEFAULT_DOWNLOAD_DIR = Path(os.environ.get("CLONEZILLA_USB_DOWNLOAD_DIR", "/root"))
DEFAULT_LOG_FILE = Path(
    os.environ.get(
        "CLONEZILLA_USB_LOG_FILE",
        Path(tempfile.gettempdir()) / f"{PROG_NAME}.log",
    )
)
DEFAULT_LOCK_FILE = Path(
    os.environ.get(
        "CLONEZILLA_USB_LOCK_FILE",
        Path(tempfile.gettempdir()) / f"{PROG_NAME}.lock",
    )
)

REQUIRED_TOOLS = (
    "parted",
    "unzip",
    "curl",
    "lsblk",
    "blkid",
    "mkfs.vfat",
    "shred",
    "partprobe",
    "mount",
    "umount",
    "sync",
)
INSTALL_HINT = (
    "Install them using: apt-get install parted unzip curl util-linux "
    "dosfstools coreutils"
)

DEFAULT_BACKUP_PRESETS: list[dict[str, str]] = [
    {
        "name": "ASL3 Trixie Backup (Debian Trixie stable with ASL3)",
        "url": "https://anarchy.w5gle.us/asl3_trixie_amd64_2025-12-25-17.zip",
    },
    {
        "name": "Dell 3040 Backup (Debian 12 with ASL3)",
        "url": "https://anarchy.w5gle.us/Dell-3040-2025-08-10-01-img.zip",
    },
]

DEFAULT_SETTINGS: dict[str, Any] = {
    "live_base_url": LIVE_BASE_URL,
    "internet_check_url": INTERNET_CHECK_URL,
    "mount_point": str(MOUNT_POINT),
    "backup_presets": DEFAULT_BACKUP_PRESETS,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def get_backup_presets() -> list[dict[str, str]]:
    """Return the predefined backup sources, dropping malformed entries."""
    presets = get_setting("backup_presets", DEFAULT_BACKUP_PRESETS) or []
    return [
        preset
        for preset in presets
        if isinstance(preset, dict) and preset.get("name") and preset.get("url")
    ]


load_settings()
