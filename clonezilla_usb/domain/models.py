"""Domain objects for a single setup run.

Replaces the raw lsblk dicts and loose partition strings with small
type-safe values that the workflow passes between components.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

# Mountpoints that mark a disk as the running system's disk
ROOT_MOUNTPOINTS = {"/", "/boot", "/boot/efi", "/boot/firmware"}


# ==============================================================================
# Block Device Domain
# ==============================================================================


@dataclass(frozen=True)
class BlockDevice:
    """A disk-type block device reported by lsblk."""

    path: str  # e.g., "/dev/sdb"
    size_bytes: int
    model: Optional[str] = None
    vendor: Optional[str] = None
    removable: bool = False
    system_disk: bool = False
    mountpoints: tuple[str, ...] = ()
    partitions: tuple[str, ...] = ()
    fstype: Optional[str] = None

    @property
    def name(self) -> str:
        """Kernel name (e.g., "sdb")."""
        return self.path.rsplit("/", 1)[-1]

    @property
    def is_mounted(self) -> bool:
        return bool(self.mountpoints)

    @classmethod
    def from_lsblk_dict(cls, device: dict[str, Any], removable: bool = False) -> BlockDevice:
        """Convert an lsblk JSON entry (with children) to a BlockDevice.

        Args:
            device: Entry from ``lsblk -J -b`` output
            removable: Removable flag from sysfs, OR-ed with lsblk's rm/tran

        Raises:
            KeyError: If the name is missing
        """
        name = device["name"]
        path = device.get("path") or f"/dev/{name}"
        try:
            size_bytes = int(device.get("size") or 0)
        except (TypeError, ValueError):
            size_bytes = 0

        mountpoints: list[str] = []
        partitions: list[str] = []
        for entry in [device, *(device.get("children") or [])]:
            mountpoint = entry.get("mountpoint")
            if mountpoint:
                mountpoints.append(mountpoint)
        for child in device.get("children") or []:
            if child.get("type") == "part":
                partitions.append(child.get("path") or f"/dev/{child.get('name')}")

        rm_flag = device.get("rm")
        is_removable = (
            removable
            or rm_flag in (1, True, "1")
            or device.get("tran") == "usb"
        )
        model = (device.get("model") or "").strip() or None
        vendor = (device.get("vendor") or "").strip() or None

        return cls(
            path=path,
            size_bytes=size_bytes,
            model=model,
            vendor=vendor,
            removable=is_removable,
            system_disk=any(mp in ROOT_MOUNTPOINTS for mp in mountpoints),
            mountpoints=tuple(mountpoints),
            partitions=tuple(partitions),
            fstype=device.get("fstype") or None,
        )


@dataclass(frozen=True)
class PartitionPair:
    """The two partitions of a prepared drive: boot image and backup payload."""

    first: str  # e.g., "/dev/sdb1"
    second: str  # e.g., "/dev/sdb2"


# ==============================================================================
# Backup Source Domain
# ==============================================================================


@dataclass(frozen=True)
class BackupPreset:
    """A predefined backup image offered in the backup menu."""

    name: str
    url: str


# ==============================================================================
# Workflow Domain
# ==============================================================================


class Stage(Enum):
    """Stages of a single run, in the order the workflow visits them."""

    START = "start"
    PRECONDITIONS = "preconditions"
    DEVICE_SELECTION = "device_selection"
    PARTITION = "partition"
    FORMAT = "format"
    INSTALL_IMAGE = "install_image"
    DETECT_EXISTING = "detect_existing"
    INSTALL_BACKUP = "install_backup"
    CLEANUP = "cleanup"
    END = "end"


@dataclass
class StageHistory:
    """Record of visited stages, used for logging and tests."""

    visited: list[Stage] = field(default_factory=list)

    def enter(self, stage: Stage) -> None:
        self.visited.append(stage)

    @property
    def current(self) -> Optional[Stage]:
        return self.visited[-1] if self.visited else None
