"""Block device inventory using lsblk and blkid.

Device Detection:
    ``lsblk -J -b`` enumerates disk-type devices with size, model, vendor,
    removable flag, transport and mountpoints of the device and its children.
    Each entry becomes a :class:`~clonezilla_usb.domain.models.BlockDevice`.

Classification:
    - Removable: lsblk ``rm`` flag, USB transport, or
      ``/sys/block/<name>/removable`` reading 1
    - System disk: the device or one of its partitions is mounted at
      ``/``, ``/boot``, ``/boot/efi`` or ``/boot/firmware``
    - Mounted: any mountpoint on the device or a partition

This is a heuristic. A device that is not tagged ``[SYSTEM]`` can still hold
data the operator cares about; the wipe confirmation is the real safeguard.

All functions are read-only and run in dry-run mode too.
"""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path
from typing import Iterator, Optional

from clonezilla_usb.domain.models import BlockDevice
from clonezilla_usb.logging import LoggerFactory
from clonezilla_usb.services.command_runner import CommandError, CommandRunner


log = LoggerFactory.for_device()

LSBLK_COLUMNS = "NAME,PATH,SIZE,TYPE,MODEL,VENDOR,RM,TRAN,MOUNTPOINT,FSTYPE"
SYS_BLOCK = Path("/sys/block")
FAT_FILESYSTEMS = {"vfat", "fat32"}


def normalize_device_name(text: str) -> str:
    """Turn operator input like ``sdb`` or ``/dev/sdb`` into ``/dev/sdb``."""
    name = (text or "").strip()
    if name.startswith("/dev/"):
        name = name[len("/dev/"):]
    return f"/dev/{name}"


def partition_path(device: str, index: int) -> str:
    """Return the node of partition ``index`` on ``device``.

    Devices whose name ends in a digit (mmcblk0, nvme0n1, loop0) use a
    ``p`` separator.
    """
    separator = "p" if device[-1:].isdigit() else ""
    return f"{device}{separator}{index}"


def is_block_device(path: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(path).st_mode)
    except OSError:
        return False


def _read_removable_flag(name: str) -> bool:
    try:
        return (SYS_BLOCK / name / "removable").read_text().strip() == "1"
    except OSError:
        return False


def _lsblk_json(runner: CommandRunner, path: Optional[str] = None) -> list[dict]:
    argv = ["lsblk", "-J", "-b", "-o", LSBLK_COLUMNS]
    if path:
        argv.append(path)
    try:
        result = runner.run(argv)
        data = json.loads(result.stdout or "{}")
    except (CommandError, json.JSONDecodeError) as error:
        log.debug(f"lsblk failed: {error}")
        return []
    return data.get("blockdevices", []) or []


def iter_disks(runner: CommandRunner) -> Iterator[BlockDevice]:
    """Yield every disk-type block device, in lsblk order."""
    for entry in _lsblk_json(runner):
        if entry.get("type") != "disk" or not entry.get("name"):
            continue
        yield BlockDevice.from_lsblk_dict(
            entry, removable=_read_removable_flag(entry["name"])
        )


def get_device(runner: CommandRunner, path: str) -> Optional[BlockDevice]:
    """Return facts for the disk at ``path``, or None if lsblk does not know it."""
    for entry in _lsblk_json(runner, path):
        if entry.get("type") != "disk" or not entry.get("name"):
            continue
        return BlockDevice.from_lsblk_dict(
            entry, removable=_read_removable_flag(entry["name"])
        )
    return None


def list_partitions(runner: CommandRunner, path: str) -> list[str]:
    """Return partition nodes of ``path`` in table order."""
    try:
        result = runner.run(["lsblk", "-lnpo", "NAME,TYPE", path])
    except CommandError as error:
        log.debug(f"Cannot list partitions of {path}: {error.detail}")
        return []
    partitions = []
    for line in result.stdout.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[1] == "part":
            partitions.append(parts[0])
    return partitions


def get_fstype(runner: CommandRunner, partition: str) -> Optional[str]:
    """Return the filesystem type blkid reports for ``partition``."""
    result = runner.run(["blkid", "-s", "TYPE", "-o", "value", partition], check=False)
    fstype = result.stdout.strip().lower()
    return fstype or None
