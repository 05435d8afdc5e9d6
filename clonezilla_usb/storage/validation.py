"""Safety validation for the target device.

All validation functions raise specific exceptions from the exceptions module
rather than returning boolean values. The device selection loop catches
:class:`~clonezilla_usb.storage.exceptions.DeviceError` and re-prompts.

Example:
    from clonezilla_usb.storage.validation import validate_candidate

    try:
        device = validate_candidate(runner, "/dev/sdb", min_size=MIN_DEVICE_SIZE)
    except DeviceError as error:
        report("ERROR", str(error))
"""

from __future__ import annotations

from typing import Callable, Optional

from clonezilla_usb.config.settings import MIN_DEVICE_SIZE
from clonezilla_usb.domain.models import BlockDevice, PartitionPair
from clonezilla_usb.logging import LoggerFactory
from clonezilla_usb.services.command_runner import CommandRunner

from . import devices
from .exceptions import (
    DeviceBusyError,
    DeviceNotFoundError,
    DeviceTooSmallError,
    NotEnoughPartitionsError,
    SystemDiskError,
    WrongFilesystemError,
)
from .sizes import format_bytes


log = LoggerFactory.for_device()


def validate_device_size(device: BlockDevice, min_size: int = MIN_DEVICE_SIZE) -> None:
    """Raise DeviceTooSmallError if ``device`` is below ``min_size`` bytes."""
    if device.size_bytes < min_size:
        raise DeviceTooSmallError(device.path, min_size, device.size_bytes)


def _lookup(runner: CommandRunner, path: str) -> BlockDevice:
    if not devices.is_block_device(path):
        raise DeviceNotFoundError(path)
    device = devices.get_device(runner, path)
    if device is None:
        raise DeviceNotFoundError(path)
    return device


def validate_candidate(
    runner: CommandRunner,
    path: str,
    *,
    min_size: int = MIN_DEVICE_SIZE,
    skip_confirmation: bool = False,
    confirm_system_disk: Optional[Callable[[BlockDevice], bool]] = None,
) -> BlockDevice:
    """Validate a device chosen for a full setup.

    Checks run in order: block device, mount state, minimum size, system
    disk. The system-disk check is soft: it asks ``confirm_system_disk``
    unless ``skip_confirmation`` is set.

    Raises:
        DeviceNotFoundError: Not a block device
        DeviceBusyError: Device or a partition is mounted
        DeviceTooSmallError: Below ``min_size``
        SystemDiskError: System disk and the operator declined
    """
    device = _lookup(runner, path)

    if device.is_mounted:
        raise DeviceBusyError(device.path, device.mountpoints)

    validate_device_size(device, min_size)

    if device.system_disk:
        log.warning(f"Device {device.path} may be the system disk!")
        if skip_confirmation:
            log.warning("Continuing because confirmations are skipped")
        elif confirm_system_disk is None or not confirm_system_disk(device):
            raise SystemDiskError(device.path)

    log.debug(f"Validated {device.path} ({format_bytes(device.size_bytes)})")
    return device


def detect_existing_layout(runner: CommandRunner, path: str) -> PartitionPair:
    """Validate a device prepared by an earlier run, for backup-only mode.

    Raises:
        DeviceNotFoundError: Not a block device
        NotEnoughPartitionsError: Fewer than two partitions
        WrongFilesystemError: Second partition is not FAT32
    """
    if not devices.is_block_device(path):
        raise DeviceNotFoundError(path)

    partitions = devices.list_partitions(runner, path)
    if len(partitions) < 2:
        raise NotEnoughPartitionsError(path, len(partitions))

    fstype = devices.get_fstype(runner, partitions[1])
    if fstype not in devices.FAT_FILESYSTEMS:
        raise WrongFilesystemError(path, partitions[1], fstype or "")

    log.debug(f"Found existing layout on {path}: {partitions[0]}, {partitions[1]}")
    return PartitionPair(first=partitions[0], second=partitions[1])
