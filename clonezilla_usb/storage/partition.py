"""Wipe, partition and format the target device.

Layout:
    GPT label with two FAT32 partitions. Partition 1 spans 1MiB to 513MiB,
    carries the boot flag and receives the live system. Partition 2 spans
    513MiB to the end of the device and receives the optional backup.

Sequence:
    1. Unmount existing partitions (failures ignored)
    2. Zero the first megabyte with ``shred -n 1 -z``
    3. ``parted mklabel gpt``
    4. ``parted mkpart`` partition 1
    5. ``parted mkpart`` partition 2
    6. ``parted set 1 boot on``
    7. ``partprobe``, then wait for device nodes to appear
    8. Resolve the two partition nodes
    9. ``mkfs.vfat -F 32`` on both

Every step is fatal on failure and nothing is retried. The next run starts
by wiping again, so a partial layout does not need rolling back.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from clonezilla_usb.config.settings import (
    BACKUP_LABEL,
    LIVE_LABEL,
    PARTITION_END,
    PARTITION_SETTLE_SECONDS,
    PARTITION_START,
    WIPE_SIZE,
)
from clonezilla_usb.domain.models import BlockDevice, PartitionPair
from clonezilla_usb.logging import LoggerFactory, report
from clonezilla_usb.services.command_runner import CommandError

from .devices import list_partitions, partition_path
from .exceptions import PartitionError


if TYPE_CHECKING:
    from clonezilla_usb.app.context import RunContext


log = LoggerFactory.for_device()


def partition_steps(device_path: str) -> list[tuple[str, list[str]]]:
    """Return the (step, argv) pairs that lay out ``device_path``."""
    return [
        ("wipe device", ["shred", "-n", "1", "-z", "-s", WIPE_SIZE, device_path]),
        ("create partition table", ["parted", "-s", device_path, "mklabel", "gpt"]),
        (
            "create first partition",
            ["parted", "-s", device_path, "mkpart", "primary", "fat32",
             PARTITION_START, PARTITION_END],
        ),
        (
            "create second partition",
            ["parted", "-s", device_path, "mkpart", "primary", "fat32",
             PARTITION_END, "100%"],
        ),
        ("set boot flag", ["parted", "-s", device_path, "set", "1", "boot", "on"]),
        ("update partition table", ["partprobe", device_path]),
    ]


def _unmount_existing(ctx: RunContext, device: BlockDevice) -> None:
    existing = list(device.partitions) or list_partitions(ctx.runner, device.path)
    for partition in existing:
        result = ctx.runner.run(["umount", partition], check=False, mutating=True)
        if not result.ok:
            log.debug(f"umount {partition} ignored (rc={result.returncode})")


def partition_device(ctx: RunContext, device: BlockDevice) -> PartitionPair:
    """Lay out ``device`` with two FAT32 partitions and return their nodes.

    Raises:
        PartitionError: If any step fails or the partitions do not appear
    """
    report("INFO", f"Partitioning {device.path}...")
    _unmount_existing(ctx, device)

    for step, argv in partition_steps(device.path):
        log.debug(f"{step}: {' '.join(argv)}")
        try:
            ctx.runner.run(argv, mutating=True)
        except CommandError as error:
            log.error(f"Step '{step}' failed: {error.detail or error.result.returncode}")
            raise PartitionError(step, device.path, error.detail) from error

    if ctx.config.dry_run:
        partitions = PartitionPair(
            first=partition_path(device.path, 1),
            second=partition_path(device.path, 2),
        )
        log.info(f"[DRY RUN] Expected partitions: {partitions.first}, {partitions.second}")
        return partitions

    log.debug(f"Waiting {PARTITION_SETTLE_SECONDS}s for partitions to appear")
    ctx.sleep(PARTITION_SETTLE_SECONDS)

    found = list_partitions(ctx.runner, device.path)
    if len(found) < 2:
        raise PartitionError(
            "detect partitions",
            device.path,
            f"expected 2 partitions, found {len(found)}",
        )
    partitions = PartitionPair(first=found[0], second=found[1])
    log.debug(f"Partitions: {partitions.first}, {partitions.second}")
    return partitions


def create_filesystems(ctx: RunContext, partitions: PartitionPair) -> None:
    """Format both partitions FAT32.

    Raises:
        PartitionError: If mkfs.vfat fails on either partition
    """
    report("INFO", "Creating filesystems...")
    for label, partition in ((LIVE_LABEL, partitions.first), (BACKUP_LABEL, partitions.second)):
        try:
            ctx.runner.run(
                ["mkfs.vfat", "-F", "32", "-n", label, partition], mutating=True
            )
        except CommandError as error:
            raise PartitionError("create filesystem", partition, error.detail) from error
        log.debug(f"Created FAT32 filesystem {label} on {partition}")
