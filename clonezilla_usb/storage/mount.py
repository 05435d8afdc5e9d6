"""Mount directory handling for the target partitions.

Usage:
    mount_point = MountPoint(runner, Path("/mnt/usb"))
    mount_point.ensure()
    with mount_point.mounted("/dev/sdb1"):
        extract_archive(runner, archive, mount_point.path)

The ``mounted`` bracket unmounts on every exit path, including
cancellation. Unmount failures during an exception in flight are logged and
do not replace the original error.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from clonezilla_usb.logging import LoggerFactory
from clonezilla_usb.services.command_runner import (
    CommandError,
    CommandRunner,
    CommandTimeout,
)

from .exceptions import MountFailedError, SetupError, UnmountFailedError


log = LoggerFactory.for_install()

PROC_MOUNTS = Path("/proc/mounts")


def is_mountpoint_active(mountpoint: str) -> bool:
    """Check /proc/mounts for ``mountpoint``."""
    try:
        with open(PROC_MOUNTS, "r", encoding="utf-8") as mounts_file:
            for line in mounts_file:
                parts = line.split()
                if len(parts) > 1 and parts[1] == mountpoint:
                    return True
    except FileNotFoundError:
        return os.path.ismount(mountpoint)
    return False


class MountPoint:
    """The directory partitions are mounted on while they are being filled."""

    def __init__(self, runner: CommandRunner, path: Path, *, cancellable: bool = True):
        self.runner = runner
        self.path = Path(path)
        self.cancellable = cancellable
        self.partition: Optional[str] = None

    @property
    def dry_run(self) -> bool:
        return self.runner.dry_run

    def ensure(self) -> None:
        """Create the mount directory if needed."""
        if self.dry_run:
            log.info(f"[DRY RUN] Would create mount directory {self.path}")
            return
        self.path.mkdir(parents=True, exist_ok=True)

    def is_mounted(self) -> bool:
        return is_mountpoint_active(str(self.path))

    def mount(self, partition: str) -> None:
        """Mount ``partition`` on the directory.

        Raises:
            MountFailedError: If mount exits non-zero
        """
        try:
            self.runner.run(
                ["mount", partition, str(self.path)],
                mutating=True,
                cancellable=self.cancellable,
            )
        except CommandError as error:
            raise MountFailedError(partition, str(self.path), error.detail) from error
        self.partition = partition
        log.debug(f"Mounted {partition} on {self.path}")

    def unmount(
        self,
        timeout: Optional[float] = None,
        lazy_fallback: bool = True,
        *,
        force: bool = False,
    ) -> None:
        """Unmount the directory, falling back to a lazy unmount.

        ``force`` runs the commands even after the run was cancelled.

        Raises:
            UnmountFailedError: If the directory is still mounted afterwards
        """
        if self.partition is None and not self.is_mounted():
            return
        target = str(self.path)
        cancellable = self.cancellable and not force
        try:
            self.runner.run(
                ["umount", target],
                timeout=timeout,
                mutating=True,
                cancellable=cancellable,
            )
            self.partition = None
            log.debug(f"Unmounted {target}")
            return
        except CommandTimeout:
            log.warning(f"Unmount of {target} timed out after {timeout}s")
            detail = "timed out"
        except CommandError as error:
            log.debug(f"umount {target} failed: {error.detail}")
            detail = error.detail

        if not lazy_fallback:
            raise UnmountFailedError(target, detail)

        log.warning(f"Attempting lazy unmount of {target}")
        try:
            self.runner.run(["umount", "-l", target], mutating=True, cancellable=cancellable)
        except CommandError as error:
            raise UnmountFailedError(target, error.detail) from error
        self.partition = None

    def remove(self) -> None:
        """Remove the mount directory if it exists and is empty."""
        if not self.path.exists():
            return
        if self.dry_run:
            log.info(f"[DRY RUN] Would remove mount directory {self.path}")
            return
        try:
            self.path.rmdir()
        except OSError as error:
            log.warning(f"Could not remove mount directory {self.path}: {error}")

    @contextmanager
    def mounted(self, partition: str, unmount_timeout: Optional[float] = None) -> Iterator[Path]:
        """Mount ``partition`` for the duration of the block."""
        self.mount(partition)
        try:
            yield self.path
        except BaseException:
            try:
                self.unmount(timeout=unmount_timeout, force=True)
            except SetupError as error:
                log.error(f"Cleanup unmount failed: {error}")
            raise
        self.unmount(timeout=unmount_timeout)
