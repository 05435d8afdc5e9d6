"""Custom exceptions for the USB setup workflow.

This module defines a hierarchy of exceptions so that every failure the
workflow can hit is reported with a specific message and, where one exists,
a one-line remediation hint.

Exception Hierarchy:
    SetupError (base)
        ├── EnvironmentCheckError
        │   ├── NotRootError
        │   ├── MissingDependencyError
        │   ├── NoInternetError
        │   └── DownloadDirectoryError
        ├── DeviceError
        │   ├── DeviceNotFoundError
        │   ├── DeviceBusyError
        │   ├── DeviceTooSmallError
        │   ├── SystemDiskError
        │   └── LayoutError
        │       ├── NotEnoughPartitionsError
        │       └── WrongFilesystemError
        ├── PartitionError
        ├── MountError
        │   ├── MountFailedError
        │   └── UnmountFailedError
        ├── TransferError
        │   ├── DownloadFailedError
        │   ├── InsufficientSpaceError
        │   ├── SourceNotFoundError
        │   ├── SourceUnreadableError
        │   └── InvalidSourceError
        ├── IntegrityError
        │   ├── ChecksumMismatchError
        │   ├── ExtractionError
        │   └── EmptyExtractionError
        ├── VersionResolutionError
        ├── InstanceRunningError
        └── OperationCancelled

Usage:
    from clonezilla_usb.storage.exceptions import DeviceTooSmallError

    if device.size_bytes < MIN_DEVICE_SIZE:
        raise DeviceTooSmallError(device.path, MIN_DEVICE_SIZE, device.size_bytes)
"""

from __future__ import annotations

from typing import Iterable, Optional

from .sizes import format_bytes


class SetupError(Exception):
    """Base exception for all setup failures."""

    hint: Optional[str] = None

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        if hint is not None:
            self.hint = hint


class EnvironmentCheckError(SetupError):
    """The host environment cannot run the setup."""


class NotRootError(EnvironmentCheckError):
    """The effective user is not root."""

    def __init__(self):
        super().__init__(
            "This script must be run as root.",
            hint="Re-run the command with sudo",
        )


class MissingDependencyError(EnvironmentCheckError):
    """One or more required external tools are not on PATH."""

    def __init__(self, missing: Iterable[str], hint: Optional[str] = None):
        self.missing = list(missing)
        super().__init__(
            f"Missing dependencies: {', '.join(self.missing)}",
            hint=hint,
        )


class NoInternetError(EnvironmentCheckError):
    """The connectivity probe failed on every attempt."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"No internet connection detected after {attempts} attempts",
            hint="Check network connection",
        )


class DownloadDirectoryError(EnvironmentCheckError):
    """The download directory is missing or not writable."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(
            f"Download directory {reason}: {path}",
            hint="Use -D/--download-dir to specify a different location",
        )


class DeviceError(SetupError):
    """Base exception for device selection and validation errors."""


class DeviceNotFoundError(DeviceError):
    """Device does not exist or is not a block device."""

    def __init__(self, device: str):
        self.device = device
        super().__init__(
            f"Device {device} does not exist or is not a block device",
            hint="Check device name with 'lsblk' command",
        )


class DeviceBusyError(DeviceError):
    """Device or one of its partitions is mounted."""

    def __init__(self, device: str, mountpoints: Iterable[str] = ()):
        self.device = device
        self.mountpoints = list(mountpoints)
        msg = f"Device {device} is currently mounted. Please unmount it first."
        if self.mountpoints:
            msg += f" Active mountpoints: {', '.join(self.mountpoints)}"
        super().__init__(msg, hint=f"Run 'umount {device}*' to unmount all partitions")


class DeviceTooSmallError(DeviceError):
    """Device is below the minimum supported size."""

    def __init__(self, device: str, required: int, actual: int):
        self.device = device
        self.required = required
        self.actual = actual
        super().__init__(
            f"Device {device} is too small. Minimum size required: "
            f"{format_bytes(required)}, device size: {format_bytes(actual)}"
        )


class SystemDiskError(DeviceError):
    """Device looks like the system disk and the operator declined."""

    def __init__(self, device: str):
        self.device = device
        super().__init__(f"Refusing to use {device}: it may be the system disk")


class LayoutError(DeviceError):
    """Existing device layout is not a prepared Clonezilla drive."""


class NotEnoughPartitionsError(LayoutError):
    """Device has fewer than two partitions."""

    def __init__(self, device: str, found: int):
        self.device = device
        self.found = found
        if found == 0:
            msg = f"No partitions found on device {device}"
        else:
            msg = (
                f"Device {device} does not have enough partitions "
                f"(found {found}, need at least 2)"
            )
        super().__init__(msg)


class WrongFilesystemError(LayoutError):
    """Second partition is not FAT32."""

    def __init__(self, device: str, partition: str, fstype: str):
        self.device = device
        self.partition = partition
        self.fstype = fstype
        super().__init__(
            f"Second partition on {device} is not FAT32 (found: {fstype or 'none'})"
        )


class PartitionError(SetupError):
    """A partitioning or formatting step failed."""

    def __init__(self, step: str, device: Optional[str] = None, detail: str = ""):
        self.step = step
        self.device = device
        msg = f"Failed to {step}"
        if device:
            msg += f" on {device}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class MountError(SetupError):
    """Base exception for mount-related errors."""


class MountFailedError(MountError):
    """Partition could not be mounted."""

    def __init__(self, partition: str, mountpoint: str, detail: str = ""):
        self.partition = partition
        self.mountpoint = mountpoint
        msg = f"Failed to mount {partition} on {mountpoint}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class UnmountFailedError(MountError):
    """Mount point is still mounted after unmount attempts."""

    def __init__(self, mountpoint: str, detail: str = ""):
        self.mountpoint = mountpoint
        msg = f"Failed to unmount {mountpoint}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class TransferError(SetupError):
    """Base exception for download and copy errors."""


class DownloadFailedError(TransferError):
    """All download attempts failed."""

    def __init__(self, label: str, attempts: int):
        self.label = label
        self.attempts = attempts
        super().__init__(
            f"Failed to download {label} after {attempts} attempts",
            hint="Check the URL and network connection, then re-run",
        )


class InsufficientSpaceError(TransferError):
    """Destination filesystem does not have room for the artifact."""

    def __init__(self, path: str, required: int, available: int):
        self.path = path
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient disk space in {path}. Required: "
            f"{format_bytes(required)}, Available: {format_bytes(available)}",
            hint="Free up space or use -D/--download-dir to specify different location",
        )


class SourceNotFoundError(TransferError):
    """Local source file does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Local file not found: {path}")


class SourceUnreadableError(TransferError):
    """Local source file exists but cannot be read."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Cannot read file: {path}")


class InvalidSourceError(TransferError):
    """Backup source is neither a URL nor a readable local file."""

    def __init__(self, source: str, reason: str = ""):
        self.source = source
        msg = f"Invalid backup source: {source}"
        if reason:
            msg += f" ({reason})"
        super().__init__(
            msg, hint="Must be a valid URL (http://...) or local file path"
        )


class IntegrityError(SetupError):
    """Downloaded or extracted content is not what was expected."""


class ChecksumMismatchError(IntegrityError):
    """SHA-256 digest of the download does not match the published one."""

    def __init__(self, path: str, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum verification failed for {path}. "
            f"Expected: {expected}, Actual: {actual}",
            hint="File may be corrupted. Please re-download.",
        )


class ExtractionError(IntegrityError):
    """The archive tool reported a failure."""

    def __init__(self, archive: str, detail: str = ""):
        self.archive = archive
        msg = f"Failed to extract {archive}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class EmptyExtractionError(IntegrityError):
    """Extraction finished but left the target directory empty."""

    def __init__(self, mountpoint: str):
        self.mountpoint = mountpoint
        super().__init__(
            f"Extraction completed but no files found in {mountpoint}",
            hint="Check that the archive is a complete zip file and re-run",
        )


class VersionResolutionError(SetupError):
    """The Clonezilla version could not be determined."""

    def __init__(self, message: str):
        super().__init__(
            message, hint="Please specify version manually using -V or --version flag"
        )


class InstanceRunningError(SetupError):
    """Another live instance holds the lock file."""

    def __init__(self, pid: int, lock_file: str = ""):
        self.pid = pid
        self.lock_file = lock_file
        super().__init__(f"Another instance is already running (PID: {pid})")


class OperationCancelled(SetupError):
    """The operator declined, interrupted, or closed stdin."""

    def __init__(self, reason: str = "Operation canceled by user"):
        self.reason = reason
        super().__init__(reason)
