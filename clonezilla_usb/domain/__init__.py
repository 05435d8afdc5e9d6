"""Domain model for the USB setup workflow."""

from clonezilla_usb.domain.models import (
    ROOT_MOUNTPOINTS,
    BackupPreset,
    BlockDevice,
    PartitionPair,
    Stage,
    StageHistory,
)

__all__ = [
    "ROOT_MOUNTPOINTS",
    "BackupPreset",
    "BlockDevice",
    "PartitionPair",
    "Stage",
    "StageHistory",
]
