"""Interactive device selection and wipe confirmation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from clonezilla_usb.domain.models import BlockDevice
from clonezilla_usb.logging import LoggerFactory, hint, report
from clonezilla_usb.storage.devices import iter_disks, normalize_device_name
from clonezilla_usb.storage.exceptions import DeviceError, OperationCancelled
from clonezilla_usb.storage.validation import detect_existing_layout, validate_candidate
from clonezilla_usb.ui.prompts import is_wipe_confirmed
from clonezilla_usb.ui.tables import format_device_table


if TYPE_CHECKING:
    from clonezilla_usb.app.context import RunContext


log = LoggerFactory.for_device()

FULL_PROMPT = "Enter the device you want to use (e.g., sda, sdb, mmcblk0): "
BACKUP_PROMPT = "Enter the existing Clonezilla USB device (e.g., sda, sdb, mmcblk0): "


def show_devices(ctx: RunContext) -> None:
    ctx.prompter.show()
    ctx.prompter.show("Available block devices:")
    for line in format_device_table(iter_disks(ctx.runner)):
        ctx.prompter.show(line)
    ctx.prompter.show()


def _confirm_system_disk(ctx: RunContext, device: BlockDevice) -> bool:
    return ctx.prompter.confirm("Continue anyway?")


def select_device(ctx: RunContext) -> str:
    """Prompt until the operator names a usable device.

    In full mode the device is validated as a wipe target and stored in
    ``ctx.device``. In backup-only mode the existing two-partition layout is
    detected and stored in ``ctx.partitions``.

    Returns:
        The selected device path

    Raises:
        OperationCancelled: Interrupt or closed stdin
    """
    backup_only = ctx.config.backup_only
    prompt = BACKUP_PROMPT if backup_only else FULL_PROMPT
    while True:
        ctx.token.raise_if_cancelled()
        show_devices(ctx)
        path = normalize_device_name(ctx.prompter.ask(prompt))
        try:
            if backup_only:
                ctx.partitions = detect_existing_layout(ctx.runner, path)
            else:
                ctx.device = validate_candidate(
                    ctx.runner,
                    path,
                    min_size=ctx.config.min_device_size,
                    skip_confirmation=ctx.config.skip_confirmation,
                    confirm_system_disk=lambda device: _confirm_system_disk(ctx, device),
                )
        except DeviceError as error:
            report("ERROR", str(error))
            if error.hint:
                hint(error.hint)
            ctx.prompter.show()
            report("ERROR", "Invalid device. Please try again.")
            continue
        log.debug(f"Selected device {path}")
        return path


def confirm_wipe(ctx: RunContext, device_path: str) -> None:
    """Require the literal ``YES`` before the device is wiped.

    Raises:
        OperationCancelled: On any other answer
    """
    if ctx.config.skip_confirmation:
        log.info("Skipping confirmation (--yes flag used)")
        log.info(f"This operation will ERASE ALL DATA on {device_path}")
        return

    ctx.prompter.show()
    report("WARNING", f"This operation will ERASE ALL DATA on {device_path}", force_show=True)
    report("WARNING", "This action cannot be undone!", force_show=True)
    answer = ctx.prompter.ask("Type 'YES' (in uppercase) to confirm: ")
    if not is_wipe_confirmed(answer):
        raise OperationCancelled()
