"""The setup run: preconditions, device selection, layout, installs, cleanup.

Stages::

    START -> PRECONDITIONS -> DEVICE_SELECTION
          -> PARTITION -> FORMAT -> INSTALL_IMAGE -> INSTALL_BACKUP   (full setup)
          -> DETECT_EXISTING -> INSTALL_BACKUP                        (backup only)
          -> CLEANUP -> END

Any stage can jump to CLEANUP on a fatal error or a signal. Cleanup runs
exactly once, from ``finally``.
"""

from __future__ import annotations

from typing import Callable, Optional

from clonezilla_usb.actions.device_actions import confirm_wipe, select_device
from clonezilla_usb.actions.install_actions import install_backup, install_live_image
from clonezilla_usb.domain.models import Stage
from clonezilla_usb.logging import LoggerFactory, hint, report
from clonezilla_usb.services.cancellation import CancellationToken, install_signal_handlers
from clonezilla_usb.services.command_runner import CommandError, CommandRunner
from clonezilla_usb.services.fetch import is_local_file
from clonezilla_usb.services.http_client import HttpClient
from clonezilla_usb.services.preconditions import (
    check_dependencies,
    check_download_dir,
    check_internet,
    check_root,
)
from clonezilla_usb.services.process_lock import ProcessLock
from clonezilla_usb.storage.exceptions import (
    OperationCancelled,
    SetupError,
    SourceNotFoundError,
)
from clonezilla_usb.storage.partition import create_filesystems, partition_device
from clonezilla_usb.ui.prompts import ConsolePrompter

from .cleanup import Cleanup
from .context import RunConfig, RunContext


log = LoggerFactory.for_system()


class OfflineImageRequiredError(SetupError):
    """Offline full setup was requested without a local live-system archive."""

    def __init__(self):
        super().__init__(
            "Offline mode needs a local Clonezilla archive for a full setup",
            hint="Pass -i/--image PATH, or use -b/--backup-only",
        )


def check_preconditions(ctx: RunContext, lock: ProcessLock) -> None:
    config = ctx.config
    ctx.enter(Stage.PRECONDITIONS)

    # Dry runs write nothing there
    check_download_dir(config.download_dir, writable=not config.dry_run)
    log.info(f"Download directory: {config.download_dir}")
    if config.dry_run:
        report("WARNING", "DRY RUN mode - no changes will be made", force_show=True)
    else:
        check_root()
    check_dependencies()
    lock.acquire()

    if config.backup_only:
        log.info("BACKUP ONLY MODE - Will only add backup to existing drive")
    elif config.image_path is not None:
        if not is_local_file(str(config.image_path)):
            raise SourceNotFoundError(str(config.image_path))
    elif config.offline:
        raise OfflineImageRequiredError()

    # Backup-only runs defer the probe until the backup source is known to be a URL
    needs_network = not config.backup_only and config.image_path is None
    if needs_network and config.network_allowed:
        check_internet(ctx.http, config.internet_check_url, sleep=ctx.sleep)


def run_full_setup(ctx: RunContext, device_path: str) -> None:
    confirm_wipe(ctx, device_path)

    ctx.enter(Stage.PARTITION)
    ctx.partitions = partition_device(ctx, ctx.device)

    ctx.enter(Stage.FORMAT)
    create_filesystems(ctx, ctx.partitions)

    ctx.enter(Stage.INSTALL_IMAGE)
    install_live_image(ctx, ctx.partitions)

    ctx.enter(Stage.INSTALL_BACKUP)
    install_backup(ctx, ctx.partitions)


def run_backup_only(ctx: RunContext, device_path: str) -> None:
    ctx.enter(Stage.DETECT_EXISTING)
    log.info(f"Backup partition: {ctx.partitions.second}")

    ctx.enter(Stage.INSTALL_BACKUP)
    install_backup(ctx, ctx.partitions)


def run(
    config: RunConfig,
    *,
    runner: Optional[CommandRunner] = None,
    http: Optional[HttpClient] = None,
    prompter: Optional[ConsolePrompter] = None,
    token: Optional[CancellationToken] = None,
    sleep: Optional[Callable[[float], None]] = None,
    lock: Optional[ProcessLock] = None,
    handle_signals: bool = True,
) -> int:
    """Execute one setup run and return the process exit code (0 or 1)."""
    ctx = RunContext.create(
        config, runner=runner, http=http, prompter=prompter, token=token, sleep=sleep
    )
    lock = lock or ProcessLock(config.lock_file)
    cleanup = Cleanup(ctx, lock)
    restore_signals = install_signal_handlers(ctx.token) if handle_signals else None

    exit_code = 1
    try:
        ctx.enter(Stage.START)
        check_preconditions(ctx, lock)

        ctx.enter(Stage.DEVICE_SELECTION)
        device_path = select_device(ctx)

        if config.backup_only:
            run_backup_only(ctx, device_path)
        else:
            run_full_setup(ctx, device_path)
        exit_code = 0
    except OperationCancelled as error:
        ctx.token.cancel(error.reason)
        report("ERROR", error.reason)
    except KeyboardInterrupt:
        ctx.token.cancel()
        report("ERROR", ctx.token.reason)
    except SetupError as error:
        report("ERROR", str(error))
        if error.hint:
            hint(error.hint)
    except CommandError as error:
        # A command failure no call site converted
        report("ERROR", str(error))
    finally:
        cleanup.run(exit_code)
        if restore_signals is not None:
            restore_signals()
    return exit_code
