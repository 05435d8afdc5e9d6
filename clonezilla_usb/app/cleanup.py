"""End-of-run cleanup, run exactly once from the workflow's finally block.

Sequence:
    1. Unmount the mount directory if it is still mounted (lazy fallback)
    2. Remove the mount directory
    3. Delete the fixed-name archives in the download directory
    4. Release the process lock
    5. Emit the final SUCCESS or ERROR line

Each step is best-effort: a failure is logged and the next step still runs.
Commands run even when the run was cancelled, and SIGINT/SIGTERM arriving
during cleanup are ignored.
"""

from __future__ import annotations

from typing import Optional

from clonezilla_usb.config.settings import UNMOUNT_TIMEOUT_SECONDS
from clonezilla_usb.domain.models import Stage
from clonezilla_usb.logging import LoggerFactory, report
from clonezilla_usb.services.process_lock import ProcessLock
from clonezilla_usb.storage.exceptions import SetupError
from clonezilla_usb.storage.mount import MountPoint

from .context import RunContext


log = LoggerFactory.for_system()


class Cleanup:
    def __init__(self, ctx: RunContext, lock: Optional[ProcessLock] = None):
        self.ctx = ctx
        self.lock = lock
        self.done = False

    def _unmount(self, mount_point: MountPoint) -> None:
        if self.ctx.config.dry_run or not mount_point.is_mounted():
            return
        log.info(f"Unmounting {mount_point.path}")
        try:
            mount_point.unmount(timeout=UNMOUNT_TIMEOUT_SECONDS, force=True)
        except SetupError as error:
            log.warning(f"Failed to unmount {mount_point.path}: {error}")

    def _delete_artifacts(self) -> None:
        config = self.ctx.config
        for artifact in (config.live_archive, config.backup_archive):
            if not artifact.exists():
                continue
            if config.dry_run:
                log.info(f"[DRY RUN] Would delete {artifact}")
                continue
            try:
                artifact.unlink()
                log.debug(f"Deleted {artifact}")
            except OSError as error:
                log.warning(f"Could not delete {artifact}: {error}")

    def run(self, exit_code: int) -> int:
        """Release everything the run acquired and report the outcome."""
        if self.done:
            return exit_code
        self.done = True
        self.ctx.token.shield()
        self.ctx.enter(Stage.CLEANUP)
        log.debug("Performing cleanup...")

        mount_point = MountPoint(self.ctx.runner, self.ctx.config.mount_point, cancellable=False)
        self._unmount(mount_point)
        mount_point.remove()
        self._delete_artifacts()
        if self.lock is not None and self.lock.held:
            self.lock.release()

        if exit_code == 0:
            report("SUCCESS", "Setup completed successfully!", force_show=True)
        else:
            report("ERROR", f"Setup failed with exit code {exit_code}")
        self.ctx.enter(Stage.END)
        return exit_code
