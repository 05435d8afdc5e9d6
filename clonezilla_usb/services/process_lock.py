"""Single-instance lock file keyed by process ID.

Usage:
    from clonezilla_usb.services.process_lock import ProcessLock

    with ProcessLock(lock_file):
        run_setup()

The check-then-create sequence is not atomic; two instances started in the
same instant can both acquire. That is acceptable for an operator-driven tool.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional

import psutil

from clonezilla_usb.logging import LoggerFactory
from clonezilla_usb.storage.exceptions import InstanceRunningError


log = LoggerFactory.for_system()


def read_lock_pid(path: Path) -> Optional[int]:
    """Return the PID stored in ``path``, or None if missing or unparseable."""
    try:
        content = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    except OSError as error:
        log.debug(f"Cannot read lock file {path}: {error}")
        return None
    try:
        pid = int(content)
    except ValueError:
        return None
    return pid if pid > 0 else None


class ProcessLock:
    """PID-bearing lock file with stale-lock reclamation.

    Args:
        path: Lock file location
        pid: Identifier written on acquire (defaults to the current process)
        pid_exists: Liveness probe (defaults to psutil.pid_exists)
    """

    def __init__(
        self,
        path: Path,
        *,
        pid: Optional[int] = None,
        pid_exists: Optional[Callable[[int], bool]] = None,
    ):
        self.path = Path(path)
        self.pid = pid or os.getpid()
        self._pid_exists = pid_exists or psutil.pid_exists
        self.held = False

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            InstanceRunningError: If the lock names a live process
        """
        holder = read_lock_pid(self.path)
        if holder is not None and holder != self.pid and self._pid_exists(holder):
            raise InstanceRunningError(holder, str(self.path))
        if self.path.exists():
            log.debug(f"Removing stale lock file {self.path} (PID: {holder})")
            self.path.unlink(missing_ok=True)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(f"{self.pid}\n", encoding="utf-8")
        self.held = True
        log.debug(f"Acquired lock {self.path} (PID: {self.pid})")

    def release(self) -> None:
        """Delete the lock file. Safe to call more than once."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as error:
            log.warning(f"Could not remove lock file {self.path}: {error}")
            return
        if self.held:
            log.debug(f"Released lock {self.path}")
        self.held = False

    def __enter__(self) -> ProcessLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
