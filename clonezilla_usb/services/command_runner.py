"""Process runner used for every external tool the setup invokes.

All partitioning, formatting, download and extraction steps go through
:class:`CommandRunner` so that tests can substitute a fake and dry-run mode can
suppress mutating commands in one place.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from clonezilla_usb.logging import get_logger
from clonezilla_usb.services.cancellation import CancellationToken


log = get_logger(source="command")


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(Exception):
    """External command exited non-zero or could not be started."""

    def __init__(self, result: CommandResult):
        self.result = result
        detail = (result.stderr or result.stdout or "").strip()
        message = f"Command failed ({result.returncode}): {' '.join(result.argv)}"
        if detail:
            message += f": {detail}"
        super().__init__(message)

    @property
    def detail(self) -> str:
        return (self.result.stderr or self.result.stdout or "").strip()


class CommandTimeout(CommandError):
    """External command did not finish within its timeout."""

    def __init__(self, result: CommandResult, timeout: float):
        self.timeout = timeout
        super().__init__(result)


class CommandRunner:
    """Run external commands with subprocess.run.

    Args:
        dry_run: Log mutating commands instead of executing them
        token: Cancellation token checked before every command
    """

    def __init__(self, dry_run: bool = False, token: Optional[CancellationToken] = None):
        self.dry_run = dry_run
        self.token = token or CancellationToken()

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        capture: bool = True,
        timeout: Optional[float] = None,
        mutating: bool = False,
        cancellable: bool = True,
    ) -> CommandResult:
        """Run a command and return its result.

        Args:
            argv: Command and arguments
            check: Raise CommandError on a non-zero exit code
            capture: Capture stdout/stderr instead of passing them through
            timeout: Seconds before the command is killed
            mutating: Command changes system state (skipped in dry-run)
            cancellable: Refuse to start once the token is set

        Raises:
            OperationCancelled: If the cancellation token is set
            CommandTimeout: If the timeout elapses
            CommandError: If check is set and the command fails
        """
        if cancellable:
            self.token.raise_if_cancelled()
        argv = tuple(str(arg) for arg in argv)
        command_line = " ".join(argv)

        if mutating and self.dry_run:
            log.info(f"[DRY RUN] Would run: {command_line}")
            return CommandResult(argv=argv, returncode=0)

        log.debug(f"Running command: {command_line}")
        try:
            completed = subprocess.run(
                argv,
                check=False,
                text=True,
                capture_output=capture,
                timeout=timeout,
            )
        except FileNotFoundError as error:
            result = CommandResult(argv=argv, returncode=127, stderr=str(error))
            log.debug(f"Command not found: {argv[0]}")
            if check:
                raise CommandError(result) from error
            return result
        except subprocess.TimeoutExpired as error:
            result = CommandResult(argv=argv, returncode=124, stderr="timed out")
            log.debug(f"Command timed out after {timeout}s: {command_line}")
            raise CommandTimeout(result, timeout or 0) from error

        result = CommandResult(
            argv=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        if result.stdout and capture:
            log.debug(f"stdout: {result.stdout.strip()}")
        if result.stderr and capture:
            log.debug(f"stderr: {result.stderr.strip()}")
        log.debug(f"Command completed with return code {result.returncode}")

        if check and not result.ok:
            raise CommandError(result)
        return result
