from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

from clonezilla_usb.config.settings import DEFAULT_LOG_FILE

STATUS_LEVELS = ("INFO", "SUCCESS", "WARNING", "ERROR")

CONSOLE_FORMAT = "<level>[{level}]</level> {message}"
FILE_FORMAT = "[{time:YYYY-MM-DD HH:mm:ss}] [{level}] {message}"

_console_state = {"verbose": False}


def _console_filter(record) -> bool:
    """Decide whether a record is shown on the console.

    Errors are always shown. INFO/SUCCESS/WARNING only appear in verbose mode
    or when the caller forced display. DEBUG stays in the log file.
    """
    level_no = record["level"].no
    if level_no >= logger.level("ERROR").no:
        return True
    if level_no < logger.level("INFO").no:
        return False
    if record["extra"].get("force_show"):
        return True
    return _console_state["verbose"]


def setup_logging(
    *,
    verbose: bool = False,
    log_file: Path | None = None,
    console=None,
) -> Path | None:
    """
    Configure the console and log-file sinks.

    Console:
        Colorized ``[LEVEL] message`` lines on stderr, filtered by
        ``_console_filter``.

    Log file:
        Timestamped, level-tagged lines appended to ``log_file``. Write errors
        are caught by loguru and never reach the caller. If the file cannot be
        opened at all, logging continues on the console only.

    Args:
        verbose: Show INFO/SUCCESS/WARNING on the console and log DEBUG to file
        log_file: Log file path (defaults to a file in the temp directory)
        console: Console stream (defaults to sys.stderr)

    Returns:
        The log file path in use, or None if the file could not be opened
    """
    logger.remove()
    logger.configure(extra={"source": "setup", "force_show": False})
    _console_state["verbose"] = verbose

    logger.add(
        console or sys.stderr,
        level="INFO",
        colorize=console is None,
        backtrace=False,
        diagnose=False,
        filter=_console_filter,
        format=CONSOLE_FORMAT,
    )

    log_file = Path(log_file or DEFAULT_LOG_FILE)
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="DEBUG" if verbose else "INFO",
            colorize=False,
            catch=True,
            backtrace=False,
            diagnose=False,
            format=FILE_FORMAT,
        )
    except OSError as error:
        logger.bind(force_show=True).warning(
            f"Cannot write log file {log_file} ({error}); logging to console only"
        )
        return None

    logger.debug(f"Log file: {log_file}")
    return log_file


def report(level: str, message: str, *, force_show: bool = False) -> None:
    """Emit a status line at one of INFO, SUCCESS, WARNING or ERROR."""
    level = level.upper()
    if level not in STATUS_LEVELS:
        level = "INFO"
    logger.bind(force_show=force_show).log(level, message)


def hint(message: str) -> None:
    """Emit a one-line remediation hint, always visible."""
    logger.bind(force_show=True).error(f"Suggested fix: {message}")


def get_logger(*, source: str | None = None) -> Logger:
    """
    Get a logger with bound context.

    Args:
        source: Source component (e.g., "fetch", "partition", "lock")

    Returns:
        Logger with bound context
    """
    if source is None:
        return logger
    return logger.bind(source=source)


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with the source of
    the component doing the logging.
    """

    @staticmethod
    def for_device() -> Logger:
        """Logger for block device listing, validation and partitioning."""
        return logger.bind(source="device")

    @staticmethod
    def for_transfer() -> Logger:
        """Logger for downloads, local copies and checksum checks."""
        return logger.bind(source="transfer")

    @staticmethod
    def for_install() -> Logger:
        """Logger for mounting and archive extraction."""
        return logger.bind(source="install")

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (preconditions, lock, cleanup)."""
        return logger.bind(source="system")
