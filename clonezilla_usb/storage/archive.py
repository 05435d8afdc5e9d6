"""Zip extraction onto a mounted partition."""

from __future__ import annotations

from pathlib import Path

from clonezilla_usb.logging import LoggerFactory
from clonezilla_usb.services.command_runner import CommandError, CommandRunner

from .exceptions import EmptyExtractionError, ExtractionError


log = LoggerFactory.for_install()


def extract_archive(runner: CommandRunner, archive: Path, dest: Path) -> None:
    """Unpack ``archive`` into ``dest``, overwriting existing files.

    Raises:
        ExtractionError: If unzip exits non-zero
    """
    log.debug(f"Extracting {archive} to {dest}")
    try:
        runner.run(["unzip", "-q", "-o", str(archive), "-d", str(dest)], mutating=True)
    except CommandError as error:
        raise ExtractionError(str(archive), error.detail) from error


def ensure_not_empty(dest: Path) -> None:
    """Raise EmptyExtractionError if ``dest`` holds no entries."""
    try:
        has_entries = any(Path(dest).iterdir())
    except OSError:
        has_entries = False
    if not has_entries:
        raise EmptyExtractionError(str(dest))
