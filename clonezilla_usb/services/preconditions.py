"""Environment checks that must pass before any device is touched."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Callable, Iterable

from clonezilla_usb.config.settings import (
    INSTALL_HINT,
    INTERNET_RETRY_DELAY_SECONDS,
    MAX_RETRIES,
    REQUIRED_TOOLS,
)
from clonezilla_usb.logging import LoggerFactory
from clonezilla_usb.storage.exceptions import (
    DownloadDirectoryError,
    MissingDependencyError,
    NoInternetError,
    NotRootError,
)

from .http_client import HttpClient


log = LoggerFactory.for_system()


def check_root() -> None:
    """Raise NotRootError unless running with effective UID 0."""
    if os.geteuid() != 0:
        raise NotRootError()


def check_dependencies(tools: Iterable[str] = REQUIRED_TOOLS) -> None:
    """Raise MissingDependencyError naming every tool not found on PATH."""
    missing = [tool for tool in tools if shutil.which(tool) is None]
    if missing:
        raise MissingDependencyError(missing, hint=INSTALL_HINT)
    log.debug("All required tools found")


def check_download_dir(path: Path, writable: bool = True) -> None:
    """Raise DownloadDirectoryError unless ``path`` is an existing (writable) directory."""
    path = Path(path)
    if not path.is_dir():
        raise DownloadDirectoryError(str(path), "does not exist")
    if writable and not os.access(path, os.W_OK):
        raise DownloadDirectoryError(str(path), "is not writable")


def check_internet(
    http: HttpClient,
    url: str,
    *,
    sleep: Callable[[float], None],
    attempts: int = MAX_RETRIES,
    delay: float = INTERNET_RETRY_DELAY_SECONDS,
) -> None:
    """Probe ``url`` with HEAD until one attempt answers 2xx.

    Raises:
        NoInternetError: After ``attempts`` failures
    """
    for attempt in range(1, attempts + 1):
        log.debug(f"Checking internet connection (attempt {attempt}/{attempts})")
        if http.reachable(url):
            log.debug("Internet connection confirmed")
            return
        if attempt < attempts:
            log.warning(f"Internet check failed, retrying in {delay}s...")
            sleep(delay)
    raise NoInternetError(attempts)
