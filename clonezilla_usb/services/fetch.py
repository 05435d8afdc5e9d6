"""Download and local-copy engine for the live system and backup archives.

Downloads:
    curl does the transfer (``-L`` follows redirects, ``--max-time`` bounds
    each attempt). Up to three attempts are made with a fixed delay between
    them; an attempt that finds a non-empty partial file resumes it with
    ``-C -``. An attempt succeeds when curl exits 0 and the file is non-empty.

Space preflight:
    The remote size comes from a HEAD request. When the server does not
    report one, the first-partition size plus a fixed headroom is assumed.
    Local copies are checked against the source file size.

Checksums:
    A sibling ``<url>.sha256`` resource is fetched opportunistically. Its
    first token must be a 64-character hex digest, otherwise verification is
    skipped. A mismatch deletes the download and is never retried.
"""

from __future__ import annotations

import os
import re
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlparse

import psutil

from clonezilla_usb.config.settings import (
    CHECKSUM_SUFFIX,
    DOWNLOAD_RETRY_DELAY_SECONDS,
    DOWNLOAD_TIMEOUT_SECONDS,
    MAX_RETRIES,
    PARTITION_END_BYTES,
    UNKNOWN_SIZE_HEADROOM,
)
from clonezilla_usb.logging import LoggerFactory, report
from clonezilla_usb.storage.exceptions import (
    ChecksumMismatchError,
    DownloadFailedError,
    InsufficientSpaceError,
    IntegrityError,
    SourceNotFoundError,
    SourceUnreadableError,
    TransferError,
)


if TYPE_CHECKING:
    from clonezilla_usb.app.context import RunContext


log = LoggerFactory.for_transfer()

URL_SCHEMES = {"http", "https", "ftp", "file"}
SHA256_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def is_url(text: Optional[str]) -> bool:
    parsed = urlparse((text or "").strip())
    if parsed.scheme not in URL_SCHEMES:
        return False
    return bool(parsed.netloc) or parsed.scheme == "file"


def is_local_file(text: Optional[str]) -> bool:
    if not text:
        return False
    return Path(text.strip()).expanduser().is_file()


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0


class FetchEngine:
    """Obtains archives into the download directory for one run."""

    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    @property
    def dry_run(self) -> bool:
        return self.ctx.config.dry_run

    def check_disk_space(self, required: int, path: Path) -> None:
        """Raise InsufficientSpaceError if ``path`` has less than ``required`` bytes free."""
        available = psutil.disk_usage(str(path)).free
        log.debug(f"Space check in {path}: required {required}, available {available}")
        if available < required:
            raise InsufficientSpaceError(str(path), required, available)

    def estimate_size(self, url: str) -> int:
        size = self.ctx.http.remote_size(url)
        if size:
            log.debug(f"Remote size of {url}: {size}")
            return size
        estimate = PARTITION_END_BYTES + UNKNOWN_SIZE_HEADROOM
        log.debug(f"Remote size unknown, assuming {estimate} bytes")
        return estimate

    def resolve_checksum(self, url: str) -> Optional[str]:
        """Return the published SHA-256 digest for ``url``, or None."""
        text = self.ctx.http.fetch_text(f"{url}{CHECKSUM_SUFFIX}")
        if not text:
            log.debug(f"No checksum published for {url}")
            return None
        tokens = text.split()
        if not tokens or not SHA256_RE.match(tokens[0]):
            log.debug(f"Ignoring malformed checksum for {url}")
            return None
        return tokens[0].lower()

    def verify_checksum(self, path: Path, expected: Optional[str]) -> bool:
        """Compare the SHA-256 of ``path`` with ``expected``.

        Returns True when the digest matches or verification was skipped.

        Raises:
            ChecksumMismatchError: If the digests differ
            IntegrityError: If sha256sum itself fails
        """
        if not expected:
            log.debug("No checksum provided, skipping verification")
            return True
        if shutil.which("sha256sum") is None:
            log.warning("sha256sum not found, skipping checksum verification")
            return True

        report("INFO", f"Verifying checksum of {path.name}...")
        result = self.ctx.runner.run(["sha256sum", str(path)], check=False)
        if not result.ok:
            detail = (result.stderr or result.stdout).strip()
            raise IntegrityError(f"Could not compute checksum of {path}: {detail}")
        tokens = result.stdout.split()
        actual = tokens[0].lower() if tokens else ""
        if actual != expected.lower():
            raise ChecksumMismatchError(str(path), expected.lower(), actual)
        log.debug("Checksum verified")
        return True

    def _curl_argv(self, url: str, dest: Path) -> list[str]:
        argv = ["curl", "-L", "-o", str(dest)]
        if _file_size(dest) > 0:
            argv += ["-C", "-"]
        argv += ["--progress-bar", "--max-time", str(DOWNLOAD_TIMEOUT_SECONDS), url]
        return argv

    def fetch(self, url: str, dest: Path, label: str, checksum: Optional[str] = None) -> Path:
        """Download ``url`` to ``dest``.

        Raises:
            InsufficientSpaceError: Preflight failed
            DownloadFailedError: All attempts failed
            ChecksumMismatchError: Digest mismatch (``dest`` is removed)
        """
        dest = Path(dest)
        if self.dry_run:
            log.info(f"[DRY RUN] Would download {label} from {url} to {dest}")
            return dest

        self.check_disk_space(self.estimate_size(url), dest.parent)

        report("INFO", f"Downloading {label}...", force_show=True)
        for attempt in range(1, MAX_RETRIES + 1):
            log.debug(f"Download attempt {attempt}/{MAX_RETRIES}: {url}")
            result = self.ctx.runner.run(
                self._curl_argv(url, dest), check=False, capture=False, mutating=True
            )
            if result.ok and _file_size(dest) > 0:
                break
            log.warning(
                f"Download attempt {attempt}/{MAX_RETRIES} failed (curl exit {result.returncode})"
            )
            if attempt < MAX_RETRIES:
                self.ctx.sleep(DOWNLOAD_RETRY_DELAY_SECONDS)
        else:
            raise DownloadFailedError(label, MAX_RETRIES)

        try:
            self.verify_checksum(dest, checksum)
        except ChecksumMismatchError:
            dest.unlink(missing_ok=True)
            raise
        report("SUCCESS", f"Downloaded {label}")
        return dest

    def copy_local(self, source: str, dest: Path, label: str) -> Path:
        """Copy a local archive into the download directory.

        Raises:
            SourceNotFoundError: ``source`` does not exist
            SourceUnreadableError: ``source`` cannot be read
            InsufficientSpaceError: Not enough room for the copy
        """
        source_path = Path(str(source).strip()).expanduser()
        dest = Path(dest)
        if not source_path.exists():
            raise SourceNotFoundError(str(source_path))
        if not source_path.is_file() or not os.access(source_path, os.R_OK):
            raise SourceUnreadableError(str(source_path))

        if self.dry_run:
            log.info(f"[DRY RUN] Would copy {label} from {source_path} to {dest}")
            return dest

        self.check_disk_space(_file_size(source_path), dest.parent)

        report("INFO", f"Copying {label} from {source_path}...")
        self.ctx.token.raise_if_cancelled()
        try:
            shutil.copyfile(source_path, dest)
        except OSError as error:
            raise TransferError(f"Failed to copy {source_path} to {dest}: {error}") from error
        log.debug(f"Copied {_file_size(dest)} bytes to {dest}")
        return dest
