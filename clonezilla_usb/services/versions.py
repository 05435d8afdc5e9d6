"""Live-system version discovery and download URL construction.

The listing page is scraped for version strings of the form
``MAJOR.MINOR.PATCH-BUILD``. The newest one is chosen by comparing the
numbers, never by where it appears on the page.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from clonezilla_usb.logging import LoggerFactory
from clonezilla_usb.storage.exceptions import VersionResolutionError

from .http_client import HttpClient


log = LoggerFactory.for_transfer()

VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)-(\d+)$")
LISTING_PATTERNS = (
    re.compile(r"clonezilla_live_stable/(\d+\.\d+\.\d+-\d+)/"),
    re.compile(r"clonezilla-live-(\d+\.\d+\.\d+-\d+)"),
)


def parse_versions(html: str) -> list[str]:
    """Return version strings found in ``html``.

    The directory-link pattern is tried first; the file-name pattern is only
    used when the first finds nothing.
    """
    for pattern in LISTING_PATTERNS:
        found = pattern.findall(html or "")
        if found:
            return found
    return []


def version_key(version: str) -> tuple[tuple[int, int, int], int]:
    match = VERSION_RE.match(version)
    if not match:
        raise ValueError(f"Not a version string: {version}")
    major, minor, patch, build = (int(part) for part in match.groups())
    return (major, minor, patch), build


def latest_version(versions: Iterable[str]) -> Optional[str]:
    candidates = [v for v in versions if VERSION_RE.match(v)]
    if not candidates:
        return None
    return max(candidates, key=version_key)


def validate_version(text: str) -> str:
    """Return ``text`` stripped if it is a valid version, else raise."""
    version = (text or "").strip()
    if not VERSION_RE.match(version):
        raise VersionResolutionError(
            f"Invalid version format: {text!r} (expected e.g. 3.1.2-22)"
        )
    return version


def build_download_url(version: str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/{version}/clonezilla-live-{version}-amd64.zip"


def resolve_version(http: HttpClient, base_url: str, pinned: Optional[str] = None) -> str:
    """Return the pinned version, or the newest one on the listing page.

    Raises:
        VersionResolutionError: Listing unavailable or no version found
    """
    if pinned:
        version = validate_version(pinned)
        log.debug(f"Using specified version: {version}")
        return version

    log.debug(f"Fetching version listing from {base_url}")
    html = http.fetch_text(f"{base_url.rstrip('/')}/")
    if html is None:
        raise VersionResolutionError("Failed to fetch Clonezilla version listing")

    version = latest_version(parse_versions(html))
    if version is None:
        raise VersionResolutionError("Failed to determine latest Clonezilla version")
    log.debug(f"Latest Clonezilla version: {version}")
    return version
