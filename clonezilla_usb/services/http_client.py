"""HTTP probes used by the setup: connectivity, remote size and small text fetches.

Large downloads go through curl (see :mod:`clonezilla_usb.services.fetch`);
this client only handles the short requests around them.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import aiohttp

from clonezilla_usb.config.settings import HTTP_PROBE_TIMEOUT_SECONDS
from clonezilla_usb.logging import get_logger


log = get_logger(source="http")


class HttpClient:
    """aiohttp client with synchronous wrappers for the workflow."""

    def __init__(self, timeout_seconds: float = HTTP_PROBE_TIMEOUT_SECONDS):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def head_ok(self, url: str) -> bool:
        """Return True when a HEAD request to ``url`` answers with any 2xx status."""
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.head(url, allow_redirects=True) as resp:
                    log.debug(f"HEAD {url} -> {resp.status}")
                    return 200 <= resp.status < 300
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                log.debug(f"HEAD {url} failed: {e}")
                return False

    async def content_length(self, url: str) -> Optional[int]:
        """Return the Content-Length reported for ``url``, or None if unknown."""
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.head(url, allow_redirects=True) as resp:
                    if not 200 <= resp.status < 300:
                        log.debug(f"HEAD {url} -> {resp.status}, size unknown")
                        return None
                    length = resp.headers.get("Content-Length")
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                log.debug(f"HEAD {url} failed: {e}")
                return None
        try:
            size = int(length) if length is not None else None
        except ValueError:
            return None
        if size is not None and size <= 0:
            return None
        return size

    async def get_text(self, url: str) -> Optional[str]:
        """GET ``url`` and return the body, or None on any failure."""
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.get(url, allow_redirects=True) as resp:
                    if resp.status != 200:
                        log.debug(f"GET {url} -> {resp.status}")
                        return None
                    return await resp.text()
            except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
                log.debug(f"GET {url} failed: {e}")
                return None

    # Synchronous entry points for the single-threaded workflow

    def reachable(self, url: str) -> bool:
        return asyncio.run(self.head_ok(url))

    def remote_size(self, url: str) -> Optional[int]:
        return asyncio.run(self.content_length(url))

    def fetch_text(self, url: str) -> Optional[str]:
        return asyncio.run(self.get_text(url))
