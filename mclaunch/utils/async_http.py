"""Async HTTP client utilities."""

import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import aiohttp

from ..errors import NetworkFailure

CHUNK_SIZE = 64 * 1024


class AsyncHTTPClient:
    """Reusable async HTTP client.

    Transport errors, non-success statuses and undecodable JSON bodies
    surface as ``NetworkFailure``.
    """

    def __init__(self, headers: Optional[Dict[str, str]] = None, timeout: float = 3600):
        self.default_headers = headers or {}
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(headers=self.default_headers, timeout=self.timeout)
        return self.session

    async def close(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None

    async def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> Any:
        """GET request returning decoded JSON."""
        session = self._ensure_session()
        try:
            async with session.get(url, headers=headers) as resp:
                resp.raise_for_status()
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkFailure(f"GET {url} failed: {e}", url) from e
        except ValueError as e:
            raise NetworkFailure(f"GET {url} returned an unparseable body: {e}", url) from e

    async def get_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        """GET request returning the body as text."""
        session = self._ensure_session()
        try:
            async with session.get(url, headers=headers) as resp:
                resp.raise_for_status()
                return await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkFailure(f"GET {url} failed: {e}", url) from e

    async def head_length(self, url: str) -> Optional[int]:
        """Content-Length reported by a HEAD request, if any."""
        session = self._ensure_session()
        try:
            async with session.head(url, allow_redirects=True) as resp:
                if resp.status >= 400:
                    return None
                return resp.content_length
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkFailure(f"HEAD {url} failed: {e}", url) from e

    async def download(self, url: str, dest: Path) -> int:
        """Stream ``url`` into ``dest``, overwriting it. Returns bytes written."""
        session = self._ensure_session()
        written = 0
        try:
            async with session.get(url) as resp:
                resp.raise_for_status()
                dest.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(dest, 'wb') as f:
                    async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                        await f.write(chunk)
                        written += len(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkFailure(f"Download of {url} failed: {e}", url) from e
        return written
