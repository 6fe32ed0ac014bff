"""HTTP access to the listing and match-detail pages.

Two entry points share the same request profile:
  - ``fetch``: blocking fetch on a cloudscraper session (CLI, one-shot use)
  - ``AsyncFetcher``: aiohttp-backed fetch used by the session orchestrator

Both present a desktop browser User-Agent, skip TLS verification, use a
bounded timeout and never retry. Any failure surfaces as ``NetworkError``;
retry policy belongs to the caller.
"""
from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Optional

import urllib3
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

import aiohttp
import cloudscraper
import requests

from match_models import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
MAX_RESPONSE_BYTES = 5_000_000

DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

BROWSER_HEADERS = {
    "User-Agent": DESKTOP_UA,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Cache-Control": "no-cache",
}


# ── Blocking client ─────────────────────────────────────────────────────
_session: cloudscraper.CloudScraper | None = None


def _get_session() -> cloudscraper.CloudScraper:
    global _session
    if _session is None:
        _session = cloudscraper.create_scraper(
            browser={"browser": "chrome", "platform": "windows", "mobile": False},
        )
        _session.headers.update(BROWSER_HEADERS)
        _session.verify = False
    return _session


def _read_body(resp: requests.Response, max_bytes: int) -> str:
    raw = b""
    for chunk in resp.iter_content(chunk_size=65536):
        raw += chunk
        if len(raw) > max_bytes:
            break
    resp.close()
    encoding = getattr(resp, "encoding", None) or "utf-8"
    return raw.decode(encoding, errors="replace")


def fetch(url: str, timeout: int = DEFAULT_TIMEOUT, max_bytes: int = MAX_RESPONSE_BYTES) -> str:
    """Fetch *url* and return its markup, or raise ``NetworkError``."""
    session = _get_session()
    try:
        resp = session.get(url, timeout=timeout, allow_redirects=True, stream=True, verify=False)
    except requests.exceptions.Timeout as exc:
        raise NetworkError(url, "Timed out") from exc
    except requests.exceptions.RequestException as exc:
        raise NetworkError(url, f"Request failed: {type(exc).__name__}") from exc

    if not 200 <= resp.status_code < 300:
        resp.close()
        logger.error("HTTP error %d for %s", resp.status_code, url)
        raise NetworkError(url, f"HTTP error {resp.status_code}", status=resp.status_code)

    body = _read_body(resp, max_bytes)
    if not body.strip():
        raise NetworkError(url, "Empty response body", status=resp.status_code)
    logger.debug("Fetched %s (%d chars)", url, len(body))
    return body


# ── Async client ────────────────────────────────────────────────────────
def _create_ssl_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


class AsyncFetcher:
    """Cooperative page fetcher; one aiohttp session per instance.

    Use as an async context manager, or call ``close`` when done.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, max_bytes: int = MAX_RESPONSE_BYTES) -> None:
        self.timeout = timeout
        self.max_bytes = max_bytes
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "AsyncFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:  # noqa: ANN002
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(ssl=_create_ssl_context(), enable_cleanup_closed=True)
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers=BROWSER_HEADERS,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch(self, url: str) -> str:
        session = self._get_session()
        try:
            async with session.get(url, allow_redirects=True) as resp:
                if not 200 <= resp.status < 300:
                    logger.error("HTTP error %d for %s", resp.status, url)
                    raise NetworkError(url, f"HTTP error {resp.status}", status=resp.status)
                raw = b""
                async for chunk in resp.content.iter_chunked(65536):
                    raw += chunk
                    if len(raw) > self.max_bytes:
                        break
                body = raw.decode(resp.charset or "utf-8", errors="replace")
        except asyncio.TimeoutError as exc:
            raise NetworkError(url, "Timed out") from exc
        except aiohttp.ClientError as exc:
            raise NetworkError(url, f"Request failed: {type(exc).__name__}") from exc

        if not body.strip():
            raise NetworkError(url, "Empty response body")
        logger.debug("Fetched %s (%d chars)", url, len(body))
        return body
