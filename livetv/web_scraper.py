"""Discover stream links on a match detail page.

Uses BeautifulSoup for anchors/iframes/scripts and regexes for raw text.
Each detector runs in isolation: one raising never hides another's links.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Callable, Protocol
from urllib.parse import quote

from bs4 import BeautifulSoup

from match_models import StreamProtocol, detect_protocol
from validator import filter_valid

logger = logging.getLogger(__name__)

ACESTREAM_RE = re.compile(r"acestream://[a-zA-Z0-9]+")
M3U8_RE = re.compile(r"""https?://[^\s"'<>]+\.m3u8""", re.IGNORECASE)
RTMP_RE = re.compile(r"""rtmps?://[^\s"'<>]+""", re.IGNORECASE)
WEBPLAYER_RE = re.compile(r"""(?:https?:)?//[^\s"'<>]+webplayer[^\s"'<>]*""", re.IGNORECASE)
SCRIPT_STREAM_RE = re.compile(
    r"""https?://[^\s"'<>]+(?:\.m3u8|stream|live|watch|player)""",
    re.IGNORECASE,
)

IFRAME_KEYWORDS = ("stream", "live", "player", "embed")

ACE_PROXY_PATH = "/ace/getstream?id="


class PageFetcher(Protocol):
    async def fetch(self, url: str) -> str: ...


def _normalize_candidate_url(url: str) -> str:
    url = url.replace("\\/", "/").strip()
    if url.startswith("//"):
        return "https:" + url
    return url


def _hrefs(soup: BeautifulSoup, selector: str) -> list[str]:
    return [a.get("href", "") for a in soup.select(selector)]


# ── Detectors ───────────────────────────────────────────────────────────
def _acestream_anchors(soup: BeautifulSoup, markup: str) -> list[str]:
    return _hrefs(soup, "a[href*='acestream://']")


def _hls_anchors(soup: BeautifulSoup, markup: str) -> list[str]:
    return _hrefs(soup, "a[href*='.m3u8']")


def _rtmp_anchors(soup: BeautifulSoup, markup: str) -> list[str]:
    return _hrefs(soup, "a[href^='rtmp://'], a[href^='rtmps://']")


def _video_host_anchors(soup: BeautifulSoup, markup: str) -> list[str]:
    return _hrefs(soup, "a[href*='youtube.com/watch'], a[href*='youtu.be/'], a[href*='twitch.tv/']")


def _webplayer_anchors(soup: BeautifulSoup, markup: str) -> list[str]:
    return [_normalize_candidate_url(h) for h in _hrefs(soup, "a[href*='webplayer']")]


def _script_urls(soup: BeautifulSoup, markup: str) -> list[str]:
    found: list[str] = []
    for script in soup.find_all("script"):
        body = script.string or script.get_text()
        if body:
            found.extend(SCRIPT_STREAM_RE.findall(body.replace("\\/", "/")))
    return found


def _iframe_sources(soup: BeautifulSoup, markup: str) -> list[str]:
    found: list[str] = []
    for iframe in soup.find_all("iframe", src=True):
        src = iframe["src"].strip()
        if src and any(kw in src.lower() for kw in IFRAME_KEYWORDS):
            found.append(_normalize_candidate_url(src))
    return found


def _text_fallback(soup: BeautifulSoup, markup: str) -> list[str]:
    found: list[str] = []
    body = soup.body or soup
    text = body.get_text(" ")
    for regex in (ACESTREAM_RE, M3U8_RE, RTMP_RE):
        found.extend(regex.findall(text))
    for regex in (ACESTREAM_RE, M3U8_RE, RTMP_RE, WEBPLAYER_RE):
        found.extend(_normalize_candidate_url(u) for u in regex.findall(markup))
    return found


Detector = Callable[[BeautifulSoup, str], list[str]]

PRIMARY_DETECTORS: list[tuple[str, Detector]] = [
    ("acestream anchors", _acestream_anchors),
    ("m3u8 anchors", _hls_anchors),
    ("rtmp anchors", _rtmp_anchors),
    ("video host anchors", _video_host_anchors),
    ("webplayer anchors", _webplayer_anchors),
    ("script urls", _script_urls),
    ("iframe sources", _iframe_sources),
]

FALLBACK_DETECTORS: list[tuple[str, Detector]] = [
    ("text and markup regex", _text_fallback),
]


def _run_detectors(detectors: list[tuple[str, Detector]], soup: BeautifulSoup, markup: str) -> list[str]:
    found: list[str] = []
    for name, detector in detectors:
        try:
            links = [link for link in detector(soup, markup) if link]
        except Exception as exc:
            logger.warning("Detector %r failed: %s", name, exc)
            continue
        logger.debug("Detector %r found %d links", name, len(links))
        found.extend(links)
    return found


def extract_stream_links(markup: str) -> list[str]:
    """Return validated, de-duplicated stream links found in *markup*."""
    try:
        soup = BeautifulSoup(markup, "lxml")
    except Exception as exc:
        logger.error("Could not parse detail markup: %s", exc)
        return []

    found = _run_detectors(PRIMARY_DETECTORS, soup, markup)
    if not found:
        found = _run_detectors(FALLBACK_DETECTORS, soup, markup)

    unique = list(dict.fromkeys(u.strip() for u in found if u.strip()))
    valid = filter_valid(unique)
    if len(valid) != len(unique):
        logger.debug("Filtered out %d invalid links", len(unique) - len(valid))
    logger.debug(
        "Stream types found: %s",
        ", ".join(detect_protocol(u).value for u in valid) or "none",
    )
    return valid


async def discover(fetcher: PageFetcher, detail_page_url: str) -> list[str]:
    """Fetch a detail page and return its stream links; ``[]`` on any failure."""
    logger.debug("Fetching stream links from %s", detail_page_url)
    try:
        markup = await fetcher.fetch(detail_page_url)
        links = await asyncio.to_thread(extract_stream_links, markup)
    except Exception as exc:
        logger.error("Error fetching stream links for %s: %s", detail_page_url, exc)
        return []
    logger.info("Found %d stream links for %s", len(links), detail_page_url)
    return links


def playback_url(link: str, proxy: str) -> str:
    """Route Ace Stream links through the stream proxy; other links pass through."""
    if not proxy or detect_protocol(link) is not StreamProtocol.P2P:
        return link
    content_id = link.split("://", 1)[1].strip("/")
    base = proxy if proxy.startswith(("http://", "https://")) else f"http://{proxy}"
    return f"{base.rstrip('/')}{ACE_PROXY_PATH}{quote(content_id, safe='')}"
