"""Shape checks for discovered stream links.

Links scraped from detail pages are often truncated ("https://cdn.live:",
"acestream://"). These checks reject such fragments; nothing here touches
the network and nothing is repaired.
"""
from __future__ import annotations

import logging
import re
from typing import Iterable

from match_models import P2P_SCHEMES, RTMP_SCHEMES

logger = logging.getLogger(__name__)

HTTP_SCHEMES = ("http://", "https://")
MIN_HTTP_REMAINDER = 4
MIN_RTMP_LENGTH = 7
MIN_OPAQUE_LENGTH = 2

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*:", re.IGNORECASE)


def _strip_scheme(url: str, schemes: tuple[str, ...]) -> str:
    lowered = url.lower()
    for scheme in schemes:
        if lowered.startswith(scheme):
            return url[len(scheme):]
    return url


def _valid_p2p(url: str) -> bool:
    return bool(_strip_scheme(url, P2P_SCHEMES).strip())


def _valid_http(url: str) -> bool:
    remainder = _strip_scheme(url, HTTP_SCHEMES)
    if len(remainder.strip()) < MIN_HTTP_REMAINDER:
        return False
    if remainder.endswith((":", ".")):
        return False
    host = re.split(r"[/?#]", remainder, maxsplit=1)[0]
    labels = host.split(".")
    return len(labels) >= 2 and all(labels)


def _valid_rtmp(url: str) -> bool:
    return len(url) > MIN_RTMP_LENGTH and "." in url


def _valid_other(url: str) -> bool:
    if "://" in url:
        opaque = url.split("://", 1)[1]
    elif _SCHEME_RE.match(url):
        opaque = url.split(":", 1)[1]
    else:
        return False
    return len(opaque.strip()) > MIN_OPAQUE_LENGTH


def is_valid_stream_url(url: str) -> bool:
    """True when *url* looks complete enough to hand to a player."""
    url = url.strip()
    if not url:
        return False
    lowered = url.lower()
    if lowered.startswith(P2P_SCHEMES):
        return _valid_p2p(url)
    if lowered.startswith(HTTP_SCHEMES):
        return _valid_http(url)
    if lowered.startswith(RTMP_SCHEMES):
        return _valid_rtmp(url)
    return _valid_other(url)


def filter_valid(urls: Iterable[str]) -> list[str]:
    valid: list[str] = []
    for url in urls:
        if is_valid_stream_url(url):
            valid.append(url)
        else:
            logger.debug("Filtered out invalid URL: %s", url)
    return valid
