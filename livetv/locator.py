"""Find anchors on the listing page that point at match-detail pages."""
from __future__ import annotations

import logging

from bs4 import BeautifulSoup, Tag

from match_models import Section

logger = logging.getLogger(__name__)

# Tried in order; the first selector that matches anything wins.
CANDIDATE_STRATEGIES: list[tuple[str, str]] = [
    ("event detail path", "a[href*='/enx/event']"),
    ("event path segment", "a[href*='/event/']"),
    ("event anywhere in href", "a[href*='event']"),
]

DIAGNOSTIC_SAMPLE = 10


def narrow(document: Tag, section: Section) -> Tag:
    """Restrict *document* to the section's container, if it has one and it exists."""
    if not section.container:
        return document
    container = document.select_one(section.container)
    if container is None:
        logger.debug("No %r container for %s, using full document", section.container, section.display_name)
        return document
    logger.debug(
        "Found %r container with %d links", section.container, len(container.find_all("a")),
    )
    return container


def _log_diagnostics(scope: Tag) -> None:
    all_links = scope.find_all("a", href=True)
    logger.warning("No candidate links found; %d links in scope", len(all_links))
    for link in all_links[:DIAGNOSTIC_SAMPLE]:
        logger.debug("Link: %s - Text: %s", link.get("href"), link.get_text(" ", strip=True)[:50])
    logger.debug(
        "Scope has %d tables, %d divs; text: %s",
        len(scope.find_all("table")), len(scope.find_all("div")),
        scope.get_text(" ", strip=True)[:500],
    )


def locate(document: Tag, section: Section = Section.ALL) -> list[Tag]:
    """Return candidate detail-page anchors in document order.

    Sport-filtered sections operate on the full document; filtering happens
    after extraction so page offsets line up across sections.
    """
    scope = narrow(document, section)
    for name, selector in CANDIDATE_STRATEGIES:
        anchors = scope.select(selector)
        logger.debug("Strategy %r matched %d links in %s", name, len(anchors), section.display_name)
        if anchors:
            return anchors
    _log_diagnostics(scope)
    return []


def parse_document(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup, "lxml")
