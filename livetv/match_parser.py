from __future__ import annotations

import logging

from dedup import dedupe, paginate
from extractor import extract
from locator import locate, parse_document
from match_models import MatchRecord, Section
from sport_filter import filter_by_section

logger = logging.getLogger(__name__)


def extract_matches(markup: str, base_url: str, section: Section = Section.ALL) -> list[MatchRecord]:
    """Run locate → extract → dedupe → section filter over listing markup.

    Malformed markup yields fewer (possibly zero) records, never an exception.
    """
    try:
        document = parse_document(markup)
    except Exception as exc:
        logger.error("Could not parse listing markup: %s", exc)
        return []

    records: list[MatchRecord] = []
    for anchor in locate(document, section):
        try:
            record = extract(anchor, base_url)
        except Exception as exc:
            logger.warning("Extraction failed for %s: %s", anchor.get("href"), exc)
            continue
        if record is not None:
            records.append(record)

    unique = dedupe(records)
    filtered = filter_by_section(unique, section)
    logger.info(
        "Parsed %d matches (%d unique, %d in %s)",
        len(records), len(unique), len(filtered), section.display_name,
    )
    return filtered


def parse_match_list(
    markup: str,
    base_url: str,
    section: Section = Section.ALL,
    limit: int = 0,
    offset: int = 0,
) -> list[MatchRecord]:
    """Extract one page of matches; ``limit=0`` returns everything from *offset*."""
    matches = extract_matches(markup, base_url, section)
    page = paginate(matches, offset, limit)
    if limit > 0:
        logger.info(
            "Pagination - Offset: %d, Limit: %d, Returned: %d of %d",
            offset, limit, len(page), len(matches),
        )
    return page
