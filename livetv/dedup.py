from __future__ import annotations

import logging
from dataclasses import replace
from typing import Sequence

from match_models import MatchRecord

logger = logging.getLogger(__name__)


def dedupe(records: Sequence[MatchRecord]) -> list[MatchRecord]:
    """Drop repeated detail URLs, keeping the first occurrence and the input order."""
    seen: set[str] = set()
    unique: list[MatchRecord] = []
    for record in records:
        if record.detail_page_url in seen:
            continue
        seen.add(record.detail_page_url)
        unique.append(record)
    removed = len(records) - len(unique)
    if removed:
        logger.debug("Removed %d duplicate matches (%d -> %d)", removed, len(records), len(unique))
    return unique


def merge_records(existing: Sequence[MatchRecord], incoming: Sequence[MatchRecord]) -> list[MatchRecord]:
    """Merge *incoming* over *existing* by detail URL.

    Incoming records define order and fields, but any link state already held
    for the same URL is carried over. Records only present in *existing* are
    appended so nothing already shown disappears.
    """
    by_url = {r.detail_page_url: r for r in existing}
    merged: list[MatchRecord] = []
    for record in dedupe(incoming):
        known = by_url.pop(record.detail_page_url, None)
        if known is not None and (known.links_resolved or known.links_loading):
            record = replace(
                record,
                stream_links=known.stream_links,
                links_loading=known.links_loading,
                links_resolved=known.links_resolved,
            )
        merged.append(record)
    leftovers = [r for r in existing if r.detail_page_url in by_url]
    if leftovers:
        logger.debug("Kept %d matches missing from the incoming set", len(leftovers))
    return dedupe(merged + leftovers)


def paginate(records: Sequence[MatchRecord], offset: int = 0, limit: int = 0) -> list[MatchRecord]:
    """Slice ``records[offset:offset + limit]``; ``limit <= 0`` means no limit."""
    start = min(max(offset, 0), len(records))
    if limit <= 0:
        return list(records[start:])
    return list(records[start:start + limit])
