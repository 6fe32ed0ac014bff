"""Post-extraction filters: section predicates, sport/league selection, search.

Section filtering is looser than classification: a record is kept when its
text mentions any keyword from a broad list, or when the classifier already
assigned it the section's sport.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from match_models import MatchRecord, Section

logger = logging.getLogger(__name__)

SECTION_KEYWORDS: dict[str, list[str]] = {
    "Football": [
        "football", "soccer", "premier", "liga", "bundesliga", "serie a",
        "ligue", "champions league", "europa league", "uefa", "fifa", "world cup",
    ],
}

ALL_SPORTS = "All Sports"
ALL_LEAGUES = "All Leagues"


def _section_text(record: MatchRecord) -> str:
    return f"{record.teams} {record.competition} {record.league} {record.sport}".lower()


def matches_section(record: MatchRecord, section: Section) -> bool:
    target = section.target_sport
    if not target:
        return True
    if record.sport.lower() == target.lower():
        return True
    text = _section_text(record)
    return any(kw in text for kw in SECTION_KEYWORDS.get(target, []))


def filter_by_section(records: Sequence[MatchRecord], section: Section) -> list[MatchRecord]:
    if not section.target_sport:
        return list(records)
    kept = [r for r in records if matches_section(r, section)]
    logger.info(
        "%s filter: kept %d, dropped %d matches",
        section.display_name, len(kept), len(records) - len(kept),
    )
    return kept


def _is_unset(value: Optional[str], all_label: str) -> bool:
    return value is None or value == "" or value == all_label


def filter_by_labels(
    records: Sequence[MatchRecord],
    sport: Optional[str] = None,
    league: Optional[str] = None,
) -> list[MatchRecord]:
    """Keep records whose sport/league equal the selected labels."""
    any_sport = _is_unset(sport, ALL_SPORTS)
    any_league = _is_unset(league, ALL_LEAGUES)
    return [
        r for r in records
        if (any_sport or r.sport == sport) and (any_league or r.league == league)
    ]


def search(records: Sequence[MatchRecord], query: str) -> list[MatchRecord]:
    """Case-insensitive substring search over time, teams, competition, sport and league."""
    needle = query.strip().lower()
    if not needle:
        return list(records)
    return [r for r in records if needle in r.searchable_text]
