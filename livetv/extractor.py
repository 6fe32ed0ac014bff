"""Turn a candidate anchor into a MatchRecord.

The listing markup is inconsistent, so every field is found by trying an
ordered list of selectors against the anchor's row, and the raw values are
then corrected (league/teams swap, time recovery, teams cleanup).
"""
from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import urljoin

from bs4 import NavigableString, Tag

from categorizer import classify
from match_models import MatchRecord

logger = logging.getLogger(__name__)

TIME_SELECTORS = ["td.time", ".time", "[class*='time']", "td:first-child"]
TEAMS_SELECTORS = [
    "td.evdesc", ".evdesc", ".event-title", ".event-desc",
    "[class*='event']", "[class*='team']", "td:nth-child(3)",
]
COMPETITION_SELECTORS = [
    "td.league > a", ".league", ".competition", "[class*='league']", "td:nth-child(2)",
]

MIN_TEAMS_TEXT = 5
MIN_ACCEPTED_TEAMS = 3
MAX_ANCESTOR_HOPS = 3

# Swap heuristic thresholds.
SHORT_TEAMS_LEN = 10
LONG_COMPETITION_LEN = 15

PARENTHETICAL_RE = re.compile(r"\([^)]+\)")
DATE_AT_RE = re.compile(r"\d{1,2}\s+\w+\s+at")
LEAGUE_WORD_RE = re.compile(
    r"\b(ncaa|nba|nfl|mlb|nhl|premier|liga|serie|bundesliga|league|cup|championship"
    r"|division|conference|botola|pro|first|elite)\b",
    re.IGNORECASE,
)
TEAM_SEPARATOR_RE = re.compile(r"[–—-]|\bvs?\b\.?", re.IGNORECASE)
SCORE_RE = re.compile(r"\d+:\d+")

TIME_RE = re.compile(r"\b(\d{1,2}:\d{2})\b")
DATE_TIME_RE = re.compile(r"\d{1,2}\s+\w+\s+at\s+(\d{1,2}:\d{2})")

TEAM_CLEANUP_STEPS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\d{1,2}\s+\w+\s+at\s*"), ""),
    (re.compile(r"\d{1,2}:\d{2}"), ""),
    (re.compile(r"\([^)]*\)"), ""),
    (re.compile(r"\d{1,2}\s+\w+\s+\d{4}\s+at\s*", re.IGNORECASE), ""),
    (re.compile(r"\w+\s+\d{1,2}\s+at\s*", re.IGNORECASE), ""),
    (re.compile(r"\bat\s+\d{1,2}:\d{2}", re.IGNORECASE), ""),
    (re.compile(r"\b(?:live|today|tomorrow|now)\b", re.IGNORECASE), ""),
    (re.compile(r"\b(?:GMT|UTC|CET|EST|PST)\b", re.IGNORECASE), ""),
    (re.compile(r"\s+0:\d+\s*$"), ""),
    (re.compile(r"\s+"), " "),
    (re.compile(r"^[|:,.;\s]+|[|:,.;\s]+$"), ""),
]

SEPARATOR_MARKERS = ("–", "-", "vs", "v ")


def _text(tag: Tag) -> str:
    return tag.get_text(" ", strip=True)


def _own_text(tag: Tag) -> str:
    return " ".join(
        s.strip() for s in tag.find_all(string=True, recursive=False)
        if isinstance(s, NavigableString) and s.strip()
    )


def _first_text(context: Tag, selectors: list[str]) -> str:
    for selector in selectors:
        for element in context.select(selector):
            text = _text(element)
            if text:
                return text
    return ""


def row_context(anchor: Tag) -> Tag:
    """Nearest table row, else the parent, else the anchor itself."""
    row = anchor.find_parent("tr")
    if row is not None:
        return row
    if isinstance(anchor.parent, Tag):
        return anchor.parent
    return anchor


def _looks_like_league(text: str) -> bool:
    return (
        len(text) < SHORT_TEAMS_LEN
        or bool(PARENTHETICAL_RE.search(text))
        or bool(DATE_AT_RE.search(text))
        or bool(LEAGUE_WORD_RE.search(text))
    )


def _looks_like_teams(text: str) -> bool:
    return (
        len(text) > LONG_COMPETITION_LEN
        or bool(TEAM_SEPARATOR_RE.search(text))
        or bool(SCORE_RE.search(text))
    )


def swap_fields(teams: str, competition: str) -> tuple[str, str]:
    """Swap teams and competition when they were picked up the wrong way round."""
    if teams and competition and _looks_like_league(teams) and _looks_like_teams(competition):
        logger.debug("Swapped teams and competition: %r <-> %r", teams, competition)
        return competition, teams
    return teams, competition


def recover_time(text: str) -> str:
    match = TIME_RE.search(text)
    if match:
        return match.group(1)
    match = DATE_TIME_RE.search(text)
    if match:
        return match.group(1)
    return ""


def _has_separator(text: str) -> bool:
    return any(marker in text for marker in SEPARATOR_MARKERS)


def clean_teams(teams: str, competition: str = "") -> str:
    """Strip dates, times, league text and noise words out of a teams string.

    The original text is returned when cleanup leaves too little or removes
    the separator between the two sides.
    """
    steps = list(TEAM_CLEANUP_STEPS)
    if competition.strip():
        steps.insert(3, (re.compile(re.escape(competition.strip()), re.IGNORECASE), ""))

    cleaned = teams
    for pattern, replacement in steps:
        cleaned = pattern.sub(replacement, cleaned).strip()

    if len(cleaned) <= MIN_ACCEPTED_TEAMS:
        return teams
    if _has_separator(teams) and not _has_separator(cleaned):
        return teams
    return cleaned


def _fallback_teams(anchor: Tag) -> str:
    text = _text(anchor)
    if len(text) >= MIN_TEAMS_TEXT:
        return text
    parent = anchor.parent
    hops = 0
    while isinstance(parent, Tag) and hops < MAX_ANCESTOR_HOPS:
        own = _own_text(parent)
        if len(own) > MIN_TEAMS_TEXT:
            return own
        parent = parent.parent
        hops += 1
    return text


def extract(anchor: Tag, base_url: str) -> Optional[MatchRecord]:
    """Build a MatchRecord from *anchor*, or None when it carries no usable teams."""
    href = (anchor.get("href") or "").strip()
    if not href:
        return None
    detail_page_url = urljoin(base_url, href)

    context = row_context(anchor)
    time = _first_text(context, TIME_SELECTORS)
    teams = _first_text(context, TEAMS_SELECTORS)
    competition = _first_text(context, COMPETITION_SELECTORS)

    if len(teams) < MIN_TEAMS_TEXT:
        first_link = context.find("a")
        if first_link is not None:
            teams = _text(first_link)

    teams, competition = swap_fields(teams, competition)

    if not time:
        time = recover_time(f"{teams} {competition}")

    if len(teams) < MIN_TEAMS_TEXT:
        teams = _fallback_teams(anchor)

    teams = clean_teams(teams, competition)
    sport, league = classify(competition, teams, detail_page_url)

    if len(teams) <= MIN_ACCEPTED_TEAMS:
        logger.warning("Skipped match, teams too short: %r (%s)", teams, detail_page_url)
        return None

    logger.debug(
        "Extracted match - Teams: %r, Time: %r, Competition: %r, Sport: %r, League: %r",
        teams, time, competition, sport, league,
    )
    return MatchRecord(
        time=time,
        teams=teams,
        competition=competition,
        sport=sport,
        league=league,
        detail_page_url=detail_page_url,
    )
