from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from match_models import MatchRecord, detect_protocol

logger = logging.getLogger(__name__)

DEFAULT_SPORT = "Football"

# Order matters: the first sport whose keyword appears wins.
SPORT_KEYWORDS: list[tuple[str, list[str]]] = [
    ("Football", [
        "football", "soccer", "premier league", "la liga", "serie a", "bundesliga",
        "champions league", "uefa", "fifa", "world cup", "ligue 1", "eredivisie",
    ]),
    ("Basketball", ["basketball", "nba", "euroleague", "fiba"]),
    ("Tennis", ["tennis", "atp", "wta", "wimbledon", "us open", "french open"]),
    ("Ice Hockey", ["hockey", "nhl", "iihf"]),
    ("Baseball", ["baseball", "mlb"]),
    ("Rugby", ["rugby"]),
    ("Cricket", ["cricket"]),
    ("Combat Sports", ["boxing", "mma", "ufc"]),
    ("Motor Sports", ["formula", "f1", "motogp", "racing"]),
    ("Volleyball", ["volleyball"]),
]

LEAGUE_KEYWORDS: list[tuple[str, list[str]]] = [
    ("Premier League", ["premier league"]),
    ("La Liga", ["la liga"]),
    ("Serie A", ["serie a"]),
    ("Bundesliga", ["bundesliga"]),
    ("Ligue 1", ["ligue 1"]),
    ("Champions League", ["champions league"]),
    ("Europa League", ["europa league"]),
    ("World Cup", ["world cup"]),
    ("European Championship", ["euros", "euro 20"]),
    ("Eredivisie", ["eredivisie"]),
    ("MLS", ["mls"]),
    ("NBA", ["nba"]),
    ("EuroLeague", ["euroleague"]),
    ("NCAA", ["ncaa"]),
    ("Wimbledon", ["wimbledon"]),
    ("US Open", ["us open"]),
    ("French Open", ["french open"]),
    ("Australian Open", ["australian open"]),
    ("ATP Tour", ["atp"]),
    ("WTA Tour", ["wta"]),
    ("NHL", ["nhl"]),
    ("MLB", ["mlb"]),
    ("NFL", ["nfl"]),
    ("UFC", ["ufc"]),
    ("Formula 1", ["formula 1", "f1"]),
]


def _first_match(text: str, table: list[tuple[str, list[str]]]) -> str:
    for label, keywords in table:
        for kw in keywords:
            if kw in text:
                return label
    return ""


def classify(competition: str, teams: str, url: str = "") -> tuple[str, str]:
    """Infer ``(sport, league)`` from the record's text.

    League stays blank unless a specific league keyword matches; it is never
    derived from the sport, so it does not duplicate the competition field.
    """
    searchable = f"{competition} {teams} {url}".lower()
    sport = _first_match(searchable, SPORT_KEYWORDS) or DEFAULT_SPORT
    league = _first_match(searchable, LEAGUE_KEYWORDS)
    return sport, league


def available_sports(records: Iterable[MatchRecord]) -> list[str]:
    return sorted({r.sport for r in records if r.sport})


def available_leagues(records: Iterable[MatchRecord]) -> list[str]:
    return sorted({r.league for r in records if r.league})


def categorize(records: list[MatchRecord]) -> dict[str, dict[str, int]]:
    """Count records by sport and league, and stream links by protocol.

    Returns::

        {
            "by_sport":    {"Football": 12, "Tennis": 3},
            "by_league":   {"Premier League": 4, "Unspecified": 9},
            "by_protocol": {"P2P": 20, "HLS": 2},
        }
    """
    by_sport: dict[str, int] = defaultdict(int)
    by_league: dict[str, int] = defaultdict(int)
    by_protocol: dict[str, int] = defaultdict(int)

    for record in records:
        by_sport[record.sport or DEFAULT_SPORT] += 1
        by_league[record.league or "Unspecified"] += 1
        for link in record.stream_links:
            by_protocol[detect_protocol(link).value] += 1

    logger.info(
        "Categorized %d matches into %d sports, %d leagues",
        len(records), len(by_sport), len(by_league),
    )
    return {
        "by_sport": dict(by_sport),
        "by_league": dict(by_league),
        "by_protocol": dict(by_protocol),
    }
