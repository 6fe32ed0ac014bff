from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional


class NetworkError(Exception):
    """Raised when a page cannot be retrieved (non-2xx, timeout, empty body)."""

    def __init__(self, url: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status


class StreamProtocol(str, enum.Enum):
    P2P = "P2P"
    HLS = "HLS"
    RTMP = "RTMP"
    VIDEO_HOST = "Video host"
    HTTP = "HTTP"


P2P_SCHEMES = ("acestream://",)
RTMP_SCHEMES = ("rtmp://", "rtmps://")
VIDEO_HOSTS = ("youtube.com", "youtu.be", "twitch.tv")


def detect_protocol(url: str) -> StreamProtocol:
    """Classify a stream link into its protocol family."""
    lowered = url.lower()
    if lowered.startswith(P2P_SCHEMES):
        return StreamProtocol.P2P
    if ".m3u8" in lowered:
        return StreamProtocol.HLS
    if lowered.startswith(RTMP_SCHEMES):
        return StreamProtocol.RTMP
    if any(host in lowered for host in VIDEO_HOSTS):
        return StreamProtocol.VIDEO_HOST
    return StreamProtocol.HTTP


class Section(enum.Enum):
    """Extraction scopes offered on the listing page.

    Each member carries a display name, an optional container selector used
    to narrow the document, and an optional sport used as post-filter.
    """

    FOOTBALL = ("Football", "", "Football")
    ALL = ("All Matches", "", "")
    TOP_EVENTS_LIVE = ("Top Events LIVE", "#upcoming", "")

    def __init__(self, display_name: str, container: str, target_sport: str) -> None:
        self.display_name = display_name
        self.container = container
        self.target_sport = target_sport

    @classmethod
    def from_name(cls, name: str) -> "Section":
        key = name.strip().upper().replace("-", "_").replace(" ", "_")
        return cls[key]


@dataclass(frozen=True)
class MatchRecord:
    """One event extracted from the listing page."""

    time: str
    teams: str
    competition: str
    sport: str
    league: str
    detail_page_url: str
    stream_links: tuple[str, ...] = ()
    links_loading: bool = False
    links_resolved: bool = False

    @property
    def searchable_text(self) -> str:
        return f"{self.time} {self.teams} {self.competition} {self.sport} {self.league}".lower()

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "teams": self.teams,
            "competition": self.competition,
            "sport": self.sport,
            "league": self.league,
            "detail_page_url": self.detail_page_url,
            "stream_links": list(self.stream_links),
        }


class LoadState(str, enum.Enum):
    EMPTY = "empty"
    PARTIALLY_LOADED = "partially_loaded"
    FULLY_LOADED = "fully_loaded"


@dataclass
class SectionCache:
    """Per-section snapshot owned by the session."""

    section: Section
    records: list[MatchRecord] = field(default_factory=list)
    total_fetched: int = 0
    fully_loaded: bool = False
    active_sport_filter: Optional[str] = None
    active_league_filter: Optional[str] = None
    available_sports: list[str] = field(default_factory=list)
    available_leagues: list[str] = field(default_factory=list)
    visible_count: int = 0

    @property
    def state(self) -> LoadState:
        if self.fully_loaded:
            return LoadState.FULLY_LOADED
        if self.total_fetched or self.records:
            return LoadState.PARTIALLY_LOADED
        return LoadState.EMPTY

    def find(self, detail_page_url: str) -> Optional[MatchRecord]:
        for record in self.records:
            if record.detail_page_url == detail_page_url:
                return record
        return None

    def replace_record(self, updated: MatchRecord) -> bool:
        """Swap in *updated* by detail URL; the list is rebuilt, never mutated in place."""
        for index, record in enumerate(self.records):
            if record.detail_page_url == updated.detail_page_url:
                records = list(self.records)
                records[index] = updated
                self.records = records
                return True
        return False
