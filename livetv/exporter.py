from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Sequence

from categorizer import categorize
from match_models import MatchRecord
from web_scraper import playback_url

logger = logging.getLogger(__name__)

M3U_HEADER = "#EXTM3U\n"


def _m3u_entries(record: MatchRecord, proxy: str) -> list[str]:
    title = f"{record.time} {record.teams}".strip()
    if record.competition:
        title = f"{title} ({record.competition})"
    entries: list[str] = []
    for index, link in enumerate(record.stream_links, start=1):
        name = title if len(record.stream_links) == 1 else f"{title} #{index}"
        entries.append(f'#EXTINF:-1 group-title="{record.sport}",{name}\n{playback_url(link, proxy)}')
    return entries


def write_m3u(records: Sequence[MatchRecord], path: str, proxy: str = "") -> int:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    count = 0
    with open(path, "w", encoding="utf-8") as f:
        f.write(M3U_HEADER)
        for record in records:
            for entry in _m3u_entries(record, proxy):
                f.write(entry + "\n")
                count += 1
    logger.info("Wrote %d stream entries to %s", count, path)
    return count


def write_json(records: Sequence[MatchRecord], path: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump([r.to_dict() for r in records], f, indent=2, ensure_ascii=False)
    logger.info("Wrote %d matches to %s", len(records), path)


def export(records: Sequence[MatchRecord], output_dir: str = "output", proxy: str = "") -> str:
    """Write matches.json, playlist.m3u and report.json; return the report path."""
    os.makedirs(output_dir, exist_ok=True)

    write_json(records, os.path.join(output_dir, "matches.json"))
    entries = write_m3u(records, os.path.join(output_dir, "playlist.m3u"), proxy=proxy)

    report = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "total_matches": len(records),
        "with_links": sum(1 for r in records if r.stream_links),
        "stream_entries": entries,
        "categories": categorize(list(records)),
    }

    report_path = os.path.join(output_dir, "report.json")
    with open(report_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, ensure_ascii=False)
    logger.info("Report written to %s", report_path)

    return report_path
