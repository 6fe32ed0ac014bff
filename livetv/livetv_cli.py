#!/usr/bin/env python3
"""Live sports match scraper: CLI entry point."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

from exporter import export
from http_client import AsyncFetcher, fetch
from match_models import MatchRecord, NetworkError, Section, detect_protocol
from match_parser import parse_match_list
from preferences import DEFAULT_PREFS_PATH, KEY_BASE_URL, KEY_STREAM_PROXY, Preferences
from match_session import INITIAL_LOAD_SIZE, LINK_CONCURRENCY, LOAD_MORE_SIZE, MatchSession
from sport_filter import filter_by_labels, search
from web_scraper import extract_stream_links, playback_url

CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.json")
LOG_DIR = os.path.join(os.path.dirname(__file__), "logs")


def _setup_logging(verbose: bool = False) -> None:
    os.makedirs(LOG_DIR, exist_ok=True)
    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stderr),
        logging.FileHandler(os.path.join(LOG_DIR, "livetv.log"), encoding="utf-8"),
    ]
    logging.basicConfig(level=level, format=fmt, handlers=handlers)


def _load_config() -> dict:
    if not os.path.exists(CONFIG_PATH):
        return {}
    with open(CONFIG_PATH, encoding="utf-8") as f:
        return json.load(f)


def _prefs(cfg: dict) -> Preferences:
    return Preferences(os.path.expanduser(cfg.get("prefs_path", DEFAULT_PREFS_PATH)))


def _output_dir(cfg: dict) -> str:
    return os.path.join(os.path.dirname(__file__), cfg.get("output_dir", "output"))


def _print_records(records: list[MatchRecord], proxy: str = "") -> None:
    for record in records:
        league = f" [{record.league}]" if record.league else ""
        print(f"{record.time:>6}  {record.teams}  — {record.competition} ({record.sport}){league}")
        print(f"        {record.detail_page_url}")
        for link in record.stream_links:
            print(f"        {detect_protocol(link).value:<10} {playback_url(link, proxy)}")


async def collect_matches(
    cfg: dict,
    prefs: Preferences,
    section: Section,
    count: int,
    sport: str | None = None,
    league: str | None = None,
    query: str = "",
) -> list[MatchRecord]:
    """Drive a session until *count* matches (0 = all) are visible with links resolved."""
    async with AsyncFetcher(timeout=cfg.get("timeout", 30)) as fetcher:
        session = MatchSession.from_preferences(
            prefs,
            fetcher,
            initial_load_size=cfg.get("initial_load_size", INITIAL_LOAD_SIZE),
            load_more_size=cfg.get("load_more_size", LOAD_MORE_SIZE),
            link_concurrency=cfg.get("link_concurrency", LINK_CONCURRENCY),
            background_scan=False,
        )
        await session.activate(section)
        if session.error:
            raise NetworkError(session.base_url, session.error)
        if sport:
            await session.set_sport_filter(sport)
        if league:
            await session.set_league_filter(league)
        if query:
            await session.set_search(query)
        else:
            while count <= 0 or len(session.visible) < count:
                if not await session.load_more():
                    break
        await session.settle()
        records = session.visible
    return records[:count] if count > 0 and not query else records


def run_export(cfg: dict, section: Section, count: int = 0) -> str:
    """Collect one section with links and export it."""
    prefs = _prefs(cfg)
    logging.info("=== Export run started (%s) ===", section.display_name)
    records = asyncio.run(collect_matches(cfg, prefs, section, count))
    report_path = export(records, output_dir=_output_dir(cfg), proxy=prefs.stream_proxy)
    logging.info("=== Export run finished — report: %s ===", report_path)
    return report_path


def cmd_list(args: argparse.Namespace) -> None:
    cfg = _load_config()
    prefs = _prefs(cfg)
    markup = fetch(prefs.base_url, timeout=cfg.get("timeout", 30))
    records = parse_match_list(markup, prefs.base_url, args.section, limit=args.limit, offset=args.offset)
    records = filter_by_labels(records, args.sport, args.league)
    records = search(records, args.search or "")
    _print_records(records)
    logging.info("%d matches listed", len(records))


def cmd_browse(args: argparse.Namespace) -> None:
    cfg = _load_config()
    prefs = _prefs(cfg)
    records = asyncio.run(collect_matches(
        cfg, prefs, args.section, args.count,
        sport=args.sport, league=args.league, query=args.search or "",
    ))
    _print_records(records, proxy=prefs.stream_proxy)
    if args.export:
        export(records, output_dir=_output_dir(cfg), proxy=prefs.stream_proxy)


def cmd_links(args: argparse.Namespace) -> None:
    cfg = _load_config()
    prefs = _prefs(cfg)
    links = extract_stream_links(fetch(args.url, timeout=cfg.get("timeout", 30)))
    for link in links:
        print(f"{detect_protocol(link).value:<10} {playback_url(link, prefs.stream_proxy)}")
    logging.info("%d stream links found", len(links))


def cmd_schedule(args: argparse.Namespace) -> None:
    import scheduler as sched_mod  # deferred to avoid import-time side-effects

    cfg = _load_config()
    interval = cfg.get("schedule_interval_minutes", 30)
    sched_mod.start(lambda: run_export(cfg, args.section, args.count), interval_minutes=interval)


def cmd_prefs(args: argparse.Namespace) -> None:
    prefs = _prefs(_load_config())
    if args.action == "set-base-url":
        prefs.set(KEY_BASE_URL, args.value)
    elif args.action == "set-proxy":
        prefs.set(KEY_STREAM_PROXY, args.value)
    elif args.action == "reset":
        prefs.reset()
    print(f"base_url     = {prefs.base_url}")
    print(f"stream_proxy = {prefs.stream_proxy}")


def _section(value: str) -> Section:
    try:
        return Section.from_name(value)
    except KeyError:
        choices = ", ".join(s.name.lower() for s in Section)
        raise argparse.ArgumentTypeError(f"unknown section {value!r} (choose from {choices})")


def main() -> None:
    ap = argparse.ArgumentParser(description="Live sports match scraper")
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    def add_selection(p: argparse.ArgumentParser) -> None:
        p.add_argument("--section", type=_section, default=Section.ALL, help="all, football or top_events_live")
        p.add_argument("--sport", help="Only matches of this sport")
        p.add_argument("--league", help="Only matches of this league")
        p.add_argument("--search", help="Case-insensitive text search")

    p_list = sub.add_parser("list", help="List matches without resolving stream links")
    add_selection(p_list)
    p_list.add_argument("--offset", type=int, default=0, help="Skip this many matches")
    p_list.add_argument("--limit", type=int, default=0, help="Maximum matches (0 = all)")
    p_list.set_defaults(func=cmd_list)

    p_browse = sub.add_parser("browse", help="Load matches with their stream links")
    add_selection(p_browse)
    p_browse.add_argument("--count", type=int, default=INITIAL_LOAD_SIZE, help="Matches to load (0 = all)")
    p_browse.add_argument("--export", action="store_true", help="Also write JSON/M3U output")
    p_browse.set_defaults(func=cmd_browse)

    p_links = sub.add_parser("links", help="Show stream links of one match page")
    p_links.add_argument("url", help="Match detail page URL")
    p_links.set_defaults(func=cmd_links)

    p_sched = sub.add_parser("schedule", help="Export periodically")
    p_sched.add_argument("--section", type=_section, default=Section.ALL)
    p_sched.add_argument("--count", type=int, default=0, help="Matches per export (0 = all)")
    p_sched.set_defaults(func=cmd_schedule)

    p_prefs = sub.add_parser("prefs", help="Show or change stored preferences")
    p_prefs.add_argument("action", nargs="?", default="show", choices=["show", "set-base-url", "set-proxy", "reset"])
    p_prefs.add_argument("value", nargs="?", default="")
    p_prefs.set_defaults(func=cmd_prefs)

    args = ap.parse_args()
    _setup_logging(verbose=args.verbose)
    try:
        args.func(args)
    except NetworkError as exc:
        logging.error("Could not load the listing: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
