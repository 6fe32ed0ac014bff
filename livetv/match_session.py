"""Session orchestration: incremental loading, per-section caching, search.

The session owns one ``SectionCache`` per visited section and the list of
records currently visible to the front end. Everything runs on one event
loop; every update to a cache and to the visible list happens in a single
synchronous step, so readers never observe a half-applied change.

Link fetches and the background full-corpus scan are fire-and-forget tasks
bound to the cache object they were started for. If that cache is later
discarded (refresh) their results land on the orphaned object and are
simply never shown.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Coroutine, Iterable, Optional

from categorizer import available_leagues, available_sports
from dedup import dedupe, merge_records
from match_models import MatchRecord, NetworkError, Section, SectionCache
from match_parser import parse_match_list
from preferences import DEFAULT_BASE_URL, DEFAULT_STREAM_PROXY, Preferences
from sport_filter import ALL_LEAGUES, ALL_SPORTS, filter_by_labels, search
from web_scraper import PageFetcher, discover

logger = logging.getLogger(__name__)

INITIAL_LOAD_SIZE = 15
LOAD_MORE_SIZE = 10
LINK_CONCURRENCY = 8


def _label_or_none(value: Optional[str], all_label: str) -> Optional[str]:
    if value is None or value == "" or value == all_label:
        return None
    return value


class MatchSession:
    def __init__(
        self,
        fetcher: PageFetcher,
        base_url: str = DEFAULT_BASE_URL,
        proxy: str = DEFAULT_STREAM_PROXY,
        initial_load_size: int = INITIAL_LOAD_SIZE,
        load_more_size: int = LOAD_MORE_SIZE,
        link_concurrency: int = LINK_CONCURRENCY,
        background_scan: bool = True,
    ) -> None:
        self.fetcher = fetcher
        self.base_url = base_url
        self.proxy = proxy
        self.initial_load_size = initial_load_size
        self.load_more_size = load_more_size
        self.background_scan = background_scan
        self.error: Optional[str] = None

        self._section = Section.ALL
        self._caches: dict[Section, SectionCache] = {}
        self._visible: list[MatchRecord] = []
        self._search_query = ""
        self._pending_loads = 0
        self._tasks: set[asyncio.Task] = set()
        self._full_loads: dict[Section, tuple[SectionCache, asyncio.Task]] = {}
        self._link_semaphore = asyncio.Semaphore(link_concurrency)

    @classmethod
    def from_preferences(cls, prefs: Preferences, fetcher: PageFetcher, **kwargs) -> "MatchSession":
        return cls(fetcher, base_url=prefs.base_url, proxy=prefs.stream_proxy, **kwargs)

    # ── Read-only view ──────────────────────────────────────────────────
    @property
    def active_section(self) -> Section:
        return self._section

    @property
    def visible(self) -> list[MatchRecord]:
        return list(self._visible)

    @property
    def search_query(self) -> str:
        return self._search_query

    @property
    def is_loading(self) -> bool:
        return self._pending_loads > 0

    @property
    def available_sports(self) -> list[str]:
        cache = self._active_cache()
        return list(cache.available_sports) if cache else []

    @property
    def available_leagues(self) -> list[str]:
        cache = self._active_cache()
        return list(cache.available_leagues) if cache else []

    def cache_for(self, section: Section) -> Optional[SectionCache]:
        return self._caches.get(section)

    def _active_cache(self) -> Optional[SectionCache]:
        return self._caches.get(self._section)

    def _is_current(self, cache: SectionCache) -> bool:
        return self._caches.get(cache.section) is cache

    # ── Task bookkeeping ────────────────────────────────────────────────
    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task failed: %s", exc, exc_info=exc)

    async def settle(self) -> None:
        """Wait until every link fetch and scan started so far has finished."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ── Cache maintenance ───────────────────────────────────────────────
    async def _fetch_page(self, section: Section, offset: int, limit: int) -> list[MatchRecord]:
        self._pending_loads += 1
        try:
            markup = await self.fetcher.fetch(self.base_url)
            return await asyncio.to_thread(
                parse_match_list, markup, self.base_url, section, limit=limit, offset=offset,
            )
        finally:
            self._pending_loads -= 1

    def _refresh_labels(self, cache: SectionCache) -> None:
        cache.available_sports = available_sports(cache.records)
        cache.available_leagues = available_leagues(cache.records)

    def _append_page(self, cache: SectionCache, page: list[MatchRecord], requested: int) -> None:
        cache.records = dedupe(cache.records + page)
        cache.total_fetched += len(page)
        if len(page) < requested:
            cache.fully_loaded = True
        self._refresh_labels(cache)
        logger.info(
            "%s: %d matches cached (%s)",
            cache.section.display_name, len(cache.records), cache.state.value,
        )

    def _filtered(self, cache: SectionCache) -> list[MatchRecord]:
        return filter_by_labels(cache.records, cache.active_sport_filter, cache.active_league_filter)

    def _publish(self, cache: SectionCache) -> None:
        """Recompute the visible list from *cache* if it is the active one."""
        if not self._is_current(cache) or cache.section is not self._section:
            return
        if self._search_query:
            self._visible = search(cache.records, self._search_query)
        else:
            self._visible = self._filtered(cache)[:cache.visible_count]

    def _extend_visible(self, cache: SectionCache, count: int) -> list[MatchRecord]:
        filtered = self._filtered(cache)
        start = cache.visible_count
        cache.visible_count = min(start + count, len(filtered))
        batch = filtered[start:cache.visible_count]
        self._publish(cache)
        if batch:
            logger.debug("Showing %d more matches (%d visible)", len(batch), cache.visible_count)
            self._schedule_links(cache, batch)
        return batch

    def _discard(self, section: Section) -> None:
        if self._caches.pop(section, None) is not None:
            logger.info("Discarded cached %s", section.display_name)
        self._full_loads.pop(section, None)

    # ── Full-corpus scan ────────────────────────────────────────────────
    async def _full_load(self, cache: SectionCache) -> bool:
        logger.info("Full scan of %s started", cache.section.display_name)
        try:
            records = await self._fetch_page(cache.section, 0, 0)
        except NetworkError as exc:
            logger.warning("Full scan of %s failed: %s", cache.section.display_name, exc)
            return False
        cache.records = merge_records(cache.records, records)
        cache.total_fetched = len(records)
        cache.fully_loaded = True
        self._refresh_labels(cache)
        logger.info("Full scan of %s finished: %d matches", cache.section.display_name, len(cache.records))
        self._publish(cache)
        if self._search_query and self._is_current(cache) and cache.section is self._section:
            self._schedule_links(cache, self._visible[:self.initial_load_size])
        return True

    def _ensure_full_load(self, cache: SectionCache) -> asyncio.Task:
        entry = self._full_loads.get(cache.section)
        if entry is not None and entry[0] is cache and not entry[1].done():
            return entry[1]
        task = self._spawn(self._full_load(cache))
        self._full_loads[cache.section] = (cache, task)
        return task

    def _start_background_scan(self, cache: SectionCache) -> None:
        if self.background_scan and not cache.fully_loaded:
            self._ensure_full_load(cache)

    # ── Stream links ────────────────────────────────────────────────────
    def _update_record(self, cache: SectionCache, updated: MatchRecord) -> None:
        if cache.replace_record(updated):
            self._publish(cache)

    def _schedule_links(self, cache: SectionCache, records: Iterable[MatchRecord]) -> None:
        for record in records:
            current = cache.find(record.detail_page_url)
            if current is None or current.links_resolved or current.links_loading:
                continue
            self._update_record(cache, replace(current, links_loading=True))
            self._spawn(self._resolve_links(cache, current.detail_page_url))

    async def _resolve_links(self, cache: SectionCache, detail_page_url: str) -> list[str]:
        async with self._link_semaphore:
            links = await discover(self.fetcher, detail_page_url)
        current = cache.find(detail_page_url)
        if current is not None:
            self._update_record(cache, replace(
                current, stream_links=tuple(links), links_loading=False, links_resolved=True,
            ))
        return links

    async def refresh_match_links(self, detail_page_url: str) -> list[str]:
        """Re-fetch the links of one record in the active section."""
        cache = self._active_cache()
        record = cache.find(detail_page_url) if cache else None
        if cache is None or record is None:
            logger.warning("No match %s in %s", detail_page_url, self._section.display_name)
            return []
        self._update_record(cache, replace(record, links_loading=True))
        return await self._resolve_links(cache, detail_page_url)

    # ── Public operations ───────────────────────────────────────────────
    async def activate(self, section: Section, refresh: bool = False) -> None:
        """Make *section* active, reusing its cached snapshot unless *refresh*."""
        logger.info("Activating %s (refresh=%s)", section.display_name, refresh)
        self._section = section
        self._search_query = ""
        self.error = None
        if refresh:
            self._discard(section)

        cache = self._caches.get(section)
        if cache is not None:
            self._publish(cache)
            self._schedule_links(cache, self._visible)
            self._start_background_scan(cache)
            return

        cache = SectionCache(section=section)
        self._caches[section] = cache
        self._visible = []
        try:
            page = await self._fetch_page(section, 0, self.initial_load_size)
        except NetworkError as exc:
            logger.error("Error loading %s: %s", section.display_name, exc)
            if self._is_current(cache):
                del self._caches[section]
            if self._section is section:
                self.error = str(exc)
            return

        if not self._is_current(cache):
            return
        self._append_page(cache, page, self.initial_load_size)
        self._extend_visible(cache, self.initial_load_size)
        self._start_background_scan(cache)

    async def load_more(self) -> list[MatchRecord]:
        """Show the next batch, fetching further source pages when needed."""
        cache = self._active_cache()
        if cache is None or self._search_query:
            return []
        step = self.load_more_size if cache.visible_count else self.initial_load_size
        wanted = cache.visible_count + step

        while len(self._filtered(cache)) < wanted and not cache.fully_loaded:
            try:
                page = await self._fetch_page(cache.section, cache.total_fetched, self.load_more_size)
            except NetworkError as exc:
                logger.error("Error loading more of %s: %s", cache.section.display_name, exc)
                if cache.section is self._section:
                    self.error = str(exc)
                return []
            if not self._is_current(cache):
                return []
            self._append_page(cache, page, self.load_more_size)

        batch = self._extend_visible(cache, step)
        if not batch:
            logger.debug("No more matches to load in %s", cache.section.display_name)
        return batch

    async def refresh(self) -> None:
        """Drop the active section's cache and load it again from scratch."""
        await self.activate(self._section, refresh=True)

    async def retry(self) -> None:
        """Retry after a list-load failure."""
        self.error = None
        if self._active_cache() is None:
            await self.activate(self._section)
        else:
            await self.load_more()

    async def _apply_label_filter(self, cache: SectionCache) -> None:
        if not cache.fully_loaded:
            await self._ensure_full_load(cache)
        if not self._is_current(cache):
            return
        cache.visible_count = 0
        self._extend_visible(cache, self.initial_load_size)

    async def set_sport_filter(self, sport: Optional[str]) -> None:
        cache = self._active_cache()
        if cache is None:
            return
        cache.active_sport_filter = _label_or_none(sport, ALL_SPORTS)
        logger.info("Sport filter: %s", cache.active_sport_filter or ALL_SPORTS)
        await self._apply_label_filter(cache)

    async def set_league_filter(self, league: Optional[str]) -> None:
        cache = self._active_cache()
        if cache is None:
            return
        cache.active_league_filter = _label_or_none(league, ALL_LEAGUES)
        logger.info("League filter: %s", cache.active_league_filter or ALL_LEAGUES)
        await self._apply_label_filter(cache)

    async def set_search(self, query: str) -> list[MatchRecord]:
        """Show every cached match containing *query*; an empty query restores paging."""
        self._search_query = query.strip()
        cache = self._active_cache()
        if cache is None:
            return []
        if self._search_query and not cache.fully_loaded:
            self._ensure_full_load(cache)
        self._publish(cache)
        if self._search_query:
            self._schedule_links(cache, self._visible[:self.initial_load_size])
        return self.visible
