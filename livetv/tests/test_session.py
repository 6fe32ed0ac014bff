from __future__ import annotations

import asyncio
import os
import sys
import tempfile
import threading
import unittest
from pathlib import Path
from unittest import mock

LIVETV_DIR = Path(__file__).resolve().parents[1]
if str(LIVETV_DIR) not in sys.path:
    sys.path.insert(0, str(LIVETV_DIR))

import match_session
import web_scraper
from match_models import LoadState, NetworkError, Section
from match_session import MatchSession
from preferences import KEY_BASE_URL, Preferences

BASE_URL = "https://livetv.sx/enx/allupcomingsports/1/"
NO_STREAMS = "<html><body>No streams yet</body></html>"


def _detail_url(event_id: int) -> str:
    return f"https://livetv.sx/enx/eventinfo/{event_id}_match/"


def _row(event_id: int, competition: str, teams: str) -> str:
    return (
        f'<tr><td class="time">18:00</td>'
        f'<td class="league"><a href="/enx/league/{event_id}/">{competition}</a></td>'
        f'<td class="evdesc"><a href="/enx/eventinfo/{event_id}_match/">{teams}</a></td></tr>'
    )


def _football_listing(count: int) -> str:
    rows = [_row(1000 + i, "Premier League", f"Home{i} – Away{i}") for i in range(count)]
    return f"<html><body><table>{''.join(rows)}</table></body></html>"


def _ace_page(content_id: str) -> str:
    return f'<html><body><a href="acestream://{content_id}">Stream</a></body></html>'


class FakeFetcher:
    """Serves a listing page and detail pages from memory."""

    def __init__(self, listing: str, details: dict[str, str] | None = None) -> None:
        self.listing = listing
        self.details = details or {}
        self.failing: set[str] = set()
        self.listing_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: list[str] = []

    async def fetch(self, url: str) -> str:
        self.calls.append(url)
        await asyncio.sleep(0)
        if url == BASE_URL:
            if self.listing_error is not None:
                raise self.listing_error
            return self.listing
        if self.gate is not None:
            await self.gate.wait()
        if url in self.failing:
            raise NetworkError(url, "HTTP error 500", status=500)
        return self.details.get(url, NO_STREAMS)

    @property
    def listing_calls(self) -> int:
        return sum(1 for c in self.calls if c == BASE_URL)

    def detail_calls(self, url: str | None = None) -> int:
        return sum(1 for c in self.calls if c != BASE_URL and (url is None or c == url))


class SessionTestCase(unittest.IsolatedAsyncioTestCase):
    def make_session(self, fetcher: FakeFetcher, **kwargs) -> MatchSession:
        options = {"initial_load_size": 10, "load_more_size": 5, "background_scan": False}
        options.update(kwargs)
        return MatchSession(fetcher, base_url=BASE_URL, **options)


class ActivationTests(SessionTestCase):
    async def test_first_activation_loads_first_page_and_links(self) -> None:
        details = {_detail_url(1000 + i): _ace_page(f"ace{i}") for i in range(3)}
        fetcher = FakeFetcher(_football_listing(25), details)
        session = self.make_session(fetcher)

        await session.activate(Section.ALL)
        self.assertEqual(len(session.visible), 10)
        cache = session.cache_for(Section.ALL)
        self.assertIs(cache.state, LoadState.PARTIALLY_LOADED)
        self.assertEqual(cache.total_fetched, 10)

        await session.settle()
        self.assertEqual(fetcher.detail_calls(), 10)
        visible = session.visible
        self.assertTrue(all(r.links_resolved and not r.links_loading for r in visible))
        self.assertEqual(visible[0].stream_links, ("acestream://ace0",))
        self.assertEqual(visible[5].stream_links, ())
        for record in visible:
            self.assertGreater(len(record.teams), 3)
            self.assertTrue(record.detail_page_url)

    async def test_reactivation_reuses_cache_without_fetching(self) -> None:
        fetcher = FakeFetcher(_football_listing(25), {_detail_url(1000): _ace_page("ace0")})
        session = self.make_session(fetcher)
        await session.activate(Section.ALL)
        await session.settle()
        before = session.visible
        calls = len(fetcher.calls)

        await session.activate(Section.ALL)
        await session.settle()
        self.assertEqual(session.visible, before)
        self.assertEqual(len(fetcher.calls), calls)

    async def test_switching_sections_restores_cached_records_and_links(self) -> None:
        details = {_detail_url(1000 + i): _ace_page(f"ace{i}") for i in (1, 4, 7)}
        fetcher = FakeFetcher(_football_listing(25), details)
        session = self.make_session(fetcher)

        await session.activate(Section.ALL)
        await session.settle()
        snapshot = session.visible
        self.assertEqual(len(snapshot), 10)
        self.assertEqual(sum(1 for r in snapshot if r.stream_links), 3)

        await session.activate(Section.FOOTBALL)
        await session.settle()
        self.assertIs(session.active_section, Section.FOOTBALL)
        all_section_calls = sum(fetcher.detail_calls(r.detail_page_url) for r in snapshot)

        await session.activate(Section.ALL)
        await session.settle()
        self.assertEqual(session.visible, snapshot)
        self.assertEqual(
            [r.stream_links for r in session.visible if r.stream_links],
            [("acestream://ace1",), ("acestream://ace4",), ("acestream://ace7",)],
        )
        self.assertEqual(sum(fetcher.detail_calls(r.detail_page_url) for r in snapshot), all_section_calls)

    async def test_refresh_discards_cache(self) -> None:
        fetcher = FakeFetcher(_football_listing(12))
        session = self.make_session(fetcher)
        await session.activate(Section.ALL)
        await session.settle()
        old_cache = session.cache_for(Section.ALL)

        await session.refresh()
        await session.settle()
        new_cache = session.cache_for(Section.ALL)
        self.assertIsNot(new_cache, old_cache)
        self.assertEqual(fetcher.listing_calls, 2)
        self.assertEqual(len(session.visible), 10)

    async def test_pages_are_parsed_off_the_event_loop(self) -> None:
        fetcher = FakeFetcher(_football_listing(12), {_detail_url(1000): _ace_page("ace0")})
        session = self.make_session(fetcher)
        loop_thread = threading.get_ident()
        parse_threads: list[int] = []
        extract_threads: list[int] = []

        def recording(target, threads):  # noqa: ANN001, ANN202
            def wrapper(*args, **kwargs):  # noqa: ANN002, ANN003, ANN202
                threads.append(threading.get_ident())
                return target(*args, **kwargs)
            return wrapper

        with mock.patch.object(
            match_session, "parse_match_list", recording(match_session.parse_match_list, parse_threads),
        ), mock.patch.object(
            web_scraper, "extract_stream_links", recording(web_scraper.extract_stream_links, extract_threads),
        ):
            await session.activate(Section.ALL)
            await session.settle()

        self.assertEqual(len(session.visible), 10)
        self.assertEqual(session.visible[0].stream_links, ("acestream://ace0",))
        self.assertEqual(len(parse_threads), 1)
        self.assertEqual(len(extract_threads), 10)
        self.assertNotIn(loop_thread, parse_threads + extract_threads)


class PaginationTests(SessionTestCase):
    async def test_load_more_walks_to_fully_loaded(self) -> None:
        fetcher = FakeFetcher(_football_listing(22))
        session = self.make_session(fetcher)
        await session.activate(Section.ALL)

        batch = await session.load_more()
        self.assertEqual(len(batch), 5)
        self.assertEqual(len(session.visible), 15)
        batch = await session.load_more()
        self.assertEqual(len(batch), 5)
        batch = await session.load_more()
        self.assertEqual(len(batch), 2)
        cache = session.cache_for(Section.ALL)
        self.assertIs(cache.state, LoadState.FULLY_LOADED)
        self.assertEqual(await session.load_more(), [])
        await session.settle()

        urls = [r.detail_page_url for r in session.visible]
        self.assertEqual(urls, [_detail_url(1000 + i) for i in range(22)])

    async def test_background_scan_merges_and_keeps_links(self) -> None:
        gate = asyncio.Event()
        fetcher = FakeFetcher(_football_listing(25), {_detail_url(1000): _ace_page("ace0")})
        fetcher.gate = gate
        session = self.make_session(fetcher, background_scan=True)

        await session.activate(Section.ALL)
        gate.set()
        await session.settle()

        cache = session.cache_for(Section.ALL)
        self.assertTrue(cache.fully_loaded)
        self.assertEqual(len(cache.records), 25)
        self.assertEqual(len(session.visible), 10)
        self.assertEqual(session.visible[0].stream_links, ("acestream://ace0",))
        self.assertEqual(fetcher.detail_calls(_detail_url(1000)), 1)


class FilterAndSearchTests(SessionTestCase):
    def _mixed_listing(self) -> str:
        rows = [_row(1000 + i, "Premier League", f"Home{i} – Away{i}") for i in range(12)]
        rows += [_row(2000 + i, "ATP Paris (France)", f"Player{i} – Rival{i}") for i in range(4)]
        return f"<html><body><table>{''.join(rows)}</table></body></html>"

    async def test_sport_filter_forces_full_load(self) -> None:
        fetcher = FakeFetcher(self._mixed_listing())
        session = self.make_session(fetcher)
        await session.activate(Section.ALL)
        self.assertNotIn("Tennis", session.available_sports)

        await session.set_sport_filter("Tennis")
        self.assertTrue(session.cache_for(Section.ALL).fully_loaded)
        self.assertEqual(len(session.visible), 4)
        self.assertTrue(all(r.sport == "Tennis" for r in session.visible))
        self.assertEqual(session.available_sports, ["Football", "Tennis"])
        self.assertEqual(session.available_leagues, ["ATP Tour", "Premier League"])

        await session.set_sport_filter("All Sports")
        self.assertEqual(len(session.visible), 10)
        await session.settle()

    async def test_search_bypasses_pagination(self) -> None:
        fetcher = FakeFetcher(_football_listing(25), {_detail_url(1002): _ace_page("ace2")})
        session = self.make_session(fetcher)
        await session.activate(Section.ALL)
        await session.settle()

        await session.set_search("HOME2")
        await session.settle()
        teams = [r.teams for r in session.visible]
        self.assertEqual(teams, ["Home2 – Away2"] + [f"Home{i} – Away{i}" for i in range(20, 25)])
        self.assertEqual(session.visible[0].stream_links, ("acestream://ace2",))
        self.assertEqual(fetcher.detail_calls(_detail_url(1002)), 1)
        self.assertEqual(await session.load_more(), [])

        await session.set_search("")
        self.assertEqual(len(session.visible), 10)


class FailureTests(SessionTestCase):
    async def test_list_failure_sets_error_and_retry_recovers(self) -> None:
        fetcher = FakeFetcher(_football_listing(12))
        fetcher.listing_error = NetworkError(BASE_URL, "HTTP error 503", status=503)
        session = self.make_session(fetcher)

        await session.activate(Section.ALL)
        self.assertIn("503", session.error)
        self.assertEqual(session.visible, [])
        self.assertIsNone(session.cache_for(Section.ALL))

        fetcher.listing_error = None
        await session.retry()
        await session.settle()
        self.assertIsNone(session.error)
        self.assertEqual(len(session.visible), 10)

    async def test_one_failing_link_fetch_does_not_affect_siblings(self) -> None:
        details = {_detail_url(1000 + i): _ace_page(f"ace{i}") for i in range(10)}
        fetcher = FakeFetcher(_football_listing(10), details)
        fetcher.failing.add(_detail_url(1003))
        session = self.make_session(fetcher)

        await session.activate(Section.ALL)
        await session.settle()
        links = {r.detail_page_url: r.stream_links for r in session.visible}
        self.assertEqual(links[_detail_url(1003)], ())
        self.assertEqual(sum(1 for v in links.values() if v), 9)
        self.assertIsNone(session.error)

        fetcher.failing.clear()
        refreshed = await session.refresh_match_links(_detail_url(1003))
        self.assertEqual(refreshed, ["acestream://ace3"])
        self.assertEqual(session.visible[3].stream_links, ("acestream://ace3",))

    async def test_refresh_while_links_in_flight_is_harmless(self) -> None:
        gate = asyncio.Event()
        fetcher = FakeFetcher(_football_listing(12), {_detail_url(1000): _ace_page("ace0")})
        fetcher.gate = gate
        session = self.make_session(fetcher)

        await session.activate(Section.ALL)
        stale = session.cache_for(Section.ALL)
        self.assertTrue(all(r.links_loading for r in session.visible))

        await session.refresh()
        gate.set()
        await session.settle()

        self.assertIsNot(session.cache_for(Section.ALL), stale)
        self.assertIsNone(session.error)
        self.assertTrue(all(r.links_resolved for r in session.visible))
        self.assertEqual(session.visible[0].stream_links, ("acestream://ace0",))
        self.assertTrue(all(r.links_resolved for r in stale.records[:10]))


class PreferencesTests(unittest.TestCase):
    def test_session_reads_base_url_and_proxy(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "prefs.json")
            prefs = Preferences(path)
            self.assertEqual(prefs.base_url, BASE_URL)
            self.assertEqual(prefs.stream_proxy, "127.0.0.1:6878")

            prefs.set(KEY_BASE_URL, "https://mirror.example.com/list/")
            reloaded = Preferences(path)
            session = MatchSession.from_preferences(reloaded, FakeFetcher(""))
            self.assertEqual(session.base_url, "https://mirror.example.com/list/")
            self.assertEqual(session.proxy, "127.0.0.1:6878")

            reloaded.reset()
            self.assertEqual(Preferences(path).base_url, BASE_URL)


if __name__ == "__main__":
    unittest.main()
