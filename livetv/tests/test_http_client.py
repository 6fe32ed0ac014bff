from __future__ import annotations

import asyncio
import sys
import unittest
from pathlib import Path
from unittest import mock

LIVETV_DIR = Path(__file__).resolve().parents[1]
if str(LIVETV_DIR) not in sys.path:
    sys.path.insert(0, str(LIVETV_DIR))

import requests
from aiohttp import test_utils, web

import http_client
from match_models import NetworkError

URL = "https://livetv.sx/enx/allupcomingsports/1/"


def _response(status: int, body: bytes = b"") -> mock.Mock:
    resp = mock.Mock()
    resp.status_code = status
    resp.encoding = "utf-8"
    resp.iter_content.return_value = [body] if body else []
    return resp


class FetchTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock()
        patcher = mock.patch.object(http_client, "_get_session", return_value=self.session)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_returns_markup_with_browser_profile(self) -> None:
        self.session.get.return_value = _response(200, b"<html>ok</html>")
        self.assertEqual(http_client.fetch(URL, timeout=5), "<html>ok</html>")
        _, kwargs = self.session.get.call_args
        self.assertEqual(kwargs["timeout"], 5)
        self.assertFalse(kwargs["verify"])

    def test_non_2xx_raises_network_error(self) -> None:
        self.session.get.return_value = _response(503, b"busy")
        with self.assertRaises(NetworkError) as ctx:
            http_client.fetch(URL)
        self.assertEqual(ctx.exception.status, 503)
        self.assertEqual(ctx.exception.url, URL)

    def test_empty_body_raises_network_error(self) -> None:
        self.session.get.return_value = _response(200, b"   ")
        with self.assertRaises(NetworkError):
            http_client.fetch(URL)

    def test_timeout_raises_network_error(self) -> None:
        self.session.get.side_effect = requests.exceptions.ReadTimeout("slow")
        with self.assertRaises(NetworkError):
            http_client.fetch(URL)
        self.assertEqual(self.session.get.call_count, 1)

    def test_connection_error_is_not_retried(self) -> None:
        self.session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(NetworkError):
            http_client.fetch(URL)
        self.assertEqual(self.session.get.call_count, 1)


class BrowserProfileTests(unittest.TestCase):
    def test_desktop_user_agent(self) -> None:
        self.assertIn("Windows NT", http_client.BROWSER_HEADERS["User-Agent"])
        self.assertIn("text/html", http_client.BROWSER_HEADERS["Accept"])


LISTING_ROWS = 3000


def _row(i: int) -> str:
    return f'<tr><td><a href="/enx/eventinfo/{i}_x/">A{i} - B{i}</a></td></tr>'


async def _chunked_listing(request: web.Request) -> web.StreamResponse:
    resp = web.StreamResponse()
    resp.content_type = "text/html"
    await resp.prepare(request)
    await resp.write(b"<html><body><table>")
    for i in range(LISTING_ROWS):
        await resp.write(_row(i).encode())
        if i % 500 == 0:
            await asyncio.sleep(0.01)
    await resp.write(b"</table></body></html>")
    await resp.write_eof()
    return resp


async def _unavailable(request: web.Request) -> web.Response:
    return web.Response(status=503, text="busy")


async def _empty(request: web.Request) -> web.Response:
    return web.Response(text="", content_type="text/html")


async def _slow(request: web.Request) -> web.Response:
    await asyncio.sleep(1.0)
    return web.Response(text="<html>late</html>", content_type="text/html")


class AsyncFetcherTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        app = web.Application()
        app.router.add_get("/listing", _chunked_listing)
        app.router.add_get("/unavailable", _unavailable)
        app.router.add_get("/empty", _empty)
        app.router.add_get("/slow", _slow)
        self.server = test_utils.TestServer(app)
        await self.server.start_server()
        self.addAsyncCleanup(self.server.close)
        self.fetcher = http_client.AsyncFetcher(timeout=0.3)
        self.addAsyncCleanup(self.fetcher.close)

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    async def test_reads_whole_chunked_body(self) -> None:
        body = await self.fetcher.fetch(self.url("/listing"))
        self.assertTrue(body.startswith("<html><body><table>"))
        self.assertIn(f"/enx/eventinfo/{LISTING_ROWS - 1}_x/", body)
        self.assertTrue(body.endswith("</table></body></html>"))
        self.assertEqual(body.count("<tr>"), LISTING_ROWS)

    async def test_body_is_capped_at_max_bytes(self) -> None:
        fetcher = http_client.AsyncFetcher(max_bytes=2000)
        self.addAsyncCleanup(fetcher.close)
        body = await fetcher.fetch(self.url("/listing"))
        self.assertGreater(len(body), 2000)
        self.assertLess(body.count("<tr>"), LISTING_ROWS)

    async def test_non_2xx_raises_network_error(self) -> None:
        url = self.url("/unavailable")
        with self.assertRaises(NetworkError) as ctx:
            await self.fetcher.fetch(url)
        self.assertEqual(ctx.exception.status, 503)
        self.assertEqual(ctx.exception.url, url)

    async def test_empty_body_raises_network_error(self) -> None:
        with self.assertRaises(NetworkError):
            await self.fetcher.fetch(self.url("/empty"))

    async def test_timeout_raises_network_error(self) -> None:
        with self.assertRaises(NetworkError) as ctx:
            await self.fetcher.fetch(self.url("/slow"))
        self.assertIsNone(ctx.exception.status)


if __name__ == "__main__":
    unittest.main()
