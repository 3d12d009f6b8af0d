import tempfile
from datetime import timedelta
from pathlib import Path

from aiohttp import hdrs, web
from aiohttp.test_utils import AioHTTPTestCase

from abserve.config.models import ServerSettings
from abserve.content.cache import ContentCache
from abserve.server.router import build_app


def _http_date(value) -> str:
    response = web.StreamResponse()
    response.last_modified = value
    return response.headers[hdrs.LAST_MODIFIED]


class VirtualResourceTests(AioHTTPTestCase):
    async def get_application(self) -> web.Application:
        self.cache = ContentCache()
        self.cache.replace(b"hello\n")
        return build_app(ServerSettings(path="/greet.txt"), self.cache)

    async def test_serves_cached_content(self) -> None:
        async with self.client.get("/greet.txt") as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(await resp.read(), b"hello\n")
            self.assertEqual(resp.content_type, "text/plain")
            self.assertEqual(resp.charset, "utf-8")
            self.assertEqual(resp.headers[hdrs.ACCEPT_RANGES], "bytes")
            self.assertEqual(resp.headers[hdrs.ETAG], f'"{self.cache.snapshot().etag}"')
            self.assertEqual(resp.headers[hdrs.LAST_MODIFIED], _http_date(self.cache.snapshot().last_modified))

    async def test_other_paths_are_not_found_without_directory(self) -> None:
        for path in ("/other", "/greet.txt/", "/greet"):
            async with self.client.get(path) as resp:
                self.assertEqual(resp.status, 404, path)

    async def test_head_returns_headers_without_body(self) -> None:
        async with self.client.head("/greet.txt") as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(await resp.read(), b"")

    async def test_other_methods_are_not_allowed(self) -> None:
        async with self.client.post("/greet.txt", data=b"x") as resp:
            self.assertEqual(resp.status, 405)

    async def test_refill_is_visible_to_next_request(self) -> None:
        self.cache.replace(b"updated")

        async with self.client.get("/greet.txt") as resp:
            self.assertEqual(await resp.read(), b"updated")

    async def test_if_modified_since_at_or_after_last_modified_is_not_modified(self) -> None:
        modified = self.cache.snapshot().last_modified
        for since in (modified, modified + timedelta(hours=1)):
            headers = {hdrs.IF_MODIFIED_SINCE: _http_date(since)}
            async with self.client.get("/greet.txt", headers=headers) as resp:
                self.assertEqual(resp.status, 304)
                self.assertEqual(await resp.read(), b"")

    async def test_if_modified_since_before_last_modified_returns_body(self) -> None:
        since = self.cache.snapshot().last_modified - timedelta(seconds=5)
        headers = {hdrs.IF_MODIFIED_SINCE: _http_date(since)}

        async with self.client.get("/greet.txt", headers=headers) as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(await resp.read(), b"hello\n")

    async def test_if_none_match_with_current_etag_is_not_modified(self) -> None:
        etag = f'"{self.cache.snapshot().etag}"'

        async with self.client.get("/greet.txt", headers={hdrs.IF_NONE_MATCH: etag}) as resp:
            self.assertEqual(resp.status, 304)

        self.cache.replace(b"new version")
        async with self.client.get("/greet.txt", headers={hdrs.IF_NONE_MATCH: etag}) as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(await resp.read(), b"new version")

    async def test_if_match_mismatch_fails_precondition(self) -> None:
        async with self.client.get("/greet.txt", headers={hdrs.IF_MATCH: '"nope"'}) as resp:
            self.assertEqual(resp.status, 412)

    async def test_if_unmodified_since_before_last_modified_fails_precondition(self) -> None:
        since = self.cache.snapshot().last_modified - timedelta(days=1)
        headers = {hdrs.IF_UNMODIFIED_SINCE: _http_date(since)}

        async with self.client.get("/greet.txt", headers=headers) as resp:
            self.assertEqual(resp.status, 412)

    async def test_byte_ranges(self) -> None:
        cases = {
            "bytes=0-1": (b"he", "bytes 0-1/6"),
            "bytes=2-": (b"llo\n", "bytes 2-5/6"),
            "bytes=-2": (b"o\n", "bytes 4-5/6"),
            "bytes=4-100": (b"o\n", "bytes 4-5/6"),
        }
        for header, (body, content_range) in cases.items():
            async with self.client.get("/greet.txt", headers={hdrs.RANGE: header}) as resp:
                self.assertEqual(resp.status, 206, header)
                self.assertEqual(await resp.read(), body, header)
                self.assertEqual(resp.headers[hdrs.CONTENT_RANGE], content_range, header)

    async def test_unsatisfiable_range(self) -> None:
        async with self.client.get("/greet.txt", headers={hdrs.RANGE: "bytes=10-20"}) as resp:
            self.assertEqual(resp.status, 416)
            self.assertEqual(resp.headers[hdrs.CONTENT_RANGE], "bytes */6")

    async def test_zero_length_suffix_range_is_unsatisfiable(self) -> None:
        async with self.client.get("/greet.txt", headers={hdrs.RANGE: "bytes=-0"}) as resp:
            self.assertEqual(resp.status, 416)
            self.assertEqual(resp.headers[hdrs.CONTENT_RANGE], "bytes */6")
            self.assertEqual(await resp.read(), b"")

    async def test_multi_range_gets_whole_body(self) -> None:
        async with self.client.get("/greet.txt", headers={hdrs.RANGE: "bytes=0-1,3-4"}) as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(await resp.read(), b"hello\n")

    async def test_stale_if_range_gets_whole_body(self) -> None:
        headers = {hdrs.RANGE: "bytes=0-1", hdrs.IF_RANGE: '"stale"'}

        async with self.client.get("/greet.txt", headers=headers) as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(await resp.read(), b"hello\n")


class RootPathTests(AioHTTPTestCase):
    async def get_application(self) -> web.Application:
        self.cache = ContentCache()
        self.cache.replace(b"\xff\xfe\x00binary")
        return build_app(ServerSettings(), self.cache)

    async def test_root_is_default_path_and_content_type_is_sniffed(self) -> None:
        async with self.client.get("/") as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(resp.content_type, "application/octet-stream")
            self.assertEqual(await resp.read(), b"\xff\xfe\x00binary")

    async def test_html_content_is_sniffed(self) -> None:
        self.cache.replace(b"<!DOCTYPE html><p>hi</p>")

        async with self.client.get("/") as resp:
            self.assertEqual(resp.content_type, "text/html")


class FallbackDirectoryTests(AioHTTPTestCase):
    async def get_application(self) -> web.Application:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        (root / "index.html").write_text("from disk", encoding="utf-8")
        (root / "style.css").write_text("body {}", encoding="utf-8")
        self.cache = ContentCache()
        self.cache.replace(b"from memory")
        return build_app(ServerSettings(path="index.html", directory=str(root)), self.cache)

    async def asyncTearDown(self) -> None:
        await super().asyncTearDown()
        self._tmp.cleanup()

    async def test_virtual_resource_wins_over_file(self) -> None:
        async with self.client.get("/index.html") as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(await resp.read(), b"from memory")
            self.assertEqual(resp.content_type, "text/html")

    async def test_other_files_are_served_from_disk(self) -> None:
        async with self.client.get("/style.css") as resp:
            self.assertEqual(resp.status, 200)
            self.assertEqual(await resp.text(), "body {}")
            self.assertEqual(resp.content_type, "text/css")

    async def test_missing_file_is_not_found(self) -> None:
        async with self.client.get("/missing.js") as resp:
            self.assertEqual(resp.status, 404)

    async def test_traversal_is_refused(self) -> None:
        async with self.client.get("/%2e%2e/%2e%2e/etc/passwd") as resp:
            self.assertIn(resp.status, (403, 404))
