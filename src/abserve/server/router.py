from __future__ import annotations

import logging
import mimetypes
import posixpath
from typing import Optional, Tuple

from aiohttp import hdrs, web
from aiohttp.typedefs import Handler

from abserve.config.models import ServerSettings
from abserve.content.cache import ContentCache, Snapshot
from abserve.server.conditional import SAFE_METHODS, evaluate

logger = logging.getLogger(__name__)

_HTML_PREFIXES = (b"<!doctype html", b"<html", b"<head", b"<body")


def _sniff_content_type(content: bytes) -> Tuple[str, Optional[str]]:
    head = content[:512].lstrip().lower()
    if head.startswith(_HTML_PREFIXES):
        return "text/html", "utf-8"
    try:
        content.decode("utf-8")
    except UnicodeDecodeError:
        return "application/octet-stream", None
    return "text/plain", "utf-8"


def _guess_content_type(name: str) -> Tuple[Optional[str], Optional[str]]:
    content_type, _ = mimetypes.guess_type(name)
    if content_type is None:
        return None, None
    if content_type.startswith("text/"):
        return content_type, "utf-8"
    return content_type, None


class VirtualResourceHandler:
    """
    Serves the cached resource at one exact path.

    Installed as a middleware so that it sees every request before routing
    takes effect: the virtual path always wins over a same-named file in the
    fallback directory, and any other path goes on to the router (static
    files, or 404 when there is no directory).
    """

    def __init__(self, *, path: str, cache: ContentCache) -> None:
        self._path = path
        self._cache = cache
        self._name = posixpath.basename(path)
        self._content_type, self._charset = _guess_content_type(self._name)

    @web.middleware
    async def middleware(self, request: web.Request, handler: Handler) -> web.StreamResponse:
        if request.path != self._path:
            return await handler(request)
        if request.method not in SAFE_METHODS:
            raise web.HTTPMethodNotAllowed(request.method, sorted(SAFE_METHODS))
        return await self.serve(request)

    async def serve(self, request: web.BaseRequest) -> web.StreamResponse:
        snapshot = self._cache.snapshot()
        outcome = evaluate(request, snapshot)

        if outcome.status == web.HTTPPreconditionFailed.status_code:
            return web.Response(status=outcome.status)
        if outcome.status == web.HTTPNotModified.status_code:
            return self._with_validators(web.Response(status=outcome.status), snapshot)
        if outcome.status == web.HTTPRequestRangeNotSatisfiable.status_code:
            response = web.Response(status=outcome.status)
            response.headers[hdrs.CONTENT_RANGE] = f"bytes */{snapshot.size}"
            return self._with_validators(response, snapshot)

        content_type, charset = self._content_type, self._charset
        if content_type is None:
            content_type, charset = _sniff_content_type(snapshot.content)

        response = web.Response(
            status=outcome.status,
            body=snapshot.content[outcome.start : outcome.stop],
            content_type=content_type,
            charset=charset,
        )
        if outcome.status == web.HTTPPartialContent.status_code:
            response.headers[hdrs.CONTENT_RANGE] = f"bytes {outcome.start}-{outcome.stop - 1}/{snapshot.size}"
        return self._with_validators(response, snapshot)

    @staticmethod
    def _with_validators(response: web.Response, snapshot: Snapshot) -> web.Response:
        response.last_modified = snapshot.last_modified
        response.etag = snapshot.etag
        response.headers[hdrs.ACCEPT_RANGES] = "bytes"
        return response


def build_app(settings: ServerSettings, cache: ContentCache) -> web.Application:
    handler = VirtualResourceHandler(path=settings.path, cache=cache)
    app = web.Application(middlewares=[handler.middleware])
    if settings.directory is not None:
        app.router.add_static("/", settings.directory, show_index=settings.show_index)
        logger.info("Serving fallback directory. directory=%s", settings.directory)
    return app
