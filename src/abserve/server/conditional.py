from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from aiohttp import hdrs, web
from aiohttp.helpers import ETAG_ANY, ETag

from abserve.content.cache import Snapshot

SAFE_METHODS = frozenset({hdrs.METH_GET, hdrs.METH_HEAD})


@dataclass(frozen=True, slots=True)
class Outcome:
    """How to answer a request for a snapshot; `start`/`stop` bound the body."""

    status: int
    start: int = 0
    stop: int = 0


def http_time(value: datetime) -> datetime:
    # HTTP dates carry whole seconds only.
    return value.replace(microsecond=0)


def _etag_matches(etags: Sequence[ETag], current: str, *, weak: bool) -> bool:
    for etag in etags:
        if etag.value == ETAG_ANY:
            return True
        if etag.value != current:
            continue
        if weak or not etag.is_weak:
            return True
    return False


def _if_range_allows(request: web.BaseRequest, snapshot: Snapshot) -> bool:
    raw = request.headers.get(hdrs.IF_RANGE)
    if raw is None:
        return True
    raw = raw.strip()
    if raw.startswith('"'):
        return raw == f'"{snapshot.etag}"'
    if raw.startswith("W/"):
        return False
    since = request.if_range
    return since is not None and since == http_time(snapshot.last_modified)


def _preconditions(request: web.BaseRequest, snapshot: Snapshot) -> Optional[int]:
    modified = http_time(snapshot.last_modified)

    if_match = request.if_match
    if if_match is not None:
        if not _etag_matches(if_match, snapshot.etag, weak=False):
            return web.HTTPPreconditionFailed.status_code
    else:
        unmodified_since = request.if_unmodified_since
        if unmodified_since is not None and modified > unmodified_since:
            return web.HTTPPreconditionFailed.status_code

    if_none_match = request.if_none_match
    if if_none_match is not None:
        if _etag_matches(if_none_match, snapshot.etag, weak=True):
            if request.method in SAFE_METHODS:
                return web.HTTPNotModified.status_code
            return web.HTTPPreconditionFailed.status_code
    elif request.method in SAFE_METHODS:
        modified_since = request.if_modified_since
        if modified_since is not None and modified <= modified_since:
            return web.HTTPNotModified.status_code
    return None


def _byte_range(request: web.BaseRequest, size: int) -> Optional[Outcome]:
    raw = request.headers.get(hdrs.RANGE)
    if raw is None:
        return None
    raw = raw.strip()
    # Other units and multi-range requests get the whole body.
    if not raw.startswith("bytes=") or "," in raw:
        return None
    # A zero-length suffix selects nothing.
    if raw.replace(" ", "") == "bytes=-0":
        return Outcome(status=web.HTTPRequestRangeNotSatisfiable.status_code)

    try:
        rng = request.http_range
    except ValueError:
        return Outcome(status=web.HTTPRequestRangeNotSatisfiable.status_code)

    start = rng.start or 0
    stop = rng.stop
    if start < 0:
        start = max(size + start, 0)
        stop = size
    elif stop is None or stop > size:
        stop = size

    if start >= size or start >= stop:
        return Outcome(status=web.HTTPRequestRangeNotSatisfiable.status_code)
    return Outcome(status=web.HTTPPartialContent.status_code, start=start, stop=stop)


def evaluate(request: web.BaseRequest, snapshot: Snapshot) -> Outcome:
    """Apply conditional and range headers to decide the response for `snapshot`."""
    status = _preconditions(request, snapshot)
    if status is not None:
        return Outcome(status=status)

    if request.method in SAFE_METHODS and _if_range_allows(request, snapshot):
        partial = _byte_range(request, snapshot.size)
        if partial is not None:
            return partial

    return Outcome(status=web.HTTPOk.status_code, start=0, stop=snapshot.size)
