from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO, Optional, TextIO, Union

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Snapshot:
    """One consistent version of the cached resource."""

    content: bytes
    last_modified: datetime
    version: int

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def etag(self) -> str:
        delta = self.last_modified - EPOCH
        micros = (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
        return f"{micros:x}-{self.size:x}"


def _binary_stream(stream: Union[BinaryIO, TextIO]) -> BinaryIO:
    if isinstance(stream, io.TextIOBase):
        return stream.buffer  # type: ignore[attr-defined]
    return stream  # type: ignore[return-value]


class ContentCache:
    """
    Holds the bytes of the virtual resource and the time they were stored.

    There is one writer (a refresh source) and many readers (HTTP requests).
    Readers always get a whole `Snapshot`; content and timestamp never come
    from two different fills. Fills read the stream before taking the lock,
    so a slow writer on the other end of a pipe does not stall requests.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._filled = threading.Event()
        self._current = Snapshot(content=b"", last_modified=EPOCH, version=0)

    @property
    def filled(self) -> bool:
        return self._filled.is_set()

    def wait_filled(self, timeout: Optional[float] = None) -> bool:
        return self._filled.wait(timeout)

    def fill(self, stream: Union[BinaryIO, TextIO]) -> Snapshot:
        """
        Replace the content with everything `stream` yields until end-of-stream.

        Blocks until the stream is exhausted. Read errors propagate and leave
        the previous content in place.
        """
        data = _binary_stream(stream).read()
        return self.replace(data)

    def replace(self, data: bytes) -> Snapshot:
        with self._lock:
            snapshot = Snapshot(
                content=bytes(data),
                last_modified=utc_now(),
                version=self._current.version + 1,
            )
            self._current = snapshot
        self._filled.set()
        logger.debug("Content cache filled. version=%d size=%d", snapshot.version, snapshot.size)
        return snapshot

    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._current
