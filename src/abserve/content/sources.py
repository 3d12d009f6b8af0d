from __future__ import annotations

import logging
import os
import stat
import threading
import time
from pathlib import Path
from typing import BinaryIO, Callable, Optional, TextIO, Union

from abserve.content.cache import ContentCache, Snapshot

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[BaseException], None]


class NotAFifoError(ValueError):
    pass


def check_fifo(path: Union[str, Path]) -> None:
    """Raise unless `path` names a named pipe. Symlinks are followed."""
    mode = os.stat(path).st_mode
    if not stat.S_ISFIFO(mode):
        raise NotAFifoError(f"not a FIFO: {path}")


class OneShotSource:
    """Fills the cache once from a stream, typically standard input."""

    def __init__(self, cache: ContentCache, stream: Union[BinaryIO, TextIO]) -> None:
        self._cache = cache
        self._stream = stream
        self._loaded = False

    def load(self) -> Snapshot:
        if self._loaded:
            return self._cache.snapshot()
        snapshot = self._cache.fill(self._stream)
        self._loaded = True
        logger.info("Resource loaded from input. size=%d", snapshot.size)
        return snapshot


class FifoPollSource:
    """
    Refreshes the cache from a named pipe, one version per writer.

    Every cycle opens the pipe (blocking until a writer connects), reads until
    the writer closes its end and commits what was read. The loop runs on a
    daemon thread so that it never holds up request handling or process exit.
    """

    def __init__(self, cache: ContentCache, path: Union[str, Path]) -> None:
        self._cache = cache
        self._path = Path(path)
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def load(self) -> Snapshot:
        """Verify the pipe and perform the initial, blocking fill."""
        check_fifo(self._path)
        logger.info("Waiting for the first writer. fifo=%s", self._path)
        with open(self._path, "rb") as f:
            if not stat.S_ISFIFO(os.fstat(f.fileno()).st_mode):
                raise NotAFifoError(f"not a FIFO: {self._path}")
            snapshot = self._cache.fill(f)
        logger.info("Resource loaded from FIFO. fifo=%s size=%d", self._path, snapshot.size)
        return snapshot

    def start(self, on_error: ErrorCallback) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            args=(on_error,),
            name="abserve-fifo-poll",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        deadline = time.monotonic() + timeout
        while thread.is_alive() and time.monotonic() < deadline:
            self._wake_reader()
            thread.join(0.05)
        if thread.is_alive():
            logger.warning("FIFO poll thread did not stop. fifo=%s", self._path)
        else:
            self._thread = None

    def _wake_reader(self) -> None:
        # Unblocks a reader parked in open(); ENXIO means nobody is waiting yet.
        try:
            fd = os.open(self._path, os.O_WRONLY | os.O_NONBLOCK)
        except OSError:
            return
        os.close(fd)

    def _poll_loop(self, on_error: ErrorCallback) -> None:
        try:
            while not self._stop_event.is_set():
                with open(self._path, "rb") as f:
                    data = f.read()
                if self._stop_event.is_set():
                    break
                snapshot = self._cache.replace(data)
                logger.debug(
                    "FIFO version received. fifo=%s version=%d size=%d",
                    self._path,
                    snapshot.version,
                    snapshot.size,
                )
        except Exception as e:
            on_error(e)
