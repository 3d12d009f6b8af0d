"""In-memory content cache and the sources that refresh it."""

from abserve.content.cache import ContentCache, Snapshot
from abserve.content.sources import FifoPollSource, NotAFifoError, OneShotSource, check_fifo

__all__ = [
    "ContentCache",
    "FifoPollSource",
    "NotAFifoError",
    "OneShotSource",
    "Snapshot",
    "check_fifo",
]
