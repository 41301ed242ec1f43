"""
Parsed change/event feeds.

A feed wraps one raw notification stream from an ``Endpoint`` and runs each
item through the owning descriptor's ``parse``:

    async for state in handle.subscribe_change(PLAYBACK_STATUS):
        ...  # PlaybackState values

A feed ends exactly when its raw stream ends.  A notification that fails to
parse is logged, counted in ``skipped`` and dropped.
"""

import logging
import weakref
from typing import AsyncIterator, Generic, TypeVar

from ..lib.errors import ParseError

log = logging.getLogger(__name__)

T = TypeVar("T")


def _close_raw(raw):
    close = getattr(raw, "close", None)
    if close is not None:
        close()


class _ParsedFeed(Generic[T]):
    kind = "notification"

    def __init__(self, descriptor, raw: AsyncIterator, bus_name: str = ""):
        self.descriptor = descriptor
        self.bus_name = bus_name
        self._raw = raw
        self._closed = False
        self.skipped = 0
        # Dropping the feed unsubscribes, same as close()
        self._finalizer = weakref.finalize(self, _close_raw, raw)
        self._finalizer.atexit = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        if self._closed:
            raise StopAsyncIteration
        while True:
            try:
                raw = await self._raw.__anext__()
            except StopAsyncIteration:
                self._closed = True
                log.debug("%s %s feed from %s ended", self.descriptor.name, self.kind, self.bus_name)
                raise
            try:
                return self.descriptor.parse(raw)
            except ParseError as e:
                self.skipped += 1
                log.warning("Skipping malformed %s from %s: %s", self.kind, self.bus_name or "player", e)

    def close(self):
        """Release the underlying raw stream."""
        self._closed = True
        self._finalizer()

    async def aclose(self):
        self.close()

    def __repr__(self):
        return f"<{type(self).__name__} {self.descriptor.name} from {self.bus_name or '?'}>"


class ParsedChangeFeed(_ParsedFeed[T]):
    """New values of one property, as they change."""

    kind = "property change"


class ParsedEventFeed(_ParsedFeed[T]):
    """Parsed argument of each emission of one signal."""

    kind = "signal"
