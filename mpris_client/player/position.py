"""
PositionEstimator — the current playback offset of a player, without polling.

MPRIS players only announce position when it changes in a way the client
cannot predict (the Seeked signal).  Between those, position advances at
``Rate`` while ``PlaybackStatus`` is Playing.  The estimator keeps a small
timeline from a one-off snapshot and three change feeds, and emits a fresh
estimate once per tick while playing:

    estimator = await handle.subscribe_position()
    async for position in estimator:      # datetime.timedelta values
        print(position.total_seconds())

Each request for the next value looks at the sources in a fixed order:

    1. rate changes       (redefine how time is integrated from now on)
    2. playback changes   (start or freeze the clock)
    3. seek events        (the player told us exactly where it is)
    4. the tick timer     (nothing else happened)

Ordering applies when several sources are ready in the same pass.  The
timer only runs while Playing.  When any feed ends the estimator ends for
good; resubscribing is up to the caller.  An estimator that is simply
dropped releases its feeds as aclose() would.

Single consumer only: do not advance one estimator from two tasks.
"""

import asyncio
import logging
import time
import weakref
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable

from ..lib.errors import MprisError
from .enums import PlaybackState

log = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 1.0
DEFAULT_RATE = 1.0

_ENDED = object()

_HANDLERS = {"rate": "_on_rate", "playback": "_on_playback", "seek": "_on_seek"}


@dataclass
class EstimatorState:
    rate: float = DEFAULT_RATE
    playback: PlaybackState = PlaybackState.STOPPED
    position: timedelta = timedelta(0)
    # clock() reading at the last integration
    last_tick: float = 0.0


async def _read(feed):
    """Next item of *feed*, or _ENDED once it is exhausted or broken."""
    try:
        return await feed.__anext__()
    except StopAsyncIteration:
        return _ENDED
    except MprisError as e:
        log.info("%r failed: %s", feed, e)
        return _ENDED


def _discard(pending: dict, feeds, bus_name: str):
    """Release the feeds and reads of an estimator dropped without aclose()."""
    log.info("Position estimator for %s discarded without aclose()", bus_name or "player")
    for task in list(pending.values()):
        loop = task.get_loop()
        if not task.done() and not loop.is_closed():
            loop.call_soon_threadsafe(task.cancel)
    pending.clear()
    for feed in feeds:
        close = getattr(feed, "close", None)
        if close is not None:
            close()


class PositionEstimator:

    def __init__(self, playback_feed, rate_feed, seek_feed, *,
                 playback: PlaybackState = PlaybackState.STOPPED,
                 rate: float = DEFAULT_RATE,
                 position: timedelta = timedelta(0),
                 tick_interval: float = DEFAULT_TICK_INTERVAL,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep,
                 bus_name: str = ""):
        if tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {tick_interval}")
        if rate == 0:
            log.warning("%s reported Rate 0.0 at startup, assuming %.1f", bus_name or "Player", DEFAULT_RATE)
            rate = DEFAULT_RATE

        self.bus_name = bus_name
        self.tick_interval = tick_interval
        self._clock = clock
        self._sleep = sleep

        now = clock()
        self.state = EstimatorState(rate=rate, playback=playback, position=position, last_tick=now)
        self._deadline: float | None = now + tick_interval if playback is PlaybackState.PLAYING else None

        # Evaluation order, highest priority first
        self._sources = (
            ("rate", rate_feed),
            ("playback", playback_feed),
            ("seek", seek_feed),
        )
        self._pending: dict[str, asyncio.Task] = {}
        self._finished = False
        # Dropping the estimator without aclose() still unsubscribes
        self._finalizer = weakref.finalize(
            self, _discard, self._pending, (rate_feed, playback_feed, seek_feed), bus_name)
        self._finalizer.atexit = False

    # ── public surface ──

    @property
    def position(self) -> timedelta:
        return self.state.position

    @property
    def playback(self) -> PlaybackState:
        return self.state.playback

    @property
    def finished(self) -> bool:
        return self._finished

    def __aiter__(self):
        return self

    async def __anext__(self) -> timedelta:
        if self._finished:
            raise StopAsyncIteration

        while True:
            self._arm()
            # Let notifications that have already arrived land in this pass
            await asyncio.sleep(0)

            handled, value = self._step()
            if self._finished:
                await self._release()
                raise StopAsyncIteration
            if value is not None:
                return value
            if not handled:
                await self._wait()

    async def aclose(self):
        """Stop estimating and release every feed."""
        if not self._finished:
            self._finished = True
            log.info("Position estimator for %s closed", self.bus_name or "player")
        await self._release()

    # ── driver ──

    def _arm(self):
        for name, feed in self._sources:
            if name not in self._pending:
                self._pending[name] = asyncio.ensure_future(_read(feed))

    def _step(self):
        """Handle the highest-priority ready source.

        Returns (handled, value); value is None when nothing is emitted.
        """
        for name, _ in self._sources:
            task = self._pending.get(name)
            if task is None or not task.done():
                continue
            del self._pending[name]
            item = task.result()
            if item is _ENDED:
                log.info("%s feed of %s ended, stopping position estimator", name, self.bus_name or "player")
                self._finished = True
                return True, None
            return True, getattr(self, _HANDLERS[name])(item, self._clock())

        if self._deadline is not None and self._clock() >= self._deadline:
            return True, self._on_tick(self._clock())

        return False, None

    async def _wait(self):
        """Suspend until any feed has an item or the tick is due."""
        waiters = set(self._pending.values())
        timer = None
        if self._deadline is not None:
            timer = asyncio.ensure_future(self._sleep(max(self._deadline - self._clock(), 0)))
            waiters.add(timer)
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if timer is not None and not timer.done():
                timer.cancel()

    async def _release(self):
        tasks = list(self._pending.values())
        self._pending.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for _, feed in self._sources:
            aclose = getattr(feed, "aclose", None)
            if aclose is not None:
                await aclose()
        self._finalizer.detach()

    # ── transitions ──

    def _integrate(self, rate: float, now: float):
        elapsed = now - self.state.last_tick
        if elapsed > 0:
            position = self.state.position + timedelta(seconds=elapsed * rate)
            self.state.position = max(position, timedelta(0))
        self.state.last_tick = now

    def _reschedule(self, now: float):
        self._deadline = now + self.tick_interval

    def _on_rate(self, new_rate: float, now: float):
        if new_rate == 0:
            log.warning("%s reported Rate 0.0, keeping %.2f", self.bus_name or "Player", self.state.rate)
            return None

        old_rate = self.state.rate
        self.state.rate = new_rate
        log.debug("Rate %.2f -> %.2f", old_rate, new_rate)

        if self.state.playback is not PlaybackState.PLAYING:
            return None
        self._integrate(old_rate, now)
        self._reschedule(now)
        return self.state.position

    def _on_playback(self, new: PlaybackState, now: float):
        old = self.state.playback
        self.state.playback = new
        log.debug("Playback %s -> %s", old, new)

        playing = PlaybackState.PLAYING
        if old is not playing and new is playing:
            # The clock starts, the position does not jump
            self.state.last_tick = now
            self._reschedule(now)
            return self.state.position
        if old is playing and new is not playing:
            self._integrate(self.state.rate, now)
            self._deadline = None
            return self.state.position
        return None

    def _on_seek(self, position: timedelta, now: float):
        log.debug("Seeked to %s", position)
        self.state.position = position
        self.state.last_tick = now
        if self.state.playback is PlaybackState.PLAYING:
            self._reschedule(now)
        return position

    def _on_tick(self, now: float):
        self._integrate(self.state.rate, now)
        self._reschedule(now)
        return self.state.position
