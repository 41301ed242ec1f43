"""
RemoteObjectHandle — one MPRIS player on the bus.

A handle is a bus name plus up to four interface endpoints (base, player,
track list, playlists), each resolved independently when the handle is
built.  A player that lacks an interface still yields a usable handle; only
requests on the missing interface fail, with InterfaceUnavailable.

    handle = await RemoteObjectHandle.connect(bus, "org.mpris.MediaPlayer2.vlc")
    state  = await handle.get(PLAYBACK_STATUS)
    await handle.set_controlled(VOLUME, 0.5)   # caller checked CAN_CONTROL
    await handle.play_pause()

The handle holds no mutable state, so concurrent requests are fine.  No call
has a timeout; wrap it in asyncio.wait_for() if you need one.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, TypeVar

from ..lib.config import cfg
from ..lib.errors import InterfaceUnavailable, MprisError
from .descriptors import (
    CAN_CONTROL, CAN_GO_NEXT, CAN_GO_PREVIOUS, CAN_PAUSE, CAN_PLAY, CAN_QUIT, CAN_RAISE, CAN_SEEK,
    CAN_SET_FULLSCREEN, PLAYBACK_STATUS, POSITION, RATE, SEEKED,
    ControlWritableField, TypedEvent, TypedField, WritableField, timedelta_to_micros,
)
from .enums import OBJECT_PATH, Interface
from .feeds import ParsedChangeFeed, ParsedEventFeed
from .metadata import NO_TRACK
from .position import DEFAULT_TICK_INTERVAL, PositionEstimator

log = logging.getLogger(__name__)

T = TypeVar("T")

_CAPABILITY_FLAGS = (
    CAN_QUIT, CAN_RAISE, CAN_SET_FULLSCREEN,
    CAN_CONTROL, CAN_PLAY, CAN_PAUSE, CAN_SEEK, CAN_GO_NEXT, CAN_GO_PREVIOUS,
)


class RemoteObjectHandle:

    def __init__(self, bus_name: str, endpoints: dict):
        self._bus_name = bus_name
        # Interface -> Endpoint; absent interfaces are simply missing
        self._endpoints = dict(endpoints)

    @classmethod
    async def connect(cls, bus, bus_name: str) -> "RemoteObjectHandle":
        """Resolve every interface of *bus_name*; missing ones are recorded as absent."""
        async def resolve(interface):
            try:
                return await bus.endpoint(bus_name, OBJECT_PATH, interface.value)
            except MprisError as e:
                log.debug("%s: %s not resolved: %s", bus_name, interface.value, e)
                return None

        interfaces = list(Interface)
        resolved = await asyncio.gather(*(resolve(i) for i in interfaces))
        endpoints = {i: ep for i, ep in zip(interfaces, resolved) if ep is not None}

        missing = [i.name for i in interfaces if i not in endpoints]
        log.info("Player %s: %d/%d interfaces%s", bus_name, len(endpoints), len(interfaces),
                 f" (missing {', '.join(missing)})" if missing else "")
        return cls(bus_name, endpoints)

    @property
    def bus_name(self) -> str:
        return self._bus_name

    @property
    def interfaces(self) -> frozenset:
        return frozenset(self._endpoints)

    def has_interface(self, interface: Interface) -> bool:
        return interface in self._endpoints

    def __eq__(self, other):
        if not isinstance(other, RemoteObjectHandle):
            return NotImplemented
        return self._bus_name == other._bus_name

    def __hash__(self):
        return hash(self._bus_name)

    def __repr__(self):
        return f"<RemoteObjectHandle {self._bus_name}>"

    def _endpoint(self, interface: Interface):
        try:
            return self._endpoints[interface]
        except KeyError:
            raise InterfaceUnavailable(interface, self._bus_name) from None

    # ── typed properties ──

    async def get(self, field: TypedField[T]) -> T:
        endpoint = self._endpoint(field.interface)
        raw = await endpoint.get_property(field.name)
        return field.parse(raw)

    async def set(self, field: WritableField[T], value: T) -> None:
        if not isinstance(field, WritableField):
            raise TypeError(f"{field.name} is not writable with set()")
        await self._write(field, value)

    async def set_controlled(self, field: ControlWritableField[T], value: T) -> None:
        """Write a field that is only writable while CAN_CONTROL is true.

        Checking CAN_CONTROL is the caller's job; it never changes for the
        lifetime of the player object, so one get() up front is enough.
        """
        if not isinstance(field, ControlWritableField):
            raise TypeError(f"{field.name} is not writable with set_controlled()")
        await self._write(field, value)

    async def _write(self, field, value):
        endpoint = self._endpoint(field.interface)
        await endpoint.set_property(field.name, field.serialize(value))
        log.debug("%s: set %s = %r", self._bus_name, field.name, value)

    async def capabilities(self) -> dict[str, bool]:
        """Every Can* flag the player exposes; unreachable ones read as False."""
        async def read(flag):
            try:
                return await self.get(flag)
            except MprisError as e:
                log.debug("%s: %s unreadable: %s", self._bus_name, flag.name, e)
                return False

        values = await asyncio.gather(*(read(f) for f in _CAPABILITY_FLAGS))
        return {f.name: v for f, v in zip(_CAPABILITY_FLAGS, values)}

    # ── subscriptions ──

    def subscribe_change(self, field: TypedField[T]) -> ParsedChangeFeed[T]:
        endpoint = self._endpoint(field.interface)
        return ParsedChangeFeed(field, endpoint.property_changes(field.name), self._bus_name)

    def subscribe_event(self, event: TypedEvent[T]) -> ParsedEventFeed[T]:
        endpoint = self._endpoint(event.interface)
        return ParsedEventFeed(event, endpoint.signals(event.name), self._bus_name)

    async def subscribe_position(self, tick_interval: float | None = None, **kwargs) -> PositionEstimator:
        """Estimated playback position, updated every tick while playing.

        Feeds are subscribed before the snapshot is read so no change falls
        between the two.  Extra keyword arguments (clock, sleep) go to the
        estimator.
        """
        if tick_interval is None:
            tick_interval = float(cfg("position", "tick_interval", default=DEFAULT_TICK_INTERVAL))

        playback_feed = self.subscribe_change(PLAYBACK_STATUS)
        rate_feed = self.subscribe_change(RATE)
        seek_feed = self.subscribe_event(SEEKED)

        try:
            playback, rate, position = await asyncio.gather(
                self.get(PLAYBACK_STATUS), self.get(RATE), self.get(POSITION))
        except MprisError:
            for feed in (playback_feed, rate_feed, seek_feed):
                await feed.aclose()
            raise

        log.info("Tracking position of %s from %s (%s, rate %.2f)",
                 self._bus_name, position, playback, rate)
        return PositionEstimator(
            playback_feed, rate_feed, seek_feed,
            playback=playback, rate=rate, position=position,
            tick_interval=tick_interval, bus_name=self._bus_name, **kwargs)

    # ── methods ──

    async def call(self, method: str, *args: Any, interface: Interface = Interface.PLAYER) -> Any:
        """Invoke *method* on the player.

        Success means the player accepted the request, not that playback
        changed; watch the relevant feed for the effect.
        """
        endpoint = self._endpoint(interface)
        log.debug("%s: %s.%s%r", self._bus_name, interface.value, method, args)
        return await endpoint.call(method, *args)

    async def next(self):
        """Skip to the next track.  No effect if CanGoNext is false."""
        await self.call("Next")

    async def previous(self):
        """Skip to the previous track.  No effect if CanGoPrevious is false."""
        await self.call("Previous")

    async def play(self):
        await self.call("Play")

    async def pause(self):
        await self.call("Pause")

    async def play_pause(self):
        await self.call("PlayPause")

    async def stop(self):
        """Stop playback; a later play() restarts the track list."""
        await self.call("Stop")

    async def seek(self, offset: timedelta, backwards: bool = False):
        """Move the position by *offset* relative to where it is now.

        Requires CanSeek.  Seeking past the end of the track skips to the
        next one; seeking before the start goes to the start.  *offset* must
        not be negative; the direction comes from *backwards*.
        """
        if offset < timedelta(0):
            raise ValueError(f"seek offset must not be negative, got {offset}; pass backwards=True")
        micros = timedelta_to_micros(offset)
        await self.call("Seek", -micros if backwards else micros)

    async def set_position(self, track_id: str, position: timedelta):
        """Jump to an absolute *position* in the track *track_id*.

        *track_id* comes from Metadata.trackid and must be the current track;
        the player ignores positions past the end of it.
        """
        if track_id == NO_TRACK:
            raise ValueError("cannot set position on the NoTrack placeholder")
        await self.call("SetPosition", track_id, timedelta_to_micros(position))

    async def open_uri(self, uri: str):
        """Open *uri*; its scheme should be in SUPPORTED_URI_SCHEMES."""
        await self.call("OpenUri", uri)

    async def raise_(self):
        """Bring the player's window to the front.  Needs CanRaise."""
        await self.call("Raise", interface=Interface.BASE)

    async def quit(self):
        """Ask the player to quit.  Needs CanQuit; the player may refuse."""
        await self.call("Quit", interface=Interface.BASE)
