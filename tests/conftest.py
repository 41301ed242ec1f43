"""Shared fakes: an in-memory bus, a player that lives on it, and a clock."""

import asyncio
from collections import defaultdict

import pytest

from mpris_client.lib import config
from mpris_client.lib.bus import Bus, Endpoint
from mpris_client.lib.errors import InterfaceUnavailable, TransportError, WriteRejected
from mpris_client.player.enums import Interface

BUS_NAME = "org.mpris.MediaPlayer2.fake"

_END = object()


class QueueStream:
    def __init__(self, queue, on_close):
        self._queue = queue
        self._on_close = on_close
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self.closed = True
            raise StopAsyncIteration
        return item

    async def aclose(self):
        self.close()

    def close(self):
        self.closed = True
        self._on_close()


class FakeEndpoint(Endpoint):
    def __init__(self, props=None, *, reject=(), broken=False):
        self.props = dict(props or {})
        self.reject = set(reject)
        self.broken = broken
        self.calls = []
        self.streams = defaultdict(list)

    async def get_property(self, name):
        if self.broken or name not in self.props:
            raise TransportError(f"no reply for {name}")
        return self.props[name]

    async def set_property(self, name, value):
        if self.broken:
            raise TransportError("connection lost")
        if name in self.reject:
            raise WriteRejected(f"{name} is read-only")
        self.props[name] = value

    async def call(self, method, *args):
        if self.broken:
            raise TransportError("connection lost")
        if method in self.reject:
            raise WriteRejected(f"{method} not allowed")
        self.calls.append((method, args))

    def _open(self, key):
        queue = asyncio.Queue()
        subscribers = self.streams[key]

        def unsubscribe():
            if queue in subscribers:
                subscribers.remove(queue)

        stream = QueueStream(queue, unsubscribe)
        subscribers.append(queue)
        return stream

    def property_changes(self, name):
        return self._open(("property", name))

    def signals(self, name):
        return self._open(("signal", name))

    def change(self, name, value):
        self.props[name] = value
        for queue in self.streams[("property", name)]:
            queue.put_nowait(value)

    def emit(self, name, *args):
        for queue in self.streams[("signal", name)]:
            queue.put_nowait(tuple(args))

    def end(self, kind, name):
        for queue in self.streams[(kind, name)]:
            queue.put_nowait(_END)

    def subscribers(self, kind, name):
        return len(self.streams[(kind, name)])


class FakeBus(Bus):
    def __init__(self, endpoints):
        self.endpoints = endpoints
        self.closed = False

    async def endpoint(self, bus_name, object_path, interface):
        for iface, endpoint in self.endpoints.items():
            if iface.value == interface:
                return endpoint
        raise InterfaceUnavailable(interface, bus_name)

    async def close(self):
        self.closed = True


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start=100.0):
        self.now = start
        self._sleepers = []

    def __call__(self):
        return self.now

    async def sleep(self, delay):
        if delay <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + delay, future))
        await future

    def advance(self, seconds):
        self.now += seconds
        due = [s for s in self._sleepers if s[0] <= self.now]
        for sleeper in due:
            self._sleepers.remove(sleeper)
            if not sleeper[1].done():
                sleeper[1].set_result(None)


def player_props(**overrides):
    props = {
        "PlaybackStatus": "Playing",
        "Rate": 1.0,
        "Position": 0,
        "LoopStatus": "None",
        "Shuffle": False,
        "Volume": 0.8,
        "Metadata": {
            "mpris:trackid": "/org/mpris/MediaPlayer2/Track/1",
            "mpris:length": 180_000_000,
            "xesam:title": "So What",
            "xesam:artist": ["Miles Davis"],
            "xesam:album": "Kind of Blue",
        },
        "CanControl": True,
        "CanPlay": True,
        "CanPause": True,
        "CanSeek": True,
        "CanGoNext": True,
        "CanGoPrevious": False,
    }
    props.update(overrides)
    return props


def base_props(**overrides):
    props = {
        "Identity": "Fake Player",
        "DesktopEntry": "fake",
        "CanQuit": True,
        "CanRaise": False,
        "CanSetFullscreen": True,
        "Fullscreen": False,
        "HasTrackList": False,
        "SupportedUriSchemes": ["file", "http"],
        "SupportedMimeTypes": ["audio/mpeg"],
    }
    props.update(overrides)
    return props


@pytest.fixture(autouse=True)
def empty_config(monkeypatch, tmp_path):
    """Never pick up a real config file during tests."""
    monkeypatch.setenv("MPRIS_CLIENT_CONFIG", str(tmp_path / "config.json"))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config, "_SYSTEM_PATH", str(tmp_path / "etc-config.json"))
    config.reload_config()
    yield
    config._config = None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_player():
    """Build (bus, base endpoint, player endpoint).

    overrides patch the default player properties; base=None drops the base interface.
    """
    def make(player=None, base=..., *, overrides=None, **kwargs):
        if player is None:
            player = player_props(**(overrides or {}))
        player_ep = FakeEndpoint(player, **kwargs)
        endpoints = {Interface.PLAYER: player_ep}
        base_ep = None
        if base is not None:
            base_ep = FakeEndpoint(base_props() if base is ... else base)
            endpoints[Interface.BASE] = base_ep
        return FakeBus(endpoints), base_ep, player_ep
    return make


@pytest.fixture
def bus_name():
    return BUS_NAME
