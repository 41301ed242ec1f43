"""Tests for RemoteObjectHandle: typed reads/writes, method calls, errors."""

import asyncio
from datetime import timedelta

import pytest

from mpris_client.lib.errors import InterfaceUnavailable, ParseError, TransportError, WriteRejected
from mpris_client.player.descriptors import (
    CAN_SEEK, FULLSCREEN, IDENTITY, LOOP_STATUS, METADATA, PLAYBACK_STATUS, POSITION, RATE,
    SUPPORTED_URI_SCHEMES, VOLUME,
)
from mpris_client.player.enums import Interface, LoopState, PlaybackState
from mpris_client.player.handle import RemoteObjectHandle
from mpris_client.player.metadata import NO_TRACK


def connect(bus, bus_name):
    return RemoteObjectHandle.connect(bus, bus_name)


def test_typed_reads(make_player, bus_name):
    async def runner():
        bus, _, _ = make_player(overrides={"Position": 42_000_000})
        handle = await connect(bus, bus_name)
        assert await handle.get(PLAYBACK_STATUS) is PlaybackState.PLAYING
        assert await handle.get(POSITION) == timedelta(seconds=42)
        assert await handle.get(RATE) == 1.0
        assert await handle.get(IDENTITY) == "Fake Player"
        assert await handle.get(SUPPORTED_URI_SCHEMES) == ["file", "http"]
        meta = await handle.get(METADATA)
        assert meta.title == "So What"
        assert meta.artists == ["Miles Davis"]

    asyncio.run(runner())


def test_missing_interface_only_fails_its_own_requests(make_player, bus_name):
    async def runner():
        bus, _, _ = make_player(base=None)
        handle = await connect(bus, bus_name)
        assert handle.has_interface(Interface.PLAYER)
        assert not handle.has_interface(Interface.BASE)
        assert handle.interfaces == frozenset({Interface.PLAYER})

        with pytest.raises(InterfaceUnavailable) as exc:
            await handle.get(IDENTITY)
        assert exc.value.interface is Interface.BASE
        with pytest.raises(InterfaceUnavailable):
            await handle.quit()

        # The player interface still works
        assert await handle.get(CAN_SEEK) is True

    asyncio.run(runner())


def test_transport_failure_surfaces(make_player, bus_name):
    async def runner():
        bus, _, _ = make_player(broken=True)
        handle = await connect(bus, bus_name)
        with pytest.raises(TransportError):
            await handle.get(RATE)
        with pytest.raises(TransportError):
            await handle.play()
        with pytest.raises(TransportError):
            await handle.subscribe_position(tick_interval=1.0)

    asyncio.run(runner())


def test_failed_snapshot_releases_feeds(make_player, bus_name):
    async def runner():
        bus, _, player = make_player(overrides={"Position": "soon"})
        handle = await connect(bus, bus_name)
        with pytest.raises(ParseError):
            await handle.subscribe_position(tick_interval=1.0)
        assert player.subscribers("property", "Rate") == 0
        assert player.subscribers("property", "PlaybackStatus") == 0
        assert player.subscribers("signal", "Seeked") == 0

    asyncio.run(runner())


def test_wrong_shape_is_a_parse_error(make_player, bus_name):
    async def runner():
        bus, _, _ = make_player(overrides={"Rate": "fast"})
        handle = await connect(bus, bus_name)
        with pytest.raises(ParseError) as exc:
            await handle.get(RATE)
        assert exc.value.name == "Rate"
        assert exc.value.raw == "fast"

    asyncio.run(runner())


def test_writes_serialize_values(make_player, bus_name):
    async def runner():
        bus, base, player = make_player()
        handle = await connect(bus, bus_name)
        await handle.set(FULLSCREEN, True)
        await handle.set_controlled(LOOP_STATUS, LoopState.TRACK)
        await handle.set_controlled(VOLUME, 0.25)
        assert base.props["Fullscreen"] is True
        assert player.props["LoopStatus"] == "Track"
        assert player.props["Volume"] == 0.25
        assert await handle.get(LOOP_STATUS) is LoopState.TRACK

    asyncio.run(runner())


def test_rejected_write(make_player, bus_name):
    async def runner():
        bus, _, _ = make_player(reject={"Rate", "Next"})
        handle = await connect(bus, bus_name)
        with pytest.raises(WriteRejected):
            await handle.set_controlled(RATE, 2.0)
        with pytest.raises(WriteRejected):
            await handle.next()

    asyncio.run(runner())


def test_write_capability_is_enforced(make_player, bus_name):
    async def runner():
        bus, _, player = make_player()
        handle = await connect(bus, bus_name)
        with pytest.raises(TypeError):
            await handle.set(POSITION, timedelta(seconds=3))
        with pytest.raises(TypeError):
            await handle.set(RATE, 2.0)
        with pytest.raises(TypeError):
            await handle.set_controlled(FULLSCREEN, True)
        assert player.props["Rate"] == 1.0

    asyncio.run(runner())


def test_transport_methods(make_player, bus_name):
    async def runner():
        bus, base, player = make_player()
        handle = await connect(bus, bus_name)
        await handle.play()
        await handle.pause()
        await handle.play_pause()
        await handle.stop()
        await handle.next()
        await handle.previous()
        await handle.open_uri("file:///music/so-what.flac")
        assert player.calls == [
            ("Play", ()), ("Pause", ()), ("PlayPause", ()), ("Stop", ()),
            ("Next", ()), ("Previous", ()), ("OpenUri", ("file:///music/so-what.flac",)),
        ]

        await handle.raise_()
        await handle.quit()
        assert base.calls == [("Raise", ()), ("Quit", ())]

    asyncio.run(runner())


def test_seek_and_set_position_send_microseconds(make_player, bus_name):
    async def runner():
        bus, _, player = make_player()
        handle = await connect(bus, bus_name)
        await handle.seek(timedelta(seconds=10))
        await handle.seek(timedelta(seconds=2.5), backwards=True)
        await handle.set_position("/org/mpris/MediaPlayer2/Track/1", timedelta(minutes=1))
        assert player.calls == [
            ("Seek", (10_000_000,)),
            ("Seek", (-2_500_000,)),
            ("SetPosition", ("/org/mpris/MediaPlayer2/Track/1", 60_000_000)),
        ]

        with pytest.raises(ValueError):
            await handle.set_position(NO_TRACK, timedelta(0))
        with pytest.raises(ValueError):
            await handle.seek(timedelta(seconds=-4))
        with pytest.raises(ValueError):
            await handle.seek(timedelta(seconds=-4), backwards=True)
        assert len(player.calls) == 3

    asyncio.run(runner())


def test_capabilities(make_player, bus_name):
    async def runner():
        bus, _, _ = make_player(base=None)
        handle = await connect(bus, bus_name)
        caps = await handle.capabilities()
        assert caps["CanControl"] is True
        assert caps["CanGoNext"] is True
        assert caps["CanGoPrevious"] is False
        # Base interface missing: its flags read as False
        assert caps["CanQuit"] is False
        assert caps["CanSetFullscreen"] is False

    asyncio.run(runner())


def test_handles_compare_by_bus_name(make_player, bus_name):
    async def runner():
        bus, _, _ = make_player()
        first = await connect(bus, bus_name)
        second = await connect(bus, bus_name)
        other = await connect(bus, "org.mpris.MediaPlayer2.other")
        assert first == second
        assert len({first, second, other}) == 2
        assert first.bus_name == bus_name

    asyncio.run(runner())


def test_tick_interval_from_config(make_player, bus_name, tmp_path, clock):
    (tmp_path / "config.json").write_text('{"position": {"tick_interval": 0.25}}')

    async def runner():
        from mpris_client.lib.config import reload_config
        reload_config()
        bus, _, _ = make_player()
        handle = await connect(bus, bus_name)
        estimator = await handle.subscribe_position(clock=clock, sleep=clock.sleep)
        assert estimator.tick_interval == 0.25
        await estimator.aclose()

    asyncio.run(runner())
