"""
Player — typed access to one MPRIS player.

A handle is built from a bus connection and a well-known name, then used
with the descriptor constants:

    from mpris_client.player import RemoteObjectHandle, descriptors as d

    handle = await RemoteObjectHandle.connect(bus, "org.mpris.MediaPlayer2.vlc")
    meta = await handle.get(d.METADATA)
    async for position in await handle.subscribe_position():
        ...

Modules:
  enums.py        Interface, PlaybackState, LoopState
  descriptors.py  typed fields and events, the MPRIS catalogue
  metadata.py     Metadata value object
  feeds.py        parsed property-change and signal feeds
  position.py     PositionEstimator
  handle.py       RemoteObjectHandle
"""

from .enums import Interface, LoopState, PlaybackState
from .feeds import ParsedChangeFeed, ParsedEventFeed
from .handle import RemoteObjectHandle
from .metadata import Metadata
from .position import EstimatorState, PositionEstimator

__all__ = [
    "EstimatorState",
    "Interface",
    "LoopState",
    "Metadata",
    "ParsedChangeFeed",
    "ParsedEventFeed",
    "PlaybackState",
    "PositionEstimator",
    "RemoteObjectHandle",
]
