"""
Typed descriptors for MPRIS properties ("fields") and signals ("events").

A descriptor says where a remote attribute lives, what shape it has on the
wire, and how to turn it into something pleasant to use:

    PLAYBACK_STATUS.parse("Playing")        -> PlaybackState.PLAYING
    POSITION.parse(1_500_000)               -> timedelta(seconds=1.5)
    RATE.serialize(2.0)                     -> 2.0

Write capability is carried by the descriptor's class, so a type checker
refuses ``handle.set(POSITION, ...)``:

    ReadOnlyField         parse only
    WritableField         parse + serialize, written with handle.set()
    ControlWritableField  parse + serialize, written with handle.set_controlled();
                          the caller must have checked CAN_CONTROL first

All descriptors are immutable module-level constants.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, ClassVar, Generic, TypeVar, get_args, get_origin

from ..lib.errors import ParseError
from .enums import Interface, LoopState, PlaybackState
from .metadata import Metadata

T = TypeVar("T")


class Capability(Enum):
    READ_ONLY = "read-only"
    READ_WRITE = "read-write"
    READ_WRITE_IF_CONTROLLABLE = "read-write-if-controllable"


def _identity(value):
    return value


def _type_name(parse_type) -> str:
    if get_origin(parse_type) is not None:
        return str(parse_type)
    return parse_type.__name__


def _matches(raw, parse_type) -> bool:
    origin = get_origin(parse_type)
    if origin is list:
        (item_type,) = get_args(parse_type)
        return isinstance(raw, (list, tuple)) and all(_matches(v, item_type) for v in raw)
    if origin is dict:
        key_type, _ = get_args(parse_type)
        return isinstance(raw, dict) and all(isinstance(k, key_type) for k in raw)
    # bool is an int subclass; never let True stand in for a number
    if parse_type in (int, float) and isinstance(raw, bool):
        return False
    if parse_type is float:
        return isinstance(raw, (int, float))
    return isinstance(raw, parse_type)


def _check(name: str, raw, parse_type):
    if not _matches(raw, parse_type):
        raise ParseError(name, raw, _type_name(parse_type))


def micros_to_timedelta(value: int) -> timedelta:
    # Negative offsets are meaningless for a track position
    return timedelta(microseconds=max(value, 0))


def timedelta_to_micros(value: timedelta) -> int:
    return value // timedelta(microseconds=1)


@dataclass(frozen=True)
class TypedField(Generic[T]):
    """A named remote property on one interface."""

    name: str
    interface: Interface
    parse_type: Any
    output_type: Any
    to_output: Callable[[Any], T] = _identity

    capability: ClassVar[Capability] = Capability.READ_ONLY

    def parse(self, raw) -> T:
        _check(self.name, raw, self.parse_type)
        return self.to_output(raw)


@dataclass(frozen=True)
class ReadOnlyField(TypedField[T]):
    pass


@dataclass(frozen=True)
class _SerializingField(TypedField[T]):
    from_output: Callable[[T], Any] = _identity

    def serialize(self, value: T):
        return self.from_output(value)


@dataclass(frozen=True)
class WritableField(_SerializingField[T]):
    capability: ClassVar[Capability] = Capability.READ_WRITE


@dataclass(frozen=True)
class ControlWritableField(_SerializingField[T]):
    capability: ClassVar[Capability] = Capability.READ_WRITE_IF_CONTROLLABLE


@dataclass(frozen=True)
class TypedEvent(Generic[T]):
    """A named remote signal carrying a single argument."""

    name: str
    interface: Interface
    parse_type: Any
    output_type: Any
    to_output: Callable[[Any], T] = _identity

    def parse(self, raw_args) -> T:
        if not isinstance(raw_args, (tuple, list)) or len(raw_args) != 1:
            raise ParseError(self.name, raw_args, f"1 argument of {_type_name(self.parse_type)}")
        (raw,) = raw_args
        _check(self.name, raw, self.parse_type)
        return self.to_output(raw)


# ── org.mpris.MediaPlayer2 ──

CAN_QUIT = ReadOnlyField[bool]("CanQuit", Interface.BASE, bool, bool)
FULLSCREEN = WritableField[bool]("Fullscreen", Interface.BASE, bool, bool)
CAN_SET_FULLSCREEN = ReadOnlyField[bool]("CanSetFullscreen", Interface.BASE, bool, bool)
CAN_RAISE = ReadOnlyField[bool]("CanRaise", Interface.BASE, bool, bool)
HAS_TRACK_LIST = ReadOnlyField[bool]("HasTrackList", Interface.BASE, bool, bool)
# Display name, e.g. "VLC media player"
IDENTITY = ReadOnlyField[str]("Identity", Interface.BASE, str, str)
# Desktop entry basename, e.g. "vlc"
DESKTOP_ENTRY = ReadOnlyField[str]("DesktopEntry", Interface.BASE, str, str)
SUPPORTED_URI_SCHEMES = ReadOnlyField[list]("SupportedUriSchemes", Interface.BASE, list[str], list, to_output=list)
SUPPORTED_MIME_TYPES = ReadOnlyField[list]("SupportedMimeTypes", Interface.BASE, list[str], list, to_output=list)

# ── org.mpris.MediaPlayer2.Player ──

PLAYBACK_STATUS = ReadOnlyField[PlaybackState](
    "PlaybackStatus", Interface.PLAYER, str, PlaybackState,
    to_output=PlaybackState.from_wire)

LOOP_STATUS = ControlWritableField[LoopState](
    "LoopStatus", Interface.PLAYER, str, LoopState,
    to_output=LoopState.from_wire, from_output=str)

# Never 0.0 by protocol; players without variable speed report 1.0
RATE = ControlWritableField[float]("Rate", Interface.PLAYER, float, float, to_output=float, from_output=float)
MINIMUM_RATE = ReadOnlyField[float]("MinimumRate", Interface.PLAYER, float, float, to_output=float)
MAXIMUM_RATE = ReadOnlyField[float]("MaximumRate", Interface.PLAYER, float, float, to_output=float)

SHUFFLE = ControlWritableField[bool]("Shuffle", Interface.PLAYER, bool, bool)
VOLUME = ControlWritableField[float]("Volume", Interface.PLAYER, float, float, to_output=float, from_output=float)

METADATA = ReadOnlyField[Metadata](
    "Metadata", Interface.PLAYER, dict[str, Any], Metadata,
    to_output=Metadata.from_map)

POSITION = ReadOnlyField[timedelta](
    "Position", Interface.PLAYER, int, timedelta,
    to_output=micros_to_timedelta)

CAN_GO_NEXT = ReadOnlyField[bool]("CanGoNext", Interface.PLAYER, bool, bool)
CAN_GO_PREVIOUS = ReadOnlyField[bool]("CanGoPrevious", Interface.PLAYER, bool, bool)
CAN_PLAY = ReadOnlyField[bool]("CanPlay", Interface.PLAYER, bool, bool)
CAN_PAUSE = ReadOnlyField[bool]("CanPause", Interface.PLAYER, bool, bool)
CAN_SEEK = ReadOnlyField[bool]("CanSeek", Interface.PLAYER, bool, bool)
# Fixed for the lifetime of the player object; gates every ControlWritableField
CAN_CONTROL = ReadOnlyField[bool]("CanControl", Interface.PLAYER, bool, bool)

# Position changed in a way inconsistent with the current rate
SEEKED = TypedEvent[timedelta]("Seeked", Interface.PLAYER, int, timedelta, to_output=micros_to_timedelta)

FIELDS = (
    CAN_QUIT, FULLSCREEN, CAN_SET_FULLSCREEN, CAN_RAISE, HAS_TRACK_LIST,
    IDENTITY, DESKTOP_ENTRY, SUPPORTED_URI_SCHEMES, SUPPORTED_MIME_TYPES,
    PLAYBACK_STATUS, LOOP_STATUS, RATE, MINIMUM_RATE, MAXIMUM_RATE,
    SHUFFLE, VOLUME, METADATA, POSITION,
    CAN_GO_NEXT, CAN_GO_PREVIOUS, CAN_PLAY, CAN_PAUSE, CAN_SEEK, CAN_CONTROL,
)

EVENTS = (SEEKED,)
