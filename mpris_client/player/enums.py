"""Enumerations shared by descriptors, the handle and the position estimator."""

from enum import Enum

OBJECT_PATH = "/org/mpris/MediaPlayer2"


class Interface(Enum):
    """The MPRIS interfaces a player object may implement."""

    BASE = "org.mpris.MediaPlayer2"
    PLAYER = "org.mpris.MediaPlayer2.Player"
    TRACK_LIST = "org.mpris.MediaPlayer2.TrackList"
    PLAYLISTS = "org.mpris.MediaPlayer2.Playlists"

    def __str__(self):
        return self.value


class _WireEnum(Enum):
    """Enum whose members travel as their capitalised name ("Playing")."""

    @classmethod
    def default(cls):
        raise NotImplementedError

    @classmethod
    def from_wire(cls, value: str):
        """Case-insensitive lookup; unknown strings map to the default."""
        lowered = value.lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return cls.default()

    def __str__(self):
        return self.value


class PlaybackState(_WireEnum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"

    @classmethod
    def default(cls):
        return cls.STOPPED


class LoopState(_WireEnum):
    NONE = "None"
    # The current track repeats forever
    TRACK = "Track"
    # The whole playlist repeats
    PLAYLIST = "Playlist"

    @classmethod
    def default(cls):
        return cls.NONE
