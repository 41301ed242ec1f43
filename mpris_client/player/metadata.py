"""
Track metadata, built from the ``Metadata`` property map.

Keys follow the MPRIS metadata guidelines (``mpris:*`` and ``xesam:*``).
Players are inconsistent about which keys they send and with which types, so
a missing or mistyped entry falls back to an empty value instead of failing
the whole map.
"""

from dataclasses import dataclass, field
from datetime import timedelta

NO_TRACK = "/org/mpris/MediaPlayer2/TrackList/NoTrack"


def _str(value) -> str:
    return value if isinstance(value, str) else ""


def _int(value) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def _float(value) -> float:
    if isinstance(value, bool):
        return 0.0
    return float(value) if isinstance(value, (int, float)) else 0.0


def _str_list(value) -> list[str]:
    # Some players send a bare string where a list is expected
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str)]
    return []


@dataclass(frozen=True)
class Metadata:
    trackid: str = NO_TRACK
    length: timedelta | None = None
    art_url: str | None = None

    title: str = ""
    album: str = ""
    artists: list[str] = field(default_factory=list)
    album_artists: list[str] = field(default_factory=list)
    composers: list[str] = field(default_factory=list)
    lyricists: list[str] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)
    lyrics: str = ""
    url: str = ""

    bpm: int = 0
    disc_number: int = 0
    track_number: int = 0
    use_count: int = 0
    auto_rating: float = 0.0
    user_rating: float = 0.0

    # ISO 8601 dates, kept as the player sent them
    created: str = ""
    first_used: str = ""
    last_used: str = ""

    @classmethod
    def from_map(cls, values: dict) -> "Metadata":
        length = values.get("mpris:length")
        if isinstance(length, int) and not isinstance(length, bool):
            length = timedelta(microseconds=max(length, 0))
        else:
            length = None
        art_url = values.get("mpris:artUrl")

        return cls(
            trackid=_str(values.get("mpris:trackid")) or NO_TRACK,
            length=length,
            art_url=art_url if isinstance(art_url, str) else None,
            title=_str(values.get("xesam:title")),
            album=_str(values.get("xesam:album")),
            artists=_str_list(values.get("xesam:artist")),
            album_artists=_str_list(values.get("xesam:albumArtist")),
            composers=_str_list(values.get("xesam:composer")),
            lyricists=_str_list(values.get("xesam:lyricist")),
            genres=_str_list(values.get("xesam:genre")),
            comments=_str_list(values.get("xesam:comment")),
            lyrics=_str(values.get("xesam:asText")),
            url=_str(values.get("xesam:url")),
            bpm=_int(values.get("xesam:audioBPM")),
            disc_number=_int(values.get("xesam:discNumber")),
            track_number=_int(values.get("xesam:trackNumber")),
            use_count=_int(values.get("xesam:useCount")),
            auto_rating=_float(values.get("xesam:autoRating")),
            user_rating=_float(values.get("xesam:userRating")),
            created=_str(values.get("xesam:contentCreated")),
            first_used=_str(values.get("xesam:firstUsed")),
            last_used=_str(values.get("xesam:lastUsed")),
        )

    def to_dict(self) -> dict:
        """JSON-friendly view for the player service."""
        return {
            "trackid": self.trackid,
            "title": self.title or "—",
            "artist": ", ".join(self.artists) or "—",
            "album": self.album or "—",
            "duration": self.length.total_seconds() if self.length is not None else None,
            "artwork_url": self.art_url,
        }
