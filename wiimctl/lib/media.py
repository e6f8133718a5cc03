# wiimctl
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Shared media model: what a source is, what it can do, what it is playing.

Snapshots are frozen and replaced wholesale on every poll; identifiers are
plain tagged values so the router can compare them across polls.
"""

import enum
from dataclasses import dataclass

REMOTE = "remote"
LOCAL = "local"

# Player identifiers (macOS bundle ids and MPRIS player names) → label
KNOWN_PLAYERS = {
    "com.spotify.client": "Spotify",
    "spotify": "Spotify",
    "com.apple.Music": "Apple Music",
    "com.amazon.music": "Amazon Music",
    "tv.plex.plexamp": "Plexamp",
    "plexamp": "Plexamp",
    "vlc": "VLC",
    "org.videolan.vlc": "VLC",
}

BROWSERS = (
    ("safari", "Safari"),
    ("chrome", "Chrome"),
    ("chromium", "Chromium"),
    ("firefox", "Firefox"),
)


class Capability(enum.Flag):
    PLAY_PAUSE = enum.auto()
    NEXT = enum.auto()
    PREVIOUS = enum.auto()
    SEEK = enum.auto()
    VOLUME = enum.auto()
    PRESETS = enum.auto()
    EQUALIZER = enum.auto()


REMOTE_CAPABILITIES = (Capability.PLAY_PAUSE | Capability.NEXT | Capability.PREVIOUS
                       | Capability.SEEK | Capability.VOLUME | Capability.PRESETS
                       | Capability.EQUALIZER)
LOCAL_CAPABILITIES = (Capability.PLAY_PAUSE | Capability.NEXT | Capability.PREVIOUS
                      | Capability.VOLUME)


def capability_names(caps: Capability) -> list[str]:
    return [c.name.lower() for c in Capability if c in caps]


class SourceMode(str, enum.Enum):
    """User preference for which source receives commands."""

    AUTO = "auto"
    WIIM = "wiim"
    LOCAL = "local"

    @property
    def description(self) -> str:
        return _MODE_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, value, default: "SourceMode | None" = None) -> "SourceMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            if default is None:
                raise
            return default


_MODE_DESCRIPTIONS = {
    SourceMode.AUTO: "Automatically switch based on what's playing",
    SourceMode.WIIM: "Always control WiiM device",
    SourceMode.LOCAL: "Always control local media apps",
}


@dataclass(frozen=True)
class SourceIdentifier:
    """Tagged identity: a remote device by name, or a local player by id."""

    kind: str
    name: str = ""
    title_hint: str = ""

    @classmethod
    def remote(cls, device_name: str = "") -> "SourceIdentifier":
        return cls(REMOTE, device_name)

    @classmethod
    def local(cls, bundle_id: str | None = None, title: str = "") -> "SourceIdentifier":
        # Only the browser label depends on the title
        bundle_id = bundle_id or "unknown"
        hint = ""
        if _browser_label(bundle_id) and "youtube" in (title or "").lower():
            hint = "youtube"
        return cls(LOCAL, bundle_id, hint)

    @property
    def is_remote(self) -> bool:
        return self.kind == REMOTE

    @property
    def is_local(self) -> bool:
        return self.kind == LOCAL

    @property
    def display_name(self) -> str:
        if self.is_remote:
            return self.name or "WiiM"
        if self.name in KNOWN_PLAYERS:
            return KNOWN_PLAYERS[self.name]
        browser = _browser_label(self.name)
        if browser:
            return "YouTube" if self.title_hint == "youtube" else browser
        return self.name.split(".")[-1]

    def to_dict(self) -> dict:
        return {"kind": self.kind, "id": self.name, "name": self.display_name}


def _browser_label(bundle_id: str) -> str | None:
    lowered = bundle_id.lower()
    for needle, label in BROWSERS:
        if needle in lowered:
            return label
    return None


@dataclass(frozen=True)
class MediaSnapshot:
    """Last-fetched playback state of a source."""

    title: str = ""
    artist: str = ""
    album: str = ""
    artwork: bytes | str | None = None
    playing: bool = False
    position: int = 0   # seconds
    duration: int = 0   # seconds

    @property
    def has_content(self) -> bool:
        return bool(self.title or self.artist)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            # raw artwork bytes are served separately
            "artwork_url": self.artwork if isinstance(self.artwork, str) else None,
            "has_artwork_data": isinstance(self.artwork, bytes),
            "playing": self.playing,
            "position": self.position,
            "duration": self.duration,
        }
