import dataclasses

import pytest

from wiimctl.lib.media import (
    LOCAL_CAPABILITIES,
    REMOTE_CAPABILITIES,
    Capability,
    MediaSnapshot,
    SourceIdentifier,
    SourceMode,
    capability_names,
)


def test_capability_sets():
    assert capability_names(LOCAL_CAPABILITIES) == ["play_pause", "next", "previous", "volume"]
    assert len(capability_names(REMOTE_CAPABILITIES)) == 7
    assert Capability.SEEK not in LOCAL_CAPABILITIES


@pytest.mark.parametrize("bundle_id, title, label", [
    ("com.spotify.client", "", "Spotify"),
    ("com.apple.Music", "", "Apple Music"),
    ("org.mozilla.firefox", "Some page", "Firefox"),
    ("com.google.Chrome", "Lo-fi beats - YouTube", "YouTube"),
    ("com.example.SomePlayer", "", "SomePlayer"),
])
def test_local_display_names(bundle_id, title, label):
    assert SourceIdentifier.local(bundle_id, title).display_name == label


def test_remote_identifier():
    ident = SourceIdentifier.remote("Living Room")
    assert ident.is_remote and not ident.is_local
    assert ident.display_name == "Living Room"
    assert SourceIdentifier.remote().display_name == "WiiM"
    assert ident.to_dict() == {"kind": "remote", "id": "Living Room", "name": "Living Room"}


def test_identifiers_compare_by_value():
    assert SourceIdentifier.local("vlc") == SourceIdentifier.local("vlc")
    assert SourceIdentifier.local("vlc") != SourceIdentifier.remote("vlc")


def test_snapshot_is_frozen():
    snap = MediaSnapshot(title="A")
    with pytest.raises(dataclasses.FrozenInstanceError):
        snap.title = "B"


def test_snapshot_dict():
    assert MediaSnapshot(artist="X").has_content
    assert not MediaSnapshot(album="only album").has_content
    data = MediaSnapshot(title="A", artwork=b"\x89PNG").to_dict()
    assert data["has_artwork_data"] is True
    assert data["artwork_url"] is None
    assert MediaSnapshot(artwork="http://x/a.jpg").to_dict()["artwork_url"] == "http://x/a.jpg"


def test_source_mode_parse():
    assert SourceMode.parse("WIIM") is SourceMode.WIIM
    assert SourceMode.parse("nope", SourceMode.AUTO) is SourceMode.AUTO
    with pytest.raises(ValueError):
        SourceMode.parse("nope")


@pytest.mark.parametrize("mode", list(SourceMode))
def test_source_mode_parse_accepts_members(mode):
    assert SourceMode.parse(mode) is mode
    assert SourceMode.parse(mode.value.upper()) is mode
