import json
from unittest.mock import AsyncMock

import pytest

from wiimctl.lib.errors import Unreachable
from wiimctl.lib.media import Capability
from wiimctl.players.linkplay import Preset, WiiMClient
from wiimctl.sources import wiim as wiim_module
from wiimctl.sources.wiim import WiiMMediaSource


class FakeExecute:
    """Stands in for WiiMClient.execute so the real typed commands run."""

    def __init__(self):
        self.commands = []
        self.error = None
        self.status = {"status": "play", "vol": "40", "mute": "0",
                       "curpos": "5000", "totlen": "200000",
                       "Title": "48656C6C6F", "Artist": "Band", "Album": "LP"}
        self.presets = []
        self.eq = ["Flat", "Rock"]

    async def __call__(self, command):
        self.commands.append(command)
        if self.error is not None:
            raise self.error
        if command == "getPlayerStatus":
            return json.dumps(self.status).encode()
        if command == "getPresetInfo":
            return json.dumps({"preset_list": self.presets}).encode()
        if command == "EQGetList":
            return json.dumps(self.eq).encode()
        return b"OK"


@pytest.fixture(autouse=True)
def no_settle(monkeypatch):
    monkeypatch.setattr(wiim_module, "SETTLE_DELAY", 0)


@pytest.fixture
def device():
    return FakeExecute()


@pytest.fixture
def source(device):
    client = WiiMClient("10.0.0.5", "Kitchen")
    client.execute = device
    src = WiiMMediaSource(client)
    src._fetch_artwork_bytes = AsyncMock(return_value=None)
    return src


def test_identity_and_capabilities(source):
    assert source.identifier.is_remote
    assert source.identifier.display_name == "Kitchen"
    assert Capability.SEEK in source.capabilities
    assert Capability.EQUALIZER in source.capabilities


async def test_refresh_updates_snapshot_and_notifies_once(source):
    changes = []
    source.add_listener(changes.append)

    await source.refresh()
    assert source.available
    assert source.snapshot.title == "Hello"
    assert source.snapshot.playing
    assert source.snapshot.position == 5
    assert source.volume == 40
    assert changes == [source]

    await source.refresh()
    assert changes == [source]


async def test_failure_marks_unavailable_and_keeps_snapshot(source, device):
    changes = []
    await source.refresh()
    source.add_listener(changes.append)

    device.error = Unreachable()
    await source.refresh()
    assert not source.available
    assert source.snapshot.title == "Hello"
    assert len(changes) == 1

    await source.refresh()
    assert len(changes) == 1


async def test_recovery_is_announced(source, device):
    changes = []
    await source.refresh()
    device.error = Unreachable()
    await source.refresh()
    source.add_listener(changes.append)

    device.error = None
    await source.refresh()
    assert source.available
    assert len(changes) == 1


async def test_toggle_pauses_when_playing(source, device):
    await source.refresh()
    device.commands.clear()
    await source.toggle_play_pause()
    assert device.commands == ["setPlayerCmd:pause", "getPlayerStatus"]


async def test_toggle_resumes_when_paused(source, device):
    device.status["status"] = "pause"
    await source.refresh()
    device.commands.clear()
    await source.toggle_play_pause()
    assert device.commands[0] == "setPlayerCmd:resume"


async def test_next_and_previous_refresh(source, device):
    await source.next_track()
    await source.previous_track()
    assert device.commands == ["setPlayerCmd:next", "getPlayerStatus",
                               "setPlayerCmd:prev", "getPlayerStatus"]


async def test_seek_updates_position(source, device):
    await source.refresh()
    await source.seek(120)
    assert source.snapshot.position == 120
    assert device.commands[-1] == "setPlayerCmd:seek:120"


async def test_volume_is_clamped_and_cached(source, device):
    await source.set_volume(150)
    assert source.volume == 100
    assert device.commands == ["setPlayerCmd:vol:100"]


async def test_toggle_mute(source, device):
    await source.toggle_mute()
    assert source.muted
    await source.toggle_mute()
    assert not source.muted
    assert device.commands == ["setPlayerCmd:mute:1", "setPlayerCmd:mute:0"]


async def test_command_failure_propagates(source, device):
    device.error = Unreachable()
    with pytest.raises(Unreachable):
        await source.next_track()


async def test_eq_presets(source, device):
    assert await source.fetch_eq_presets() == ["Flat", "Rock"]
    await source.load_eq_preset("Rock")
    assert source.current_eq == "Rock"
    assert device.commands[-1] == "EQLoad:Rock"


async def test_preset_artwork_survives_matching_title(source, device):
    device.presets = [{"number": 2, "name": "Radio Paradise",
                       "picurl": "http://img.example/rp.png"}]
    await source.fetch_presets()
    device.status["Title"] = "Radio Paradise"

    await source.play_preset(2)
    assert "MCUKeyShortClick:2" in device.commands
    assert source.preset_artwork_url == "http://img.example/rp.png"
    assert source.artwork_reference == "http://img.example/rp.png"

    device.status["Title"] = "Something Else"
    await source.refresh()
    assert source.preset_artwork_url is None
    assert source.artwork_reference is None


async def test_play_preset_accepts_preset_object(source, device):
    await source.play_preset(Preset(number=5, name="Jazz"))
    assert "MCUKeyShortClick:5" in device.commands
    assert source.preset_artwork_url is None


async def test_start_without_device_does_nothing():
    src = WiiMMediaSource(WiiMClient())
    src.start_monitoring()
    assert not src.monitoring
    src.stop_monitoring()


async def test_set_device_resets_state(source):
    await source.refresh()
    source.current_eq = "Rock"
    await source.set_device("10.0.0.9", "Office")
    try:
        assert source.client.host == "10.0.0.9"
        assert source.identifier.display_name == "Office"
        assert source.current_eq == ""
        assert source.snapshot.title == ""
        assert source.monitoring
    finally:
        await source.close()
    assert not source.monitoring


async def test_state_includes_device_extras(source):
    await source.fetch_eq_presets()
    state = source.state()
    assert state["source"]["kind"] == "remote"
    assert state["eq_presets"] == ["Flat", "Rock"]
    assert "presets" in state
    assert "equalizer" in state["capabilities"]
