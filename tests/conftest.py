import json

import pytest

from wiimctl.discovery import DeviceDiscovery
from wiimctl.lib import config
from wiimctl.lib.config import Settings
from wiimctl.lib.media import (
    LOCAL_CAPABILITIES,
    REMOTE_CAPABILITIES,
    MediaSnapshot,
    SourceIdentifier,
)
from wiimctl.lib.source_base import MediaSource, PollResult


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Every test sees an empty config.json and no real state file."""
    path = tmp_path / "config.json"
    path.write_text("{}")
    monkeypatch.setenv("WIIMCTL_CONFIG", str(path))
    monkeypatch.setenv("WIIMCTL_STATE", str(tmp_path / "state.json"))
    config.reload_config()
    yield path
    config._config = None
    config._settings = None


@pytest.fixture
def write_config(isolated_config):
    def write(data: dict):
        isolated_config.write_text(json.dumps(data))
        return config.reload_config()
    return write


@pytest.fixture
def store(tmp_path):
    return Settings(str(tmp_path / "state.json"))


class FakeSource(MediaSource):
    """Source driven by hand: ``update()`` plays the part of a poll."""

    def __init__(self, name, capabilities, identifier):
        self.name = name
        self.capabilities = capabilities
        super().__init__(identifier)
        self.calls = []
        self.error = None
        self.artwork = None
        self.started = False

    def start_monitoring(self):
        self.started = True

    def stop_monitoring(self):
        self.started = False

    def update(self, *, playing=False, available=True, title="Song", identifier=None):
        snapshot = MediaSnapshot(title=title, artist="Artist", playing=playing)
        self._apply_result(PollResult(snapshot, identifier or self.identifier, available))

    async def _record(self, *call):
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    async def toggle_play_pause(self):
        await self._record("toggle")

    async def next_track(self):
        await self._record("next")

    async def previous_track(self):
        await self._record("previous")

    async def seek(self, seconds):
        await self._record("seek", seconds)

    async def set_volume(self, level):
        await self._record("volume", level)

    async def toggle_mute(self):
        await self._record("mute")

    async def load_eq_preset(self, name):
        await self._record("eq", name)

    async def fetch_eq_presets(self):
        await self._record("eq_list")

    async def play_preset(self, number):
        await self._record("preset", number)

    async def fetch_presets(self):
        await self._record("presets")

    async def set_device(self, host, name=""):
        self.calls.append(("set_device", host, name))

    async def close(self):
        pass


@pytest.fixture
def remote():
    return FakeSource("wiim", REMOTE_CAPABILITIES, SourceIdentifier.remote("Living Room"))


@pytest.fixture
def local():
    return FakeSource("local", LOCAL_CAPABILITIES,
                      SourceIdentifier.local("spotify"))


class FakeZeroconf:
    def __init__(self):
        self.zeroconf = object()
        self.closed = False

    async def async_close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.cancelled = False

    async def async_cancel(self):
        self.cancelled = True


class FakeDiscovery(DeviceDiscovery):
    """DeviceDiscovery with mDNS replaced by a fixed record table."""

    def __init__(self, records=None, *, probe=None, **kwargs):
        async def reachable(address, port):
            return address

        kwargs.setdefault("zeroconf_factory", FakeZeroconf)
        super().__init__(probe=probe or reachable, **kwargs)
        self.records = records or {}
        self.browsers = []

    def _create_browser(self):
        browser = FakeBrowser()
        self.browsers.append(browser)
        return browser

    async def _lookup(self, name):
        return self.records.get(name)


@pytest.fixture
def make_discovery():
    return FakeDiscovery
