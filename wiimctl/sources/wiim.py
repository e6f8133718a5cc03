# wiimctl
# SPDX-License-Identifier: GPL-3.0-or-later

"""
WiiM media source — the network device as a MediaSource.

Polls ``getPlayerStatus`` every cycle and adds the device-only extras:
stored presets, equalizer presets, and artwork.

The device does not reliably report which EQ preset is loaded, so
``current_eq`` is whatever this process last loaded.
"""

import asyncio
import dataclasses
import logging
from urllib.parse import urlparse

import aiohttp

from ..lib.artwork import ArtworkCache, process_image_async
from ..lib.errors import WiiMError
from ..lib.media import REMOTE_CAPABILITIES, MediaSnapshot, SourceIdentifier
from ..lib.poller import POLL_INTERVAL
from ..lib.source_base import MediaSource, PollResult
from ..players.linkplay import Preset, WiiMClient

log = logging.getLogger(__name__)

SETTLE_DELAY = 0.5  # seconds between a skip/preset command and the refresh
ARTWORK_TIMEOUT = 10


class WiiMMediaSource(MediaSource):
    name = "wiim"
    capabilities = REMOTE_CAPABILITIES

    def __init__(self, client: WiiMClient, *, interval: float = POLL_INTERVAL):
        self.client = client
        super().__init__(SourceIdentifier.remote(client.display_name), interval=interval)
        self.presets: list[Preset] = []
        self.eq_presets: list[str] = []
        self.current_eq: str = ""
        self.preset_artwork_url: str | None = None
        self.artwork: dict | None = None
        self._artwork_cache = ArtworkCache()
        self._artwork_task: asyncio.Task | None = None
        self._lists_task: asyncio.Task | None = None

    @property
    def identifier(self) -> SourceIdentifier:
        # Follows the client so a newly selected device shows up immediately
        return SourceIdentifier.remote(self.client.display_name)

    @property
    def artwork_reference(self) -> str | None:
        """Preset artwork wins over whatever the device reports."""
        if self.preset_artwork_url:
            return self.preset_artwork_url
        artwork = self.snapshot.artwork
        return artwork if isinstance(artwork, str) else None

    # ── Monitoring ──

    def start_monitoring(self):
        if not self.client.configured:
            log.info("No WiiM device configured — not monitoring")
            return
        super().start_monitoring()

    def on_start(self):
        self._lists_task = asyncio.create_task(self._load_lists())

    def on_stop(self):
        for task in (self._lists_task, self._artwork_task):
            if task is not None:
                task.cancel()
        self._lists_task = None
        self._artwork_task = None

    async def _load_lists(self):
        for loader in (self.fetch_presets, self.fetch_eq_presets):
            try:
                await loader()
            except WiiMError as e:
                log.warning("Could not load %s: %s", loader.__name__, e)

    async def fetch(self) -> PollResult:
        status = await self.client.get_player_status()
        snapshot = MediaSnapshot(
            title=status.decoded_title,
            artist=status.decoded_artist,
            album=status.decoded_album,
            artwork=status.album_art_url,
            playing=status.playing,
            position=status.position,
            duration=status.duration,
        )
        return PollResult(snapshot, self.identifier, available=True,
                          volume=status.volume, muted=status.muted)

    def on_title_changed(self):
        if self.preset_artwork_url and not self._playing_preset():
            self.preset_artwork_url = None
        if self._artwork_task is not None:
            self._artwork_task.cancel()
        self._artwork_task = asyncio.create_task(self.load_artwork())

    def _playing_preset(self) -> bool:
        title = self.snapshot.title.lower()
        if not title:
            return False
        for preset in self.presets:
            name = (preset.name or "").lower()
            if name and (name in title or title in name):
                return True
        return False

    # ── Transport ──

    async def toggle_play_pause(self):
        await self.client.toggle_play_pause(self.snapshot.playing)
        await self.refresh()

    async def next_track(self):
        await self.client.next()
        await self.settle_and_refresh(SETTLE_DELAY)

    async def previous_track(self):
        await self.client.previous()
        await self.settle_and_refresh(SETTLE_DELAY)

    async def seek(self, seconds: int):
        await self.client.seek(seconds)
        self.snapshot = dataclasses.replace(self.snapshot, position=max(0, int(seconds)))

    async def set_volume(self, level: int):
        self.volume = await self.client.set_volume(level)

    async def set_mute(self, muted: bool):
        await self.client.set_mute(muted)
        self.muted = muted

    async def toggle_mute(self):
        await self.set_mute(not self.muted)

    # ── Presets & EQ ──

    async def fetch_presets(self) -> list[Preset]:
        self.presets = await self.client.get_presets()
        log.info("Loaded %d presets", len(self.presets))
        return self.presets

    async def fetch_eq_presets(self) -> list[str]:
        self.eq_presets = await self.client.get_eq_list()
        log.info("Loaded %d EQ presets", len(self.eq_presets))
        return self.eq_presets

    async def load_eq_preset(self, name: str):
        await self.client.load_eq_preset(name)
        self.current_eq = name
        log.info("EQ preset loaded: %s", name)

    def find_preset(self, number: int) -> Preset:
        for preset in self.presets:
            if preset.number == number:
                return preset
        return Preset(number=number)

    async def play_preset(self, preset: Preset | int):
        if not isinstance(preset, Preset):
            preset = self.find_preset(int(preset))
        # Set before the refresh so the title change keeps the preset art
        self.preset_artwork_url = preset.artwork_url
        await self.client.play_preset(preset.number)
        log.info("Playing preset %d (%s)", preset.number, preset.display_name)
        await self.settle_and_refresh(SETTLE_DELAY)
        await self.load_artwork()

    # ── Artwork ──

    async def load_artwork(self):
        url = self.artwork_reference
        if not url:
            self.artwork = None
            return
        cached = self._artwork_cache.get(url)
        if cached is not None:
            self.artwork = cached
            return

        image_bytes = await self._fetch_artwork_bytes(url)
        result = await process_image_async(image_bytes) if image_bytes else None
        if result:
            self._artwork_cache.put(url, result)
            log.info("Cached artwork for %s (%d items in cache)",
                     url, len(self._artwork_cache))
        self.artwork = result

    async def _fetch_artwork_bytes(self, url: str) -> bytes | None:
        # Device-hosted art needs the device-trusting session; anything else doesn't
        if urlparse(url).hostname == urlparse(f"//{self.client.host}").hostname:
            try:
                return await self.client.fetch_data(url)
            except WiiMError as e:
                log.warning("Error fetching device artwork: %s", e)
                return None
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=ARTWORK_TIMEOUT)
                ) as resp:
                    resp.raise_for_status()
                    return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.warning("Error fetching artwork: %s", e)
            return None

    # ── Device selection ──

    async def set_device(self, host: str, name: str = ""):
        """Point the source at another device and restart monitoring."""
        self.stop_monitoring()
        self.client.configure(host, name)
        await self.client.close()
        self.snapshot = MediaSnapshot()
        self.available = False
        self.presets = []
        self.eq_presets = []
        self.current_eq = ""
        self.preset_artwork_url = None
        self.artwork = None
        self.notify()
        self.start_monitoring()

    async def close(self):
        self.stop_monitoring()
        await self.client.close()

    def state(self) -> dict:
        state = super().state()
        state.update({
            "device": {"host": self.client.host, "name": self.client.name},
            "presets": [p.to_dict() for p in self.presets],
            "eq_presets": list(self.eq_presets),
            "current_eq": self.current_eq,
            "artwork_reference": self.artwork_reference,
            "has_artwork": self.artwork is not None,
        })
        return state
