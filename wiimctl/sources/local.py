# wiimctl
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Local media source — whatever player the machine itself is running.

Reads the OS now-playing state through a ``NowPlayingBridge`` and drives the
system output volume.  When the bridge reports nothing, one named player
(Spotify by default) is asked directly before giving up.  Seeking is not
offered: most local players ignore remote seek requests.
"""

import asyncio
import logging
from urllib.parse import urlparse

from ..lib.config import cfg
from ..lib.errors import WiiMError
from ..lib.media import LOCAL_CAPABILITIES, MediaSnapshot, SourceIdentifier
from ..lib.poller import POLL_INTERVAL
from ..lib.source_base import MediaSource, PollResult
from ..lib.system_volume import SystemVolume
from ..players.mpris import BridgeCommand, NowPlayingBridge

log = logging.getLogger(__name__)

TOGGLE_SETTLE = 0.1  # seconds
SKIP_SETTLE = 0.3    # seconds
DEFAULT_FALLBACK_PLAYER = "spotify"


class LocalMediaSource(MediaSource):
    name = "local"
    capabilities = LOCAL_CAPABILITIES

    def __init__(self, bridge: NowPlayingBridge, volume: SystemVolume | None = None, *,
                 fallback_player: str | None = None, interval: float = POLL_INTERVAL):
        super().__init__(SourceIdentifier.local(), interval=interval)
        self.bridge = bridge
        self.system_volume = volume or SystemVolume()
        if fallback_player is None:
            fallback_player = cfg("local", "fallback_player", default=DEFAULT_FALLBACK_PLAYER)
        self.fallback_player = fallback_player
        self._bridge_refreshes: set[asyncio.Task] = set()

    # ── Monitoring ──

    def on_start(self):
        self.bridge.register(self._on_bridge_change)

    def on_stop(self):
        self.bridge.unregister()
        for task in self._bridge_refreshes:
            task.cancel()
        self._bridge_refreshes.clear()

    def _on_bridge_change(self):
        if not self.monitoring:
            return
        task = asyncio.create_task(self.refresh())
        self._bridge_refreshes.add(task)
        task.add_done_callback(self._bridge_refreshes.discard)

    async def read_system_volume(self) -> tuple[int | None, bool | None]:
        """Current output level and mute, or (None, None) if the mixer is unreachable."""
        try:
            return await self.system_volume.get_volume(), await self.system_volume.get_mute()
        except WiiMError as e:
            log.warning("Could not read system volume: %s", e)
            return None, None

    async def fetch(self) -> PollResult:
        info = await self.bridge.now_playing()
        player = None
        if info.is_empty and self.fallback_player:
            fallback = await self.bridge.query_player(self.fallback_player)
            if fallback is not None:
                info = fallback
                player = self.fallback_player
        if player is None:
            player = info.player or await self.bridge.now_playing_app()

        snapshot = MediaSnapshot(
            title=info.title,
            artist=info.artist,
            album=info.album,
            artwork=_remote_art(info.art_url),
            playing=info.playing,
            position=info.position,
            duration=info.duration,
        )
        identifier = SourceIdentifier.local(player, info.title)
        level, muted = await self.read_system_volume()
        return PollResult(snapshot, identifier, available=snapshot.has_content,
                          volume=level, muted=muted)

    # ── Transport ──

    async def toggle_play_pause(self):
        await self.bridge.send_command(BridgeCommand.TOGGLE)
        await self.settle_and_refresh(TOGGLE_SETTLE)

    async def next_track(self):
        await self.bridge.send_command(BridgeCommand.NEXT)
        await self.settle_and_refresh(SKIP_SETTLE)

    async def previous_track(self):
        await self.bridge.send_command(BridgeCommand.PREVIOUS)
        await self.settle_and_refresh(SKIP_SETTLE)

    async def seek(self, seconds: int):
        log.debug("Seek not supported for local players (ignored %ss)", seconds)

    async def set_volume(self, level: int):
        self.volume = await self.system_volume.set_volume(level)

    async def toggle_mute(self):
        muted = not self.muted
        await self.system_volume.set_mute(muted)
        self.muted = muted


def _remote_art(url: str) -> str | None:
    # file:// art only exists on this machine; nothing else could load it
    parsed = urlparse(url or "")
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return url
    return None
