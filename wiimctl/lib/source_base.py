# wiimctl
# SPDX-License-Identifier: GPL-3.0-or-later

"""
MediaSource — shared plumbing for the two media backends.

A source monitors one playback backend (the WiiM device, or whatever the
local machine is playing) and exposes its last snapshot plus a small
command surface.  Sources never decide whether they *should* receive a
command — that is the router's job — so every command is always attempted.

Subclass contract:

    class MySource(MediaSource):
        name         = "wiim"
        capabilities = Capability.PLAY_PAUSE | Capability.NEXT

        async def fetch(self) -> PollResult: ...
        async def toggle_play_pause(self): ...
        async def next_track(self): ...
        async def previous_track(self): ...
        async def seek(self, seconds: int): ...
        async def set_volume(self, level: int): ...
        async def toggle_mute(self): ...

Built-in (no override needed):
    start_monitoring() / stop_monitoring()  — drive the Poller
    refresh()                                — forced poll cycle
    add_listener(cb) / remove_listener(cb)   — change notifications
    state()                                  — JSON-ready SourceState

Optional overrides:
    on_start()          — called after polling starts
    on_stop()           — called after polling stops
    on_title_changed()  — called when a poll brings a new title
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from .media import Capability, MediaSnapshot, SourceIdentifier, capability_names
from .poller import POLL_INTERVAL, Poller

log = logging.getLogger(__name__)

Listener = Callable[["MediaSource"], None]


@dataclass(frozen=True)
class PollResult:
    """Everything one successful poll learned about a source."""

    snapshot: MediaSnapshot
    identifier: SourceIdentifier
    available: bool = True
    volume: int | None = None
    muted: bool | None = None


class MediaSource:
    # ── Subclass must set these ──
    name: str = ""
    capabilities: Capability = Capability(0)

    def __init__(self, identifier: SourceIdentifier, *, interval: float = POLL_INTERVAL):
        self.snapshot = MediaSnapshot()
        self.available: bool = False
        self.volume: int = 50
        self.muted: bool = False
        self._identifier = identifier
        self._listeners: list[Listener] = []
        self._poller = Poller(self.fetch, self._apply_result, self._apply_failure,
                              interval=interval, name=f"source:{self.name}")

    # ── Identity & listeners ──

    @property
    def identifier(self) -> SourceIdentifier:
        return self._identifier

    @property
    def monitoring(self) -> bool:
        return self._poller.running

    def add_listener(self, callback: Listener):
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Listener):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def notify(self):
        """Tell every listener this source changed."""
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                log.exception("Listener failed for source %s", self.name)

    # ── Monitoring ──

    def start_monitoring(self):
        if self.monitoring:
            return
        self._poller.start()
        self.on_start()

    def stop_monitoring(self):
        self._poller.stop()
        self.on_stop()

    async def refresh(self) -> bool:
        """Poll now, superseding any cycle already in flight."""
        return await self._poller.poll_once(force=True)

    async def settle_and_refresh(self, delay: float) -> bool:
        """Give the backend time to apply a command, then refresh."""
        await asyncio.sleep(delay)
        return await self.refresh()

    def _change_key(self) -> tuple:
        s = self.snapshot
        return (s.title, s.artist, s.playing, self.identifier, self.available)

    def _apply_result(self, result: PollResult):
        old_key = self._change_key()
        old_title = self.snapshot.title

        self.snapshot = result.snapshot
        self._identifier = result.identifier
        self.available = result.available
        if result.volume is not None:
            self.volume = result.volume
        if result.muted is not None:
            self.muted = result.muted

        if self.snapshot.title != old_title:
            self.on_title_changed()
        if self._change_key() != old_key:
            self.notify()

    def _apply_failure(self, error: Exception):
        was_available = self.available
        self.available = False
        if was_available:
            log.warning("Source %s unavailable: %s", self.name, error)
            self.notify()

    # ── Abstract methods (subclass must implement) ──

    async def fetch(self) -> PollResult:
        raise NotImplementedError

    async def toggle_play_pause(self):
        raise NotImplementedError

    async def next_track(self):
        raise NotImplementedError

    async def previous_track(self):
        raise NotImplementedError

    async def seek(self, seconds: int):
        raise NotImplementedError

    async def set_volume(self, level: int):
        raise NotImplementedError

    async def toggle_mute(self):
        raise NotImplementedError

    # ── Subclass hooks ──

    def on_start(self):
        """Called after polling starts."""

    def on_stop(self):
        """Called after polling stops."""

    def on_title_changed(self):
        """Called when a poll brings a new title."""

    # ── State ──

    def state(self) -> dict:
        return {
            "source": self.identifier.to_dict(),
            "capabilities": capability_names(self.capabilities),
            "available": self.available,
            "monitoring": self.monitoring,
            "media": self.snapshot.to_dict(),
            "volume": self.volume,
            "muted": self.muted,
        }
