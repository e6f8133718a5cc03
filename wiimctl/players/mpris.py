# wiimctl
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Now-playing bridge — what the local machine is playing, and how to drive it.

``NowPlayingBridge`` is the interface the local media source talks to.
``PlayerctlBridge`` implements it on Linux with ``playerctl`` (MPRIS over
D-Bus), one short subprocess per query or command:

  playerctl metadata --format <fmt>          — current player's metadata
  playerctl -p spotify metadata --format …   — one named player
  playerctl play-pause | next | previous …   — transport
  playerctl --follow metadata --format …     — one line per change

An empty result (no players, nothing loaded) is not an error; a command
that cannot be delivered raises ``BridgeError``.
"""

import asyncio
import contextlib
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from ..lib.errors import BridgeError

log = logging.getLogger(__name__)

FIELD_SEP = "|||"
_FIELDS = ("playerName", "status", "xesam:title", "xesam:artist", "xesam:album",
           "mpris:length", "position", "mpris:artUrl")
METADATA_FORMAT = FIELD_SEP.join("{{%s}}" % f for f in _FIELDS)
FOLLOW_FORMAT = "{{playerName}} {{status}} {{xesam:title}} {{xesam:artist}}"

RESTART_DELAY = 5  # seconds before relaunching a dead --follow process


class BridgeCommand(str, enum.Enum):
    PLAY = "play"
    PAUSE = "pause"
    TOGGLE = "toggle"
    STOP = "stop"
    NEXT = "next"
    PREVIOUS = "previous"


# BridgeCommand → playerctl verb
_PLAYERCTL_VERBS = {
    BridgeCommand.PLAY: "play",
    BridgeCommand.PAUSE: "pause",
    BridgeCommand.TOGGLE: "play-pause",
    BridgeCommand.STOP: "stop",
    BridgeCommand.NEXT: "next",
    BridgeCommand.PREVIOUS: "previous",
}


@dataclass(frozen=True)
class NowPlayingInfo:
    """One reading of the OS now-playing state. Times in seconds."""

    player: str = ""
    title: str = ""
    artist: str = ""
    album: str = ""
    playing: bool = False
    position: int = 0
    duration: int = 0
    art_url: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.title or self.artist or self.album)


def _micros_to_seconds(value: str) -> int:
    try:
        return int(float(value)) // 1_000_000
    except ValueError:
        return 0


def parse_metadata(line: str) -> NowPlayingInfo:
    """Parse one ``METADATA_FORMAT`` line; anything malformed reads as empty."""
    parts = line.rstrip("\n").split(FIELD_SEP)
    if len(parts) != len(_FIELDS):
        return NowPlayingInfo()
    player, status, title, artist, album, length, position, art = (p.strip() for p in parts)
    return NowPlayingInfo(
        player=player,
        title=title,
        artist=artist,
        album=album,
        playing=status.lower() == "playing",
        position=_micros_to_seconds(position),
        duration=_micros_to_seconds(length),
        art_url=art,
    )


class NowPlayingBridge(ABC):
    """Interface to the OS-level now-playing service."""

    @abstractmethod
    def register(self, callback: Callable[[], None]) -> None:
        """Start calling *callback* whenever the now-playing state changes."""

    @abstractmethod
    def unregister(self) -> None: ...

    @abstractmethod
    async def now_playing(self) -> NowPlayingInfo: ...

    @abstractmethod
    async def now_playing_app(self) -> str | None: ...

    @abstractmethod
    async def query_player(self, name: str) -> NowPlayingInfo | None:
        """Ask one named player directly (fallback when the OS reports nothing)."""

    @abstractmethod
    async def send_command(self, command: BridgeCommand) -> None: ...


class PlayerctlBridge(NowPlayingBridge):
    def __init__(self, binary: str = "playerctl"):
        self._binary = binary
        self._callback: Callable[[], None] | None = None
        self._follow_task: asyncio.Task | None = None

    async def _run(self, *args) -> tuple[int, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._binary, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise BridgeError(f"{self._binary} not found — install playerctl") from e
        stdout, _ = await proc.communicate()
        return proc.returncode, stdout.decode(errors="replace")

    async def _metadata(self, *player_args) -> NowPlayingInfo:
        rc, output = await self._run(*player_args, "metadata", "--format", METADATA_FORMAT)
        if rc != 0:
            # "No players found" and friends
            return NowPlayingInfo()
        return parse_metadata(output)

    async def now_playing(self) -> NowPlayingInfo:
        return await self._metadata()

    async def now_playing_app(self) -> str | None:
        rc, output = await self._run("metadata", "--format", "{{playerName}}")
        name = output.strip()
        return name if rc == 0 and name else None

    async def query_player(self, name: str) -> NowPlayingInfo | None:
        info = await self._metadata("-p", name)
        return None if info.is_empty else info

    async def send_command(self, command: BridgeCommand) -> None:
        verb = _PLAYERCTL_VERBS[BridgeCommand(command)]
        rc, _ = await self._run(verb)
        if rc != 0:
            raise BridgeError(f"playerctl {verb} failed (rc={rc})")
        log.info("-> local %s", verb)

    # ── Change notifications ──

    def register(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        if self._follow_task is None or self._follow_task.done():
            self._follow_task = asyncio.create_task(self._follow())

    def unregister(self) -> None:
        self._callback = None
        if self._follow_task is not None:
            self._follow_task.cancel()
            self._follow_task = None

    async def _follow(self):
        while self._callback is not None:
            try:
                proc = await asyncio.create_subprocess_exec(
                    self._binary, "--follow", "metadata", "--format", FOLLOW_FORMAT,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.DEVNULL,
                )
            except FileNotFoundError:
                log.error("%s not found — local changes only picked up by polling",
                          self._binary)
                return
            try:
                async for _line in proc.stdout:
                    if self._callback is not None:
                        self._callback()
                await proc.wait()
            finally:
                if proc.returncode is None:
                    with contextlib.suppress(ProcessLookupError):
                        proc.kill()
            log.debug("playerctl --follow exited (rc=%s), restarting", proc.returncode)
            await asyncio.sleep(RESTART_DELAY)
