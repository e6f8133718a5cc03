"""
System output volume via PulseAudio / PipeWire ``pactl`` on the default sink.

  pactl get-sink-volume @DEFAULT_SINK@    → "Volume: front-left: 32768 /  50% / ..."
  pactl set-sink-volume @DEFAULT_SINK@ 40%
  pactl get-sink-mute @DEFAULT_SINK@      → "Mute: no"
  pactl set-sink-mute @DEFAULT_SINK@ 1
"""

import asyncio
import logging
import re

from .errors import BridgeError

logger = logging.getLogger(__name__)

DEFAULT_SINK = "@DEFAULT_SINK@"

_PERCENT_RE = re.compile(r"(\d+)%")


class SystemVolume:
    """Volume and mute of the machine's default audio output."""

    def __init__(self, sink: str = DEFAULT_SINK, binary: str = "pactl"):
        self._sink = sink
        self._binary = binary

    async def _pactl(self, *args) -> str:
        """Run a pactl command and return stdout."""
        cmd = [self._binary] + list(args)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await proc.communicate()
        except FileNotFoundError as e:
            raise BridgeError(f"{self._binary} not found — install pulseaudio-utils") from e
        if proc.returncode != 0:
            raise BridgeError(f"{self._binary} failed (rc={proc.returncode}): "
                              f"{stderr.decode(errors='replace').strip()}")
        return stdout.decode(errors="replace")

    async def get_volume(self) -> int:
        output = await self._pactl("get-sink-volume", self._sink)
        levels = [int(m) for m in _PERCENT_RE.findall(output)]
        if not levels:
            return 0
        # Channels can differ; report the loudest
        return max(0, min(100, max(levels)))

    async def set_volume(self, level: int) -> int:
        clamped = max(0, min(100, int(level)))
        await self._pactl("set-sink-volume", self._sink, f"{clamped}%")
        logger.info("-> system volume: %d%%", clamped)
        return clamped

    async def get_mute(self) -> bool:
        output = await self._pactl("get-sink-mute", self._sink)
        return "yes" in output.lower()

    async def set_mute(self, muted: bool) -> None:
        await self._pactl("set-sink-mute", self._sink, "1" if muted else "0")
        logger.info("-> system mute: %s", "on" if muted else "off")
