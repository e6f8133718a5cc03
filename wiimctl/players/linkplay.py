# wiimctl
# SPDX-License-Identifier: GPL-3.0-or-later

"""
LinkPlay / WiiM HTTP API client.

Every command is a GET against one endpoint on the device:

  GET https://<host>/httpapi.asp?command=<cmd>

  getPlayerStatus                 — JSON status (numbers as strings, text hex-encoded)
  setPlayerCmd:pause|resume       — transport
  setPlayerCmd:next|prev
  setPlayerCmd:vol:N              — volume 0-100
  setPlayerCmd:mute:0|1
  setPlayerCmd:seek:N             — absolute position, seconds
  EQGetList / EQLoad:<name>       — equalizer presets
  getPresetInfo                   — stored presets (JSON)
  MCUKeyShortClick:N              — trigger stored preset N

The device serves a self-signed certificate, so the client owns its own
session with verification disabled for that session only.  The client is
stateless apart from the configured address: every failure is raised as a
``WiiMError`` subclass and nothing is retried here.
"""

import asyncio
import binascii
import errno
import json
import logging
import string
import urllib.parse
from dataclasses import dataclass, field

import aiohttp
from yarl import URL

from ..lib.errors import (
    DecodeError,
    DeviceError,
    InvalidRequest,
    NoConnectivity,
    NotConfigured,
    Timeout,
    Unreachable,
)

log = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5    # seconds to establish the connection
TOTAL_TIMEOUT = 10     # seconds for the whole request
DEFAULT_VOLUME = 50

_HEX_DIGITS = frozenset(string.hexdigits)
_NO_NETWORK_ERRNOS = {errno.ENETUNREACH, errno.ENETDOWN}

# Album art may arrive in any of these status fields, checked in order
ALBUM_ART_FIELDS = ("albumart_uri", "artwork", "albumart")


# ── Text decoding ──

def is_hex_string(value: str) -> bool:
    """True for a non-empty, even-length string made only of hex digits."""
    return bool(value) and len(value) % 2 == 0 and all(c in _HEX_DIGITS for c in value)


def decode_hex_text(value: str) -> str | None:
    """Decode a hex-encoded UTF-8 string, or None if it isn't one."""
    if not is_hex_string(value):
        return None
    try:
        return binascii.unhexlify(value).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None


def decode_text(value: str | None) -> str:
    """Hex first, then percent-decoding, then the raw string."""
    if not value:
        return ""
    decoded = decode_hex_text(value)
    if decoded is not None:
        return decoded
    try:
        return urllib.parse.unquote(value, errors="strict")
    except UnicodeDecodeError:
        return value


def _parse_url(value: str) -> str | None:
    parsed = urllib.parse.urlparse(value)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return value
    return None


def _parse_int(value, default: int | None = None) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


# ── Response models ──

@dataclass(frozen=True)
class PlayerStatus:
    """Decoded ``getPlayerStatus`` response."""

    status: str = ""
    vol: str | None = None
    mute: str | None = None
    curpos: str | None = None
    totlen: str | None = None
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    mode: str | None = None
    eq: str | None = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, payload: dict) -> "PlayerStatus":
        def text(key):
            value = payload.get(key)
            return None if value is None else str(value)

        return cls(
            status=text("status") or "",
            vol=text("vol"),
            mute=text("mute"),
            curpos=text("curpos"),
            totlen=text("totlen"),
            title=text("Title"),
            artist=text("Artist"),
            album=text("Album"),
            mode=text("mode"),
            eq=text("eq"),
            raw=dict(payload),
        )

    @property
    def playing(self) -> bool:
        return self.status == "play"

    @property
    def volume(self) -> int:
        # Out-of-range device values are clamped rather than rejected
        level = _parse_int(self.vol, DEFAULT_VOLUME)
        return max(0, min(100, level))

    @property
    def muted(self) -> bool:
        return self.mute == "1"

    @property
    def position(self) -> int:
        """Current position in seconds (device reports milliseconds)."""
        ms = _parse_int(self.curpos)
        return ms // 1000 if ms is not None else 0

    @property
    def duration(self) -> int:
        """Total duration in seconds (device reports milliseconds)."""
        ms = _parse_int(self.totlen)
        return ms // 1000 if ms is not None else 0

    @property
    def decoded_title(self) -> str:
        return decode_text(self.title)

    @property
    def decoded_artist(self) -> str:
        return decode_text(self.artist)

    @property
    def decoded_album(self) -> str:
        return decode_text(self.album)

    @property
    def album_art_url(self) -> str | None:
        for key in ALBUM_ART_FIELDS:
            candidate = self.raw.get(key)
            if not candidate:
                continue
            url = _parse_url(decode_text(str(candidate)))
            if url:
                return url
        return None


@dataclass(frozen=True)
class Preset:
    """A stored quick-play preset on the device."""

    number: int
    name: str | None = None
    url: str | None = None
    source: str | None = None
    picurl: str | None = None

    @classmethod
    def from_dict(cls, payload: dict) -> "Preset":
        return cls(
            number=int(payload["number"]),
            name=payload.get("name"),
            url=payload.get("url"),
            source=payload.get("source"),
            picurl=payload.get("picurl"),
        )

    @property
    def display_name(self) -> str:
        return self.name or f"Preset {self.number}"

    @property
    def artwork_url(self) -> str | None:
        return self.picurl or None

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "name": self.display_name,
            "source": self.source,
            "artwork_url": self.artwork_url,
        }


# ── Client ──

class WiiMClient:
    """Command sender for one configured LinkPlay device."""

    def __init__(self, host: str = "", name: str = "", *, scheme: str = "https",
                 connect_timeout: float = CONNECT_TIMEOUT,
                 total_timeout: float = TOTAL_TIMEOUT):
        self.host = host
        self.name = name
        self.scheme = scheme
        self._timeout = aiohttp.ClientTimeout(total=total_timeout,
                                              sock_connect=connect_timeout)
        self._session: aiohttp.ClientSession | None = None

    @property
    def configured(self) -> bool:
        return bool(self.host)

    @property
    def display_name(self) -> str:
        if not self.host:
            return ""
        return self.name or self.host

    def configure(self, host: str, name: str = ""):
        self.host = host
        self.name = name
        log.info("Device set to %s (%s)", host or "-", name or "unnamed")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # ssl=False: trust the device's self-signed cert on this session only
            connector = aiohttp.TCPConnector(ssl=False, limit=4)
            self._session = aiohttp.ClientSession(connector=connector,
                                                  timeout=self._timeout)
        return self._session

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    def command_url(self, command: str) -> URL:
        if not self.host:
            raise NotConfigured()
        try:
            base = URL(f"{self.scheme}://{self.host}/httpapi.asp")
        except ValueError as e:
            raise InvalidRequest(f"Invalid device URL: {e}") from e
        if base.scheme not in ("http", "https") or not base.host:
            raise InvalidRequest()
        return base.with_query({"command": command})

    async def _get(self, url: URL | str) -> bytes:
        session = self._get_session()
        try:
            async with session.get(url) as resp:
                if not 200 <= resp.status < 300:
                    raise DeviceError(resp.status)
                return await resp.read()
        except asyncio.TimeoutError as e:
            raise Timeout() from e
        except aiohttp.InvalidURL as e:
            raise InvalidRequest(f"Invalid device URL: {e}") from e
        except aiohttp.ClientConnectorError as e:
            if getattr(e.os_error, "errno", None) in _NO_NETWORK_ERRNOS:
                raise NoConnectivity() from e
            raise Unreachable(f"Cannot reach device: {e}") from e
        except (aiohttp.ServerDisconnectedError, aiohttp.ClientPayloadError) as e:
            raise NoConnectivity(f"Connection lost: {e}") from e
        except aiohttp.ClientError as e:
            raise Unreachable(f"Cannot reach device: {e}") from e

    async def execute(self, command: str) -> bytes:
        """Send one command, return the raw response body."""
        url = self.command_url(command)
        log.debug("-> %s", command)
        return await self._get(url)

    async def fetch_data(self, url: str) -> bytes:
        """Fetch arbitrary bytes (artwork) through the device-trusting session."""
        return await self._get(url)

    # ── Typed commands ──

    async def get_player_status(self) -> PlayerStatus:
        data = await self.execute("getPlayerStatus")
        try:
            payload = json.loads(data)
        except ValueError as e:
            raise DecodeError(f"Invalid response: {e}") from e
        if not isinstance(payload, dict):
            raise DecodeError("Invalid response: status is not an object")
        return PlayerStatus.from_dict(payload)

    async def pause(self):
        await self.execute("setPlayerCmd:pause")

    async def resume(self):
        await self.execute("setPlayerCmd:resume")

    async def toggle_play_pause(self, currently_playing: bool):
        if currently_playing:
            await self.pause()
        else:
            await self.resume()

    async def next(self):
        await self.execute("setPlayerCmd:next")

    async def previous(self):
        await self.execute("setPlayerCmd:prev")

    async def set_volume(self, level: int) -> int:
        clamped = max(0, min(100, int(level)))
        await self.execute(f"setPlayerCmd:vol:{clamped}")
        return clamped

    async def set_mute(self, muted: bool):
        await self.execute(f"setPlayerCmd:mute:{1 if muted else 0}")

    async def seek(self, seconds: int):
        await self.execute(f"setPlayerCmd:seek:{max(0, int(seconds))}")

    async def get_eq_list(self) -> list[str]:
        data = await self.execute("EQGetList")
        try:
            presets = json.loads(data)
        except ValueError:
            presets = None
        if isinstance(presets, list):
            return [str(p) for p in presets]
        # Older firmware: comma-separated text
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Invalid EQ list: {e}") from e
        return [p.strip() for p in text.split(",") if p.strip()]

    async def load_eq_preset(self, name: str):
        await self.execute(f"EQLoad:{name}")

    async def get_presets(self) -> list[Preset]:
        data = await self.execute("getPresetInfo")
        try:
            payload = json.loads(data)
            return [Preset.from_dict(p) for p in payload.get("preset_list") or []]
        except (ValueError, AttributeError, KeyError, TypeError) as e:
            raise DecodeError(f"Invalid preset list: {e}") from e

    async def play_preset(self, number: int):
        await self.execute(f"MCUKeyShortClick:{int(number)}")
