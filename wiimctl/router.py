#!/usr/bin/env python3
# wiimctl
# SPDX-License-Identifier: GPL-3.0-or-later

"""
wiimctl source router

Owns both media sources (the WiiM device and the local machine), decides
which one is active, and routes every user command to it.  A small HTTP +
WebSocket API lets any front-end read state and send commands; it holds no
arbitration logic of its own.

Selection, evaluated whenever either source changes or the mode changes:

  mode "wiim"   → WiiM device
  mode "local"  → local player
  mode "auto"   → whichever is available *and* playing (WiiM first),
                  else the WiiM device if reachable, else the local player

Port: 8780
"""

import asyncio
import logging
import signal
from typing import Callable

from aiohttp import web

from .discovery import DeviceDiscovery
from .lib.config import Settings, cfg, settings
from .lib.errors import CommandFailed, WiiMError
from .lib.media import Capability, SourceIdentifier, SourceMode
from .lib.poller import POLL_INTERVAL
from .lib.source_base import MediaSource
from .lib.watchdog import notify_status, watchdog_loop
from .players.linkplay import WiiMClient
from .players.mpris import PlayerctlBridge
from .sources.local import LocalMediaSource
from .sources.wiim import WiiMMediaSource

logger = logging.getLogger(__name__)

ROUTER_PORT = 8780

TransitionListener = Callable[[SourceIdentifier | None, SourceIdentifier | None], None]


# ---------------------------------------------------------------------------
# Arbitration
# ---------------------------------------------------------------------------
class SourceArbitrator:
    """Picks the active source and routes commands to it."""

    def __init__(self, remote: WiiMMediaSource, local: LocalMediaSource, *,
                 store: Settings | None = None):
        self.remote = remote
        self.local = local
        self._settings = store if store is not None else settings()
        self.mode = SourceMode.parse(
            self._settings.get("source", "mode", default=SourceMode.AUTO.value),
            SourceMode.AUTO)
        self.active: MediaSource | None = None
        self._active_id: SourceIdentifier | None = None
        self._listeners: list[TransitionListener] = []
        self._monitoring = False
        remote.add_listener(self._on_source_change)
        local.add_listener(self._on_source_change)

    # ── Lifecycle ──

    def start(self):
        self._monitoring = True
        self.remote.start_monitoring()
        self.local.start_monitoring()
        self.recompute()

    def stop(self):
        self._monitoring = False
        self.remote.stop_monitoring()
        self.local.stop_monitoring()

    # ── Selection ──

    def add_listener(self, callback: TransitionListener):
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: TransitionListener):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def select(self) -> MediaSource:
        """The source the current mode and source states call for."""
        if self.mode is SourceMode.WIIM:
            return self.remote
        if self.mode is SourceMode.LOCAL:
            return self.local

        remote_up = self.remote.available
        local_up = self.local.available
        if remote_up and self.remote.snapshot.playing:
            return self.remote
        if local_up and self.local.snapshot.playing:
            return self.local
        if remote_up:
            return self.remote
        return self.local

    def recompute(self):
        if not self._monitoring:
            return
        source = self.select()
        previous = self._active_id
        current = source.identifier
        self.active = source
        if current == previous:
            return
        self._active_id = current
        logger.info("Active source: %s -> %s",
                    previous.display_name if previous else "-", current.display_name)
        for callback in list(self._listeners):
            try:
                callback(previous, current)
            except Exception:
                logger.exception("Transition listener failed")

    def _on_source_change(self, source: MediaSource):
        self.recompute()

    def set_mode(self, mode: SourceMode | str):
        mode = SourceMode.parse(mode)
        if mode is not self.mode:
            logger.info("Source mode: %s -> %s", self.mode.value, mode.value)
        self.mode = mode
        self._settings.set("source", "mode", mode.value)
        self.recompute()

    @staticmethod
    def describe(mode: SourceMode | str) -> str:
        return SourceMode.parse(mode).description

    # ── Commands ──

    def _target(self) -> MediaSource:
        # Before anything is active, commands go to the local player
        return self.active or self.local

    async def _run(self, action: str, capability: Capability, command) -> bool:
        source = self._target()
        if capability not in source.capabilities:
            logger.info("%s not supported by %s — ignored",
                        action, source.identifier.display_name)
            return False
        try:
            await command(source)
        except WiiMError as e:
            logger.warning("%s on %s failed: %s", action, source.name, e)
            raise CommandFailed(action, e) from e
        return True

    async def toggle_play_pause(self) -> bool:
        return await self._run("toggle_play_pause", Capability.PLAY_PAUSE,
                               lambda s: s.toggle_play_pause())

    async def next_track(self) -> bool:
        return await self._run("next_track", Capability.NEXT, lambda s: s.next_track())

    async def previous_track(self) -> bool:
        return await self._run("previous_track", Capability.PREVIOUS,
                               lambda s: s.previous_track())

    async def seek(self, seconds: int) -> bool:
        return await self._run("seek", Capability.SEEK, lambda s: s.seek(seconds))

    async def set_volume(self, level: int) -> bool:
        return await self._run("set_volume", Capability.VOLUME, lambda s: s.set_volume(level))

    async def toggle_mute(self) -> bool:
        return await self._run("toggle_mute", Capability.VOLUME, lambda s: s.toggle_mute())

    # WiiM-only; the local source has neither capability

    async def load_eq_preset(self, name: str) -> bool:
        return await self._run("load_eq_preset", Capability.EQUALIZER,
                               lambda s: s.load_eq_preset(name))

    async def fetch_eq_presets(self) -> bool:
        return await self._run("fetch_eq_presets", Capability.EQUALIZER,
                               lambda s: s.fetch_eq_presets())

    async def play_preset(self, number: int) -> bool:
        return await self._run("play_preset", Capability.PRESETS,
                               lambda s: s.play_preset(number))

    async def fetch_presets(self) -> bool:
        return await self._run("fetch_presets", Capability.PRESETS,
                               lambda s: s.fetch_presets())

    # ── State ──

    def status(self) -> dict:
        active = self.active
        return {
            "mode": self.mode.value,
            "mode_description": self.mode.description,
            "active_source": active.identifier.to_dict() if active else None,
            "active": active.state() if active else None,
            "sources": {
                self.remote.name: self.remote.state(),
                self.local.name: self.local.state(),
            },
        }


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class RouterService:
    """Wires discovery, both sources and the arbitrator to the HTTP API."""

    def __init__(self, arbitrator: SourceArbitrator, discovery: DeviceDiscovery | None = None,
                 *, store: Settings | None = None):
        self.arbitrator = arbitrator
        self.discovery = discovery or DeviceDiscovery()
        self._settings = store if store is not None else settings()
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._tasks: set[asyncio.Task] = set()

        arbitrator.add_listener(self._on_transition)
        arbitrator.remote.add_listener(self._on_source_change)
        arbitrator.local.add_listener(self._on_source_change)
        self.discovery.add_listener(self._on_discovery_change)

    @classmethod
    def from_config(cls) -> "RouterService":
        store = settings()
        client = WiiMClient(
            store.get("device", "host", default=""),
            store.get("device", "name", default=""),
            scheme=cfg("device", "scheme", default="https"),
        )
        interval = cfg("poll", "interval", default=POLL_INTERVAL)
        remote = WiiMMediaSource(client, interval=interval)
        local = LocalMediaSource(PlayerctlBridge(), interval=interval)
        return cls(SourceArbitrator(remote, local, store=store), store=store)

    async def start(self):
        self.arbitrator.start()
        logger.info("Router started (mode=%s)", self.arbitrator.mode.value)

    async def stop(self):
        self.arbitrator.stop()
        await self.discovery.stop()
        await self.arbitrator.remote.close()
        for task in list(self._tasks):
            task.cancel()
        for ws in list(self._ws_clients):
            await ws.close()

    async def select_device(self, host: str, name: str = ""):
        """Point the WiiM source at *host* and remember the choice."""
        self._settings.set("device", "host", host)
        self._settings.set("device", "name", name)
        await self.arbitrator.remote.set_device(host, name)

    # ── Change fan-out ──

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_transition(self, previous, current):
        notify_status(f"Active: {current.display_name}" if current else "Idle")
        self._spawn(self.broadcast("source_changed", {
            "previous": previous.to_dict() if previous else None,
            "current": current.to_dict() if current else None,
        }))

    def _on_source_change(self, source: MediaSource):
        self._spawn(self.broadcast("state", self.arbitrator.status()))

    def _on_discovery_change(self, discovery: DeviceDiscovery):
        self._spawn(self.broadcast("devices", self.devices_state()))

    def devices_state(self) -> dict:
        return {
            "searching": self.discovery.searching,
            "devices": [d.to_dict() for d in self.discovery.devices],
        }

    async def broadcast(self, event_type: str, data: dict):
        """Push an event to every connected WebSocket client."""
        if not self._ws_clients:
            return
        message = {"type": event_type, "data": data}
        disconnected = set()
        for ws in list(self._ws_clients):
            try:
                await ws.send_json(message)
            except (ConnectionError, RuntimeError):
                disconnected.add(ws)
        self._ws_clients -= disconnected


# ---------------------------------------------------------------------------
# HTTP handlers
# ---------------------------------------------------------------------------
SERVICE_KEY = web.AppKey("service", RouterService)


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def _read_json(request: web.Request) -> dict | None:
    try:
        data = await request.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


async def handle_status(request: web.Request) -> web.Response:
    """GET /status — active source, both source states, mode."""
    return web.json_response(request.app[SERVICE_KEY].arbitrator.status())


async def handle_command(request: web.Request) -> web.Response:
    """POST /command — {"action": ..., "value": ...} routed to the active source."""
    arbitrator = request.app[SERVICE_KEY].arbitrator
    data = await _read_json(request)
    if data is None:
        return _error("invalid json", 400)

    action = data.get("action")
    value = data.get("value")
    try:
        if action == "toggle":
            handled = await arbitrator.toggle_play_pause()
        elif action == "next":
            handled = await arbitrator.next_track()
        elif action in ("prev", "previous"):
            handled = await arbitrator.previous_track()
        elif action == "seek":
            handled = await arbitrator.seek(int(value))
        elif action == "volume":
            handled = await arbitrator.set_volume(int(value))
        elif action == "mute":
            handled = await arbitrator.toggle_mute()
        elif action == "eq":
            if not isinstance(value, str) or not value:
                return _error("missing or invalid 'value'", 400)
            handled = await arbitrator.load_eq_preset(value)
        elif action == "preset":
            handled = await arbitrator.play_preset(int(value))
        else:
            return _error(f"unknown action '{action}'", 400)
    except (TypeError, ValueError):
        return _error("missing or invalid 'value'", 400)
    except CommandFailed as e:
        return web.json_response(
            {"error": str(e), "action": e.action, "reason": str(e.error)}, status=502)

    return web.json_response({"status": "ok", "action": action, "handled": handled})


async def handle_mode_get(request: web.Request) -> web.Response:
    """GET /mode — current mode plus every choice with its description."""
    arbitrator = request.app[SERVICE_KEY].arbitrator
    return web.json_response({
        "mode": arbitrator.mode.value,
        "modes": [{"id": m.value, "description": arbitrator.describe(m)} for m in SourceMode],
    })


async def handle_mode_set(request: web.Request) -> web.Response:
    """POST /mode — {"mode": "auto" | "wiim" | "local"}."""
    arbitrator = request.app[SERVICE_KEY].arbitrator
    data = await _read_json(request)
    if data is None:
        return _error("invalid json", 400)
    try:
        arbitrator.set_mode(data.get("mode"))
    except ValueError:
        return _error("invalid mode", 400)
    return web.json_response({"status": "ok", "mode": arbitrator.mode.value})


async def handle_discover(request: web.Request) -> web.Response:
    """POST /discover — start a fresh device search."""
    service = request.app[SERVICE_KEY]
    await service.discovery.start()
    return web.json_response({"status": "ok", **service.devices_state()})


async def handle_devices(request: web.Request) -> web.Response:
    """GET /devices — devices found by the current or last search."""
    return web.json_response(request.app[SERVICE_KEY].devices_state())


async def handle_device(request: web.Request) -> web.Response:
    """POST /device — select {"id"} from discovery, or {"host", "name"} directly."""
    service = request.app[SERVICE_KEY]
    data = await _read_json(request)
    if data is None:
        return _error("invalid json", 400)

    device_id = data.get("id")
    if device_id:
        device = next((d for d in service.discovery.devices if d.id == device_id), None)
        if device is None:
            return _error(f"unknown device '{device_id}'", 400)
        host, name = device.host, device.name
    else:
        host, name = data.get("host"), data.get("name") or ""
    if not isinstance(host, str) or not host:
        return _error("host required", 400)

    await service.select_device(host, name)
    return web.json_response({"status": "ok", "host": host, "name": name})


async def handle_artwork(request: web.Request) -> web.Response:
    """GET /artwork — processed JPEG of the WiiM source's current artwork."""
    artwork = request.app[SERVICE_KEY].arbitrator.remote.artwork
    if not artwork:
        return _error("no artwork", 404)
    return web.Response(body=artwork["jpeg"], content_type="image/jpeg")


async def handle_ws(request: web.Request) -> web.WebSocketResponse:
    service = request.app[SERVICE_KEY]
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    service._ws_clients.add(ws)
    logger.info("WebSocket client connected (%d total)", len(service._ws_clients))
    try:
        await ws.send_json({"type": "state", "data": service.arbitrator.status()})
        # Push-only: incoming messages are ignored
        async for _msg in ws:
            pass
    finally:
        service._ws_clients.discard(ws)
        logger.info("WebSocket client disconnected (%d remaining)",
                    len(service._ws_clients))
    return ws


# ---------------------------------------------------------------------------
# App lifecycle
# ---------------------------------------------------------------------------
async def on_startup(app: web.Application):
    await app[SERVICE_KEY].start()


async def on_cleanup(app: web.Application):
    await app[SERVICE_KEY].stop()


@web.middleware
async def cors_middleware(request, handler):
    if request.method == "OPTIONS":
        resp = web.Response()
    else:
        resp = await handler(request)
    resp.headers["Access-Control-Allow-Origin"] = "*"
    resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return resp


def create_app(service: RouterService) -> web.Application:
    app = web.Application(middlewares=[cors_middleware])
    app[SERVICE_KEY] = service
    app.router.add_get("/status", handle_status)
    app.router.add_post("/command", handle_command)
    app.router.add_get("/mode", handle_mode_get)
    app.router.add_post("/mode", handle_mode_set)
    app.router.add_post("/discover", handle_discover)
    app.router.add_get("/devices", handle_devices)
    app.router.add_post("/device", handle_device)
    app.router.add_get("/artwork", handle_artwork)
    app.router.add_get("/ws", handle_ws)
    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app


async def run():
    """Start the service, wait for SIGTERM/SIGINT, shut down."""
    app = create_app(RouterService.from_config())
    runner = web.AppRunner(app)
    await runner.setup()
    host = cfg("http", "host", default="0.0.0.0")
    port = cfg("http", "port", default=ROUTER_PORT)
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Listening on %s:%d", host, port)

    watchdog = asyncio.create_task(watchdog_loop())
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down")
        watchdog.cancel()
        await runner.cleanup()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    asyncio.run(run())


if __name__ == "__main__":
    main()
