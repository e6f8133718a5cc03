# wiimctl
# SPDX-License-Identifier: GPL-3.0-or-later

"""
LinkPlay device discovery over mDNS.

WiiM devices advertise ``_linkplay._tcp.local.``.  Each advertisement is
resolved with an mDNS info request, then every advertised address is
probed with a short TCP connection; the probe's peer address becomes the
device host.  Only devices that answer the probe are listed, one per host.

A search runs for ``DISCOVERY_TIMEOUT`` seconds and then stops itself.
Restarting a search discards anything still resolving from the previous one.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from zeroconf import ServiceStateChange
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

log = logging.getLogger(__name__)

SERVICE_TYPE = "_linkplay._tcp.local."
DISCOVERY_TIMEOUT = 10.0   # seconds
RESOLVE_TIMEOUT_MS = 3000
PROBE_TIMEOUT = 3.0        # seconds


@dataclass(frozen=True)
class Device:
    id: str
    name: str
    host: str
    port: int

    @property
    def display_name(self) -> str:
        return self.name or self.host

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.display_name,
                "host": self.host, "port": self.port}


def clean_address(address: str) -> str:
    """Strip an interface scope suffix (``fe80::1%en0`` → ``fe80::1``)."""
    return address.split("%", 1)[0]


async def probe_endpoint(address: str, port: int, timeout: float = PROBE_TIMEOUT) -> str | None:
    """Open and close one TCP connection; return the peer host, or None."""
    try:
        _reader, writer = await asyncio.wait_for(
            asyncio.open_connection(address, port), timeout)
    except (OSError, asyncio.TimeoutError) as e:
        log.debug("Probe %s:%d failed: %s", address, port, e)
        return None
    try:
        peer = writer.get_extra_info("peername")
    finally:
        writer.close()
    if not peer:
        return None
    return clean_address(str(peer[0]))


Probe = Callable[[str, int], Awaitable[str | None]]


class DeviceDiscovery:
    def __init__(self, *, zeroconf_factory=AsyncZeroconf, probe: Probe = probe_endpoint,
                 timeout: float = DISCOVERY_TIMEOUT):
        self._zeroconf_factory = zeroconf_factory
        self._probe = probe
        self.timeout = timeout
        self.devices: list[Device] = []
        self.searching = False
        self._listeners: list[Callable[["DeviceDiscovery"], None]] = []
        self._session = 0
        self._zc = None
        self._browser = None
        self._timeout_task: asyncio.Task | None = None
        self._resolving: set[asyncio.Task] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    def add_listener(self, callback):
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self):
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                log.exception("Discovery listener failed")

    # ── Lifecycle ──

    async def start(self):
        """Begin a fresh search; stops by itself after ``timeout`` seconds."""
        await self.stop()
        self._loop = asyncio.get_running_loop()
        self._session += 1
        session = self._session

        try:
            self._zc = self._zeroconf_factory()
            self._browser = self._create_browser()
        except (OSError, RuntimeError) as e:
            log.error("Could not start discovery: %s", e)
            await self._close_zeroconf()
            return

        self.devices = []
        self.searching = True
        self._timeout_task = asyncio.create_task(self._auto_stop(session))
        log.info("Searching for %s (%.0fs)", SERVICE_TYPE, self.timeout)
        self._notify()

    def _create_browser(self):
        return AsyncServiceBrowser(self._zc.zeroconf, SERVICE_TYPE,
                                   handlers=[self._on_service_state_change])

    async def _auto_stop(self, session: int):
        await asyncio.sleep(self.timeout)
        if session == self._session:
            log.info("Discovery finished: %d device(s)", len(self.devices))
            await self.stop()

    async def stop(self):
        """Stop searching. Safe before start and when already stopped."""
        task = self._timeout_task
        self._timeout_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        for resolving in list(self._resolving):
            resolving.cancel()
        self._resolving.clear()

        if self._browser is not None:
            browser, self._browser = self._browser, None
            try:
                await browser.async_cancel()
            except (OSError, RuntimeError) as e:
                log.debug("Browser cancel failed: %s", e)
        await self._close_zeroconf()

        if self.searching:
            self.searching = False
            self._notify()

    async def _close_zeroconf(self):
        if self._zc is not None:
            zc, self._zc = self._zc, None
            try:
                await zc.async_close()
            except (OSError, RuntimeError) as e:
                log.debug("Zeroconf close failed: %s", e)

    # ── Browsing ──

    def _on_service_state_change(self, zeroconf, service_type: str, name: str,
                                 state_change: ServiceStateChange):
        if state_change not in (ServiceStateChange.Added, ServiceStateChange.Updated):
            return
        if self._loop is None:
            return
        # zeroconf may call from its own thread
        self._loop.call_soon_threadsafe(self._schedule_resolve, name, self._session)

    def _schedule_resolve(self, name: str, session: int):
        if session != self._session or not self.searching:
            return
        task = asyncio.create_task(self._resolve(name, session))
        self._resolving.add(task)
        task.add_done_callback(self._resolving.discard)

    async def _lookup(self, name: str) -> tuple[list[str], int] | None:
        """mDNS info request: (addresses, port), or None if unresolved."""
        info = AsyncServiceInfo(SERVICE_TYPE, name)
        if not await info.async_request(self._zc.zeroconf, RESOLVE_TIMEOUT_MS):
            return None
        return info.parsed_addresses(), info.port

    async def _resolve(self, name: str, session: int):
        resolved = await self._lookup(name)
        if resolved is None or session != self._session:
            return
        addresses, port = resolved
        device_name = _instance_name(name)
        for address in addresses:
            host = await self._probe(address, port)
            if session != self._session:
                log.debug("Discarding %s from an earlier search", device_name)
                return
            if host:
                self._add(Device(id=f"{host}:{port}", name=device_name,
                                 host=host, port=port))
                return
        log.debug("No reachable address for %s", device_name)

    def _add(self, device: Device):
        if any(d.host == device.host for d in self.devices):
            return
        self.devices.append(device)
        log.info("Found %s at %s", device.display_name, device.id)
        self._notify()


def _instance_name(name: str) -> str:
    # "Living Room._linkplay._tcp.local." → "Living Room"
    suffix = "." + SERVICE_TYPE
    return name[:-len(suffix)] if name.endswith(suffix) else name
