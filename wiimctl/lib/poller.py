# wiimctl
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Fixed-interval refresh loop shared by every media source.

One Poller drives one source: an immediate cycle on start, then one cycle
every ``interval`` seconds.  Cycles are serialized — a periodic tick is
skipped while the previous fetch is still in flight, and an explicit
``poll_once(force=True)`` (used after commands) supersedes it so a slow,
older result can never overwrite a fresher one.

Stopping abandons the in-flight fetch without interrupting it; its result
is discarded when it finally lands.

Usage:
    poller = Poller(source.fetch, source.apply_result, source.apply_failure)
    poller.start()
    await poller.poll_once(force=True)
    poller.stop()
"""

import asyncio
import logging
from typing import Awaitable, Callable

log = logging.getLogger(__name__)

POLL_INTERVAL = 2.0  # seconds


class Poller:
    def __init__(self, fetch: Callable[[], Awaitable], apply: Callable,
                 fail: Callable[[Exception], None], *,
                 interval: float = POLL_INTERVAL, name: str = "poller"):
        self._fetch = fetch
        self._apply = apply
        self._fail = fail
        self.interval = interval
        self.name = name
        self._task: asyncio.Task | None = None
        self._token: object | None = None
        self._cycle = 0
        self._inflight: asyncio.Future | None = None

    @property
    def running(self) -> bool:
        return self._token is not None

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def start(self):
        """Begin polling: one cycle now, then every ``interval`` seconds."""
        if self.running:
            return
        token = self._token = object()
        self._task = asyncio.create_task(self._loop(token))
        log.info("%s: polling every %.1fs", self.name, self.interval)

    def stop(self):
        """Cancel the periodic task; late results are discarded. Idempotent."""
        if self._token is None and self._task is None:
            return
        self._token = None
        self._cycle += 1
        self._inflight = None
        if self._task is not None:
            self._task.cancel()
            self._task = None
        log.info("%s: polling stopped", self.name)

    async def _loop(self, token: object):
        while self._token is token:
            await self.poll_once()
            await asyncio.sleep(self.interval)

    async def poll_once(self, *, force: bool = False) -> bool:
        """Run one cycle. Returns True if its outcome was applied."""
        if self.in_flight and not force:
            log.debug("%s: previous cycle still in flight, skipping", self.name)
            return False

        self._cycle += 1
        cycle = self._cycle
        token = self._token
        fetch = asyncio.ensure_future(self._fetch())
        fetch.add_done_callback(_consume_result)
        self._inflight = fetch

        try:
            # shield: cancelling the loop abandons the request, it doesn't abort it
            result = await asyncio.shield(fetch)
        except Exception as e:
            if not self._current(cycle, token):
                return False
            log.debug("%s: poll failed: %s", self.name, e)
            self._fail(e)
            return True
        finally:
            if self._inflight is fetch:
                self._inflight = None

        if not self._current(cycle, token):
            log.debug("%s: discarding stale cycle %d", self.name, cycle)
            return False
        self._apply(result)
        return True

    def _current(self, cycle: int, token: object | None) -> bool:
        return cycle == self._cycle and token is self._token


def _consume_result(fut: asyncio.Future):
    # Abandoned fetches must not log "exception was never retrieved"
    if not fut.cancelled():
        fut.exception()
