import asyncio

from wiimctl.lib.poller import Poller


async def _yield(times=3):
    for _ in range(times):
        await asyncio.sleep(0)


class Recorder:
    def __init__(self):
        self.applied = []
        self.failures = []

    def apply(self, result):
        self.applied.append(result)

    def fail(self, error):
        self.failures.append(error)


async def test_poll_applies_result():
    rec = Recorder()

    async def fetch():
        return "status"

    poller = Poller(fetch, rec.apply, rec.fail)
    assert await poller.poll_once() is True
    assert rec.applied == ["status"]
    assert rec.failures == []


async def test_poll_failure_goes_to_fail_callback():
    rec = Recorder()
    error = RuntimeError("down")

    async def fetch():
        raise error

    poller = Poller(fetch, rec.apply, rec.fail)
    assert await poller.poll_once() is True
    assert rec.failures == [error]
    assert rec.applied == []


async def test_periodic_tick_skipped_while_in_flight():
    rec = Recorder()
    gate = asyncio.Event()

    async def fetch():
        await gate.wait()
        return "slow"

    poller = Poller(fetch, rec.apply, rec.fail)
    first = asyncio.create_task(poller.poll_once())
    await _yield()
    assert poller.in_flight
    assert await poller.poll_once() is False

    gate.set()
    assert await first is True
    assert rec.applied == ["slow"]


async def test_forced_poll_supersedes_in_flight_cycle():
    rec = Recorder()
    gate = asyncio.Event()
    values = iter(["stale", "fresh"])

    async def fetch():
        value = next(values)
        if value == "stale":
            await gate.wait()
        return value

    poller = Poller(fetch, rec.apply, rec.fail)
    slow = asyncio.create_task(poller.poll_once())
    await _yield()
    assert await poller.poll_once(force=True) is True

    gate.set()
    assert await slow is False
    assert rec.applied == ["fresh"]


async def test_stop_discards_late_result():
    rec = Recorder()
    gate = asyncio.Event()
    started = asyncio.Event()

    async def fetch():
        started.set()
        await gate.wait()
        return "late"

    poller = Poller(fetch, rec.apply, rec.fail, interval=10)
    poller.start()
    await asyncio.wait_for(started.wait(), 1)
    poller.stop()
    assert not poller.running

    gate.set()
    await _yield(10)
    assert rec.applied == []


async def test_start_polls_immediately_then_on_interval():
    rec = Recorder()
    count = 0

    async def fetch():
        nonlocal count
        count += 1
        return count

    poller = Poller(fetch, rec.apply, rec.fail, interval=0.01)
    poller.start()
    await asyncio.sleep(0.1)
    poller.stop()
    assert rec.applied[:2] == [1, 2]


def test_stop_before_start_is_safe():
    poller = Poller(lambda: None, lambda r: None, lambda e: None)
    poller.stop()
    poller.stop()
    assert not poller.running
