"""
Unit tests for batch pacing.
"""
import asyncio

from services.pacing import BatchPacer


class FakeClock:
    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def test_first_dispatch_is_not_delayed():
    clock = FakeClock()
    pacer = BatchPacer(1.0, sleep=clock.sleep, clock=clock)
    asyncio.run(pacer.wait())
    assert clock.sleeps == []
    assert pacer.waits == 0


def test_consecutive_dispatches_are_spaced():
    clock = FakeClock()
    pacer = BatchPacer(1.0, sleep=clock.sleep, clock=clock)

    async def dispatch_three():
        await pacer.wait()
        clock.now += 0.25
        await pacer.wait()
        await pacer.wait()

    asyncio.run(dispatch_three())
    assert clock.sleeps == [0.75, 1.0]
    assert pacer.waits == 2


def test_no_sleep_when_enough_time_has_passed():
    clock = FakeClock()
    pacer = BatchPacer(1.0, sleep=clock.sleep, clock=clock)

    async def dispatch_twice():
        await pacer.wait()
        clock.now += 5.0
        await pacer.wait()

    asyncio.run(dispatch_twice())
    assert clock.sleeps == []


def test_zero_delay_never_sleeps():
    clock = FakeClock()
    pacer = BatchPacer(0, sleep=clock.sleep, clock=clock)

    async def dispatch_twice():
        await pacer.wait()
        await pacer.wait()

    asyncio.run(dispatch_twice())
    assert clock.sleeps == []
