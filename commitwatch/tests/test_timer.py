import asyncio
import pytest

from commitwatch.orchestrator.timer import IntervalTimer, SingleFlight


@pytest.mark.asyncio
async def test_single_flight_drops_while_busy():
    gate = asyncio.Event()
    runs = []

    async def work():
        runs.append(1)
        await gate.wait()
        return "done"

    sf = SingleFlight(work)
    first = asyncio.create_task(sf.run())
    await asyncio.sleep(0)
    assert sf.busy
    assert await sf.run() is None
    assert sf.dropped == 1
    gate.set()
    assert await first == "done"
    assert runs == [1]
    assert await sf.run() == "done"


def test_delay_aligns_to_interval_multiples():
    t = IntervalTimer(300, lambda: None, clock=lambda: 1000.0)
    assert t._delay_to_next() == pytest.approx(200.0)
    t = IntervalTimer(300, lambda: None, clock=lambda: 1200.0)
    assert t._delay_to_next() == pytest.approx(300.0)
    t = IntervalTimer(300, lambda: None, align=False, clock=lambda: 1000.0)
    assert t._delay_to_next() == 300.0


@pytest.mark.asyncio
async def test_fires_immediately_then_on_interval():
    ticks = []
    timer = None

    async def on_tick():
        ticks.append(1)
        if len(ticks) == 3:
            timer.stop()

    timer = IntervalTimer(0.01, on_tick, align=False)
    await asyncio.wait_for(timer.run(), timeout=5)
    await timer.drain(1.0)
    assert len(ticks) == 3


@pytest.mark.asyncio
async def test_no_immediate_fire_when_disabled():
    ticks = []

    async def on_tick():
        ticks.append(1)

    timer = IntervalTimer(60, on_tick, run_immediately=False, align=False)
    task = asyncio.create_task(timer.run())
    await asyncio.sleep(0.01)
    timer.stop()
    await task
    assert ticks == []


@pytest.mark.asyncio
async def test_drain_cancels_ticks_past_grace():
    cancelled = []

    async def on_tick():
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.append(1)
            raise

    timer = IntervalTimer(60, on_tick, align=False)
    task = asyncio.create_task(timer.run())
    await asyncio.sleep(0.01)
    timer.stop()
    await task
    assert len(timer.in_flight) == 1
    await timer.drain(0.01)
    assert cancelled == [1]
    assert timer.in_flight == set()
