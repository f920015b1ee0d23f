import asyncio

import pytest

from stepflow.autosave import AutoSaveScheduler


@pytest.mark.asyncio
async def test_scheduler_saves_periodically():
    ticks = []

    async def save() -> bool:
        ticks.append(1)
        return True

    scheduler = AutoSaveScheduler(save, interval_ms=5, name="test")
    scheduler.start()
    assert scheduler.running is True

    await asyncio.sleep(0.05)
    await scheduler.stop()

    assert scheduler.running is False
    assert len(ticks) >= 2
    count = len(ticks)
    await asyncio.sleep(0.02)
    assert len(ticks) == count


@pytest.mark.asyncio
async def test_failing_tick_keeps_schedule_alive():
    ticks = []

    async def save() -> bool:
        ticks.append(1)
        raise OSError("disk full")

    scheduler = AutoSaveScheduler(save, interval_ms=5)
    scheduler.start()
    await asyncio.sleep(0.05)

    assert scheduler.running is True
    assert len(ticks) >= 2
    await scheduler.stop()


@pytest.mark.asyncio
async def test_stop_without_start_is_noop():
    async def save() -> bool:
        return True

    scheduler = AutoSaveScheduler(save, interval_ms=1000)
    await scheduler.stop()
    assert scheduler.running is False
