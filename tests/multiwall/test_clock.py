import asyncio

import pytest

from multiwall.clock import AsyncioScheduler, ManualClock, SystemClock


def test_system_clock_is_wall_time_in_ms():
    import time

    before = time.time() * 1000
    now = SystemClock().now()
    after = time.time() * 1000
    assert before <= now <= after


def test_manual_clock_fires_in_due_order_at_due_time():
    clock = ManualClock(start=1000)
    seen = []
    clock.call_later(300, lambda: seen.append(("b", clock.now())))
    clock.call_later(100, lambda: seen.append(("a", clock.now())))
    clock.call_later(300, lambda: seen.append(("c", clock.now())))

    fired = clock.advance(500)

    assert fired == 3
    assert seen == [("a", 1100), ("b", 1300), ("c", 1300)]
    assert clock.now() == 1500


def test_manual_clock_cancelled_handles_do_not_fire():
    clock = ManualClock()
    seen = []
    handle = clock.call_later(10, lambda: seen.append("x"))
    handle.cancel()
    assert clock.pending == 0
    clock.advance(100)
    assert seen == []


def test_callbacks_scheduled_from_callbacks_fire_in_the_same_advance():
    clock = ManualClock()
    seen = []

    def repeat():
        seen.append(clock.now())
        clock.call_later(100, repeat)

    clock.call_later(100, repeat)
    clock.advance(350)
    assert seen == [100, 200, 300]


def test_jump_moves_time_without_firing():
    clock = ManualClock()
    seen = []
    clock.call_later(100, lambda: seen.append(clock.now()))

    clock.jump(1000)
    assert seen == []
    assert clock.pending == 1

    # overdue callbacks run at the current time
    assert clock.run_due() == 1
    assert seen == [1000]


@pytest.mark.asyncio
async def test_asyncio_scheduler_runs_callback_on_loop():
    scheduler = AsyncioScheduler()
    done = asyncio.Event()
    scheduler.call_later(1, done.set)
    await asyncio.wait_for(done.wait(), timeout=1)


@pytest.mark.asyncio
async def test_asyncio_scheduler_handle_can_be_cancelled():
    scheduler = AsyncioScheduler()
    seen = []
    handle = scheduler.call_later(5, lambda: seen.append(1))
    handle.cancel()
    await asyncio.sleep(0.02)
    assert seen == []
