import asyncio

import pytest

from estate_bot.geo_service.debounce import Debouncer
from estate_bot.geo_service.errors import SupersededError


@pytest.mark.asyncio
async def test_only_the_last_call_runs():
    ran = []

    def call(value):
        async def run():
            ran.append(value)
            return value

        return run

    debouncer = Debouncer(delay=0.05)
    first = debouncer.schedule(call("a"))
    second = debouncer.schedule(call("b"))

    with pytest.raises(SupersededError):
        await first.result()
    assert await second.result() == "b"
    assert ran == ["b"]
    assert not first.is_valid
    assert not first.started


@pytest.mark.asyncio
async def test_started_call_finishes_but_its_result_is_dropped():
    gate = asyncio.Event()
    finished = []

    async def slow():
        await gate.wait()
        finished.append("slow")
        return "slow"

    async def fast():
        return "fast"

    debouncer = Debouncer(delay=0)
    first = debouncer.schedule(slow)
    await asyncio.sleep(0.01)
    assert first.started

    second = debouncer.schedule(fast)
    assert await second.result() == "fast"

    gate.set()
    with pytest.raises(SupersededError):
        await first.result()
    assert finished == ["slow"]


@pytest.mark.asyncio
async def test_late_failure_of_a_stale_call_is_superseded():
    gate = asyncio.Event()

    async def failing():
        await gate.wait()
        raise RuntimeError("provider exploded")

    async def fine():
        return 42

    debouncer = Debouncer(delay=0)
    stale = debouncer.schedule(failing)
    await asyncio.sleep(0.01)
    current = debouncer.schedule(fine)
    gate.set()

    with pytest.raises(SupersededError):
        await stale.result()
    assert await current.result() == 42


@pytest.mark.asyncio
async def test_failure_of_the_current_call_propagates():
    async def failing():
        raise RuntimeError("boom")

    debouncer = Debouncer(delay=0)
    handle = debouncer.schedule(failing)
    with pytest.raises(RuntimeError):
        await handle.result()


@pytest.mark.asyncio
async def test_cancel_pending_invalidates_the_current_handle():
    async def call():
        return "never"

    debouncer = Debouncer(delay=0.05)
    handle = debouncer.schedule(call)
    debouncer.cancel_pending()

    assert debouncer.current is None
    with pytest.raises(SupersededError):
        await handle.result()
