import asyncio
import time

from fixture_io.timer import Timer


async def test_zero_sleep_has_elapsed() -> None:
    calls = []
    sleep = Timer().sleep(0, callback=lambda: calls.append(None))
    assert sleep.poll()
    assert sleep.remaining() == 0
    assert sleep.handle is None
    await asyncio.sleep(0.01)
    assert calls == []


async def test_sleep_calls_back() -> None:
    done = asyncio.Event()
    sleep = Timer().sleep(0.02, callback=done.set)
    assert not sleep.poll()
    assert 0 < sleep.remaining() <= 0.02
    async with asyncio.timeout(1):
        await done.wait()
    assert sleep.poll()
    assert sleep.remaining() == 0


async def test_cancelled_sleep_does_not_call_back() -> None:
    calls = []
    sleep = Timer(loop=asyncio.get_running_loop()).sleep(
        0.01, callback=lambda: calls.append(None)
    )
    sleep.cancel()
    await asyncio.sleep(0.05)
    assert calls == []
    # Polling still reports the elapsed time
    assert sleep.poll()


def test_sleep_without_event_loop() -> None:
    sleep = Timer().sleep(0.02)
    assert sleep.loop is None
    assert sleep.handle is None
    assert not sleep.poll()
    assert 0 < sleep.remaining() <= 0.02
    time.sleep(0.03)
    assert sleep.poll()
    assert sleep.remaining() == 0
