import asyncio

import pytest

from vrm_resolver.single_flight import SingleFlight


async def test_concurrent_calls_share_one_execution():
    flight = SingleFlight()
    calls = 0

    async def work():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return {"value": calls}

    results = await asyncio.gather(*(flight.do("k", work) for _ in range(10)))
    assert calls == 1
    assert all(r is results[0] for r in results)
    await flight.drain()
    assert flight.pending == 0


async def test_different_keys_do_not_share():
    flight = SingleFlight()
    seen = []

    async def work(key):
        seen.append(key)
        await asyncio.sleep(0)
        return key

    a, b = await asyncio.gather(flight.do("a", lambda: work("a")), flight.do("b", lambda: work("b")))
    assert (a, b) == ("a", "b")
    assert sorted(seen) == ["a", "b"]


async def test_exception_reaches_every_waiter_and_releases_token():
    flight = SingleFlight()

    async def boom():
        await asyncio.sleep(0.01)
        raise RuntimeError("upstream down")

    results = await asyncio.gather(*(flight.do("k", boom) for _ in range(3)), return_exceptions=True)
    assert all(isinstance(r, RuntimeError) for r in results)
    await flight.drain()
    assert not flight.in_flight("k")


async def test_token_held_until_completion_hook_finishes():
    flight = SingleFlight()
    hook_started = asyncio.Event()
    release_hook = asyncio.Event()
    written = []

    async def work():
        return "profile"

    async def on_complete(result):
        hook_started.set()
        await release_hook.wait()
        written.append(result)

    assert await flight.do("k", work, on_complete=on_complete) == "profile"
    await hook_started.wait()
    assert flight.in_flight("k")

    release_hook.set()
    await flight.drain()
    assert written == ["profile"]
    assert not flight.in_flight("k")


async def test_failing_hook_still_releases_token():
    flight = SingleFlight()

    async def work():
        return 1

    async def bad_hook(result):
        raise OSError("disk full")

    assert await flight.do("k", work, on_complete=bad_hook) == 1
    await flight.drain()
    assert not flight.in_flight("k")


async def test_cancelled_waiter_does_not_cancel_shared_work():
    flight = SingleFlight()
    finished = asyncio.Event()

    async def work():
        await asyncio.sleep(0.02)
        finished.set()
        return "done"

    first = asyncio.create_task(flight.do("k", work))
    second = asyncio.create_task(flight.do("k", work))
    await asyncio.sleep(0)
    first.cancel()

    assert await second == "done"
    with pytest.raises(asyncio.CancelledError):
        await first
    assert finished.is_set()
