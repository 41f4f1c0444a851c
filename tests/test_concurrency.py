"""
Test: timeout, retry and join helpers.
"""
import asyncio
import gc

import pytest
from google.api_core import exceptions as google_exceptions

from app.errors import ExternalTimeout
from app.utils.concurrency import call_with_timeout, gather_all, retry_transient


def test_call_with_timeout_returns_result():
    async def quick():
        return 42

    assert asyncio.run(call_with_timeout(quick(), 1, "quick")) == 42


def test_call_with_timeout_raises_external_timeout():
    with pytest.raises(ExternalTimeout, match="slow call exceeded"):
        asyncio.run(call_with_timeout(asyncio.sleep(1), 0.01, "slow call"))


def test_retry_transient_until_success():
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise google_exceptions.ServiceUnavailable("busy")
        return "ok"

    assert asyncio.run(retry_transient(flaky, 3, 0, "flaky")) == "ok"
    assert len(attempts) == 3


def test_retry_transient_gives_up():
    attempts = []

    async def down():
        attempts.append(1)
        raise ExternalTimeout("timed out")

    with pytest.raises(ExternalTimeout):
        asyncio.run(retry_transient(down, 2, 0, "down"))
    assert len(attempts) == 2


def test_retry_transient_does_not_retry_permanent_errors():
    attempts = []

    async def broken():
        attempts.append(1)
        raise google_exceptions.InvalidArgument("bad")

    with pytest.raises(google_exceptions.InvalidArgument):
        asyncio.run(retry_transient(broken, 5, 0, "broken"))
    assert len(attempts) == 1


def test_gather_all_keys_results():
    async def value(v, delay):
        await asyncio.sleep(delay)
        return v

    result = asyncio.run(gather_all({"a": value(1, 0.02), "b": value(2, 0)}))
    assert result == {"a": 1, "b": 2}


def test_gather_all_cancels_siblings_on_failure():
    finished = []

    async def slow():
        await asyncio.sleep(0.5)
        finished.append("slow")

    async def fail():
        raise RuntimeError("nope")

    async def scenario():
        with pytest.raises(RuntimeError):
            await gather_all({"slow": slow(), "fail": fail()})
        await asyncio.sleep(0.6)

    asyncio.run(scenario())
    assert finished == []


def test_gather_all_waits_for_cancelled_siblings():
    cleaned = []

    async def slow():
        try:
            await asyncio.sleep(1)
        finally:
            cleaned.append("slow")

    async def fail():
        raise RuntimeError("nope")

    async def scenario():
        with pytest.raises(RuntimeError):
            await gather_all({"slow": slow(), "fail": fail()})
        # sibling cleanup has already run by the time the failure surfaces
        assert cleaned == ["slow"]

    asyncio.run(scenario())


def test_gather_all_retrieves_every_sibling_failure():
    unretrieved = []

    async def fail(message, delay):
        await asyncio.sleep(delay)
        raise RuntimeError(message)

    async def scenario():
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: unretrieved.append(context))
        with pytest.raises(RuntimeError, match="first"):
            await gather_all({"a": fail("first", 0), "b": fail("second", 0.01)})
        await asyncio.sleep(0.05)
        gc.collect()

    asyncio.run(scenario())
    assert unretrieved == []


def test_retry_backoff_starts_at_base_delay(monkeypatch):
    waits = []

    async def fake_sleep(seconds):
        waits.append(seconds)

    async def down():
        raise google_exceptions.ServiceUnavailable("busy")

    monkeypatch.setattr("app.utils.concurrency.asyncio.sleep", fake_sleep)
    with pytest.raises(google_exceptions.ServiceUnavailable):
        asyncio.run(retry_transient(down, 4, 2.0, "down"))
    assert waits == [2.0, 4.0, 8.0]
