"""
Tests for services.resilient_caller: failure classification and the
bounded linear-backoff retry loop.
"""
import asyncio

import pytest

from services.resilient_caller import (
    CallError,
    CallErrorKind,
    ResilientCaller,
    classify_failure,
)


class ScriptedRequest:
    """Fails with the queued exceptions, then answers"""

    def __init__(self, *failures, answer="ok"):
        self.failures = list(failures)
        self.answer = answer
        self.payloads = []

    async def __call__(self, payload):
        self.payloads.append(payload)
        if self.failures:
            raise self.failures.pop(0)
        return self.answer


QUOTA = Exception("429 Resource has been exhausted (e.g. check quota).")


@pytest.mark.parametrize(
    "error, kind",
    [
        (Exception("429 Too Many Requests"), CallErrorKind.RATE_LIMITED),
        (Exception("RESOURCE_EXHAUSTED"), CallErrorKind.RATE_LIMITED),
        (Exception("You exceeded your current quota"), CallErrorKind.RATE_LIMITED),
        (Exception("400 API key not valid. Please pass a valid API key."), CallErrorKind.AUTH_FAILURE),
        (Exception("403 PERMISSION_DENIED"), CallErrorKind.AUTH_FAILURE),
        (RuntimeError("API_KEY not configured"), CallErrorKind.AUTH_FAILURE),
        (ValueError("Response blocked. Finish reason: SAFETY"), CallErrorKind.CONTENT_BLOCKED),
        (ConnectionError("connection reset by peer"), CallErrorKind.UNKNOWN),
    ],
)
def test_classify_failure(error, kind):
    assert classify_failure(error) is kind


async def test_first_attempt_success_does_not_wait(fake_sleep):
    request = ScriptedRequest(answer="hello")
    caller = ResilientCaller(request, sleep=fake_sleep)

    assert await caller.call("hi") == "hello"
    assert fake_sleep.waits == []
    assert request.payloads == ["hi"]


async def test_rate_limit_retries_with_linear_backoff(fake_sleep):
    request = ScriptedRequest(QUOTA, QUOTA, answer="finally")
    caller = ResilientCaller(request, sleep=fake_sleep)

    assert await caller.call("hi", max_attempts=3) == "finally"
    assert fake_sleep.waits == [3.0, 6.0]
    assert len(request.payloads) == 3


async def test_rate_limit_exhausts_attempts(fake_sleep):
    request = ScriptedRequest(QUOTA, QUOTA, QUOTA)
    caller = ResilientCaller(request, sleep=fake_sleep)

    with pytest.raises(CallError) as exc_info:
        await caller.call("hi", max_attempts=3)

    assert exc_info.value.kind is CallErrorKind.RATE_LIMITED
    assert exc_info.value.attempts == 3
    assert fake_sleep.waits == [3.0, 6.0]


async def test_auth_failure_is_not_retried(fake_sleep):
    request = ScriptedRequest(Exception("API key not valid"))
    caller = ResilientCaller(request, sleep=fake_sleep)

    with pytest.raises(CallError) as exc_info:
        await caller.call("hi", max_attempts=3)

    assert exc_info.value.kind is CallErrorKind.AUTH_FAILURE
    assert exc_info.value.attempts == 1
    assert fake_sleep.waits == []


@pytest.mark.parametrize(
    "error, kind",
    [
        (ValueError("Response blocked by safety filters"), CallErrorKind.CONTENT_BLOCKED),
        (OSError("network unreachable"), CallErrorKind.UNKNOWN),
    ],
)
async def test_other_failures_surface_immediately(fake_sleep, error, kind):
    request = ScriptedRequest(error)
    caller = ResilientCaller(request, sleep=fake_sleep)

    with pytest.raises(CallError) as exc_info:
        await caller.call("hi")

    assert exc_info.value.kind is kind
    assert str(error) in exc_info.value.detail
    assert len(request.payloads) == 1


async def test_rate_limit_then_auth_failure_stops(fake_sleep):
    request = ScriptedRequest(QUOTA, Exception("401 UNAUTHENTICATED"))
    caller = ResilientCaller(request, sleep=fake_sleep)

    with pytest.raises(CallError) as exc_info:
        await caller.call("hi", max_attempts=5)

    assert exc_info.value.kind is CallErrorKind.AUTH_FAILURE
    assert exc_info.value.attempts == 2
    assert fake_sleep.waits == [3.0]


async def test_single_attempt_never_waits(fake_sleep):
    caller = ResilientCaller(ScriptedRequest(QUOTA), sleep=fake_sleep)

    with pytest.raises(CallError):
        await caller.call("hi", max_attempts=1)
    assert fake_sleep.waits == []


async def test_invalid_max_attempts(fake_sleep):
    caller = ResilientCaller(ScriptedRequest(), sleep=fake_sleep)

    with pytest.raises(ValueError):
        await caller.call("hi", max_attempts=0)


async def test_custom_backoff(fake_sleep):
    request = ScriptedRequest(QUOTA, QUOTA, QUOTA)
    caller = ResilientCaller(request, sleep=fake_sleep, backoff_seconds=0.5)

    assert await caller.call("hi", max_attempts=4) == "ok"
    assert fake_sleep.waits == [0.5, 1.0, 1.5]


async def test_concurrent_calls_are_independent(fake_sleep):
    caller = ResilientCaller(ScriptedRequest(QUOTA, answer="shared"), sleep=fake_sleep)

    results = await asyncio.gather(caller.call("a"), caller.call("b"))

    assert sorted(results) == ["shared", "shared"]
    assert fake_sleep.waits == [3.0]


async def test_cancellation_propagates():
    started = asyncio.Event()

    async def hang(payload):
        started.set()
        await asyncio.sleep(3600)

    caller = ResilientCaller(hang)
    task = asyncio.create_task(caller.call("hi"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
