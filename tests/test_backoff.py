import asyncio

import httpx
import pytest

from viralize.utils.backoff import (
    APIError,
    AuthenticationError,
    RateLimiter,
    RateLimitError,
    RetryPolicy,
    TransientUpstreamError,
    raise_for_upstream_status,
)


def _response(status, headers=None):
    return httpx.Response(status, headers=headers, request=httpx.Request("GET", "https://api.test/x"))


def test_status_codes_map_to_error_taxonomy():
    raise_for_upstream_status(_response(200))

    with pytest.raises(RateLimitError) as info:
        raise_for_upstream_status(_response(429, {"Retry-After": "7"}))
    assert info.value.retry_after == 7.0

    with pytest.raises(TransientUpstreamError):
        raise_for_upstream_status(_response(503))
    with pytest.raises(AuthenticationError):
        raise_for_upstream_status(_response(401))

    with pytest.raises(APIError) as info:
        raise_for_upstream_status(_response(404))
    assert not isinstance(info.value, TransientUpstreamError)


class Flaky:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.attempts = 0

    async def __call__(self):
        self.attempts += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def _recording_policy(**kwargs):
    sleeps = []

    async def sleep(seconds):
        sleeps.append(seconds)

    return RetryPolicy(sleep=sleep, **kwargs), sleeps


def test_retries_transient_errors_until_success():
    policy, sleeps = _recording_policy(max_attempts=4, min_wait=1, max_wait=30)
    fn = Flaky([TransientUpstreamError("a"), httpx.ConnectError("b")])
    assert asyncio.run(policy.call(fn)) == "ok"
    assert fn.attempts == 3
    assert len(sleeps) == 2
    assert all(1 <= s <= 30 for s in sleeps)


def test_rate_limit_waits_longer_window():
    policy, sleeps = _recording_policy(max_attempts=3, rate_limit_wait=15, rate_limit_jitter=5)
    fn = Flaky([RateLimitError("429"), RateLimitError("429", retry_after=3)])
    asyncio.run(policy.call(fn))
    assert 15 <= sleeps[0] <= 20
    assert sleeps[1] == 3


def test_retry_after_is_capped():
    policy, sleeps = _recording_policy(max_attempts=2, max_rate_limit_wait=60)
    asyncio.run(policy.call(Flaky([RateLimitError("429", retry_after=3600)])))
    assert sleeps == [60]


def test_exhausted_retries_reraise_last_error():
    policy, _ = _recording_policy(max_attempts=3)
    fn = Flaky([TransientUpstreamError(str(i)) for i in range(5)])
    with pytest.raises(TransientUpstreamError, match="2"):
        asyncio.run(policy.call(fn))
    assert fn.attempts == 3


def test_permanent_errors_are_not_retried():
    policy, sleeps = _recording_policy(max_attempts=5)
    fn = Flaky([AuthenticationError("401")])
    with pytest.raises(AuthenticationError):
        asyncio.run(policy.call(fn))
    assert fn.attempts == 1
    assert sleeps == []


def test_rate_limiter_counts_requests_per_endpoint():
    now = [100.0]
    limiter = RateLimiter(clock=lambda: now[0])
    limiter.set_limit("api", requests=3, period_seconds=60)

    async def run():
        for _ in range(2):
            assert await limiter.wait_if_needed("api") == 0.0

    asyncio.run(run())
    assert limiter.get_remaining("api") == 1

    now[0] += 61
    asyncio.run(limiter.wait_if_needed("api"))
    assert limiter.get_remaining("api") == 2

    limiter.reset("api")
    assert limiter.get_remaining("api") == 3


def test_unknown_endpoint_uses_default_limit():
    limiter = RateLimiter()
    assert limiter.get_remaining("otro") == 60
