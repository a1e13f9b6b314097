#!/usr/bin/env python3
"""Tests for the windowed rate limiter.

Tests verify that:
1. Requests beyond the limit in one window are denied
2. Counting restarts with each new window
3. Store failures and missing configuration allow the request
4. Allowed requests leave an audit record; denied ones do not
"""
import json

import pytest

from vatfix.services.rate_limiter import RateLimiter, RateLimiterConfig, utc_day, window_start
from vatfix.tests.utils import FakeClock, FlakyStore

WINDOW = 1_714_557_600_000  # 2024-05-01T10:00:00Z in ms
METER_KEY = f"meter/2024-05-01/key_1/{WINDOW}.json"


def _audit_keys(store):
    return [k for k in store.keys() if k.startswith("logs/")]


def test_window_start_floors_to_window():
    assert window_start(WINDOW + 59_999, 60_000) == WINDOW
    assert window_start(WINDOW + 60_000, 60_000) == WINDOW + 60_000


def test_utc_day():
    assert utc_day(WINDOW) == "2024-05-01"


class TestCounting:
    @pytest.mark.asyncio
    async def test_limit_then_deny(self, store, rate_limiter):
        verdicts = [await rate_limiter.check_and_increment("key_1") for _ in range(4)]

        assert [v.allowed for v in verdicts] == [True, True, True, False]
        assert [v.remaining for v in verdicts] == [2, 1, 0, 0]
        assert verdicts[3].reason == "rate_limit_exceeded"

        doc = json.loads(await store.get(METER_KEY))
        assert doc == {"window": WINDOW, "count": 4, "limit": 3, "apiKey": "key_1"}
        await rate_limiter.drain()

    @pytest.mark.asyncio
    async def test_new_window_resets_count(self, rate_limiter, clock):
        for _ in range(4):
            await rate_limiter.check_and_increment("key_1")
        clock.advance(60)

        verdict = await rate_limiter.check_and_increment("key_1")

        assert verdict.allowed is True
        assert verdict.remaining == 2
        await rate_limiter.drain()

    @pytest.mark.asyncio
    async def test_keys_are_counted_separately(self, rate_limiter):
        for _ in range(3):
            await rate_limiter.check_and_increment("key_1")

        verdict = await rate_limiter.check_and_increment("key_2")

        assert verdict.allowed is True
        assert verdict.remaining == 2
        await rate_limiter.drain()

    @pytest.mark.asyncio
    async def test_caller_key_is_sanitized(self, store, rate_limiter):
        await rate_limiter.check_and_increment("sk/../live key")
        await rate_limiter.drain()

        assert f"meter/2024-05-01/sk_.._live_key/{WINDOW}.json" in store.keys()


class TestDisabledAndDegraded:
    @pytest.mark.asyncio
    async def test_disabled_without_store(self, clock):
        limiter = RateLimiter(None, RateLimiterConfig(limit=1), clock=clock)

        for _ in range(5):
            verdict = await limiter.check_and_increment("key_1")
            assert verdict.allowed is True
            assert verdict.remaining is None
        assert limiter.enabled is False

    @pytest.mark.asyncio
    async def test_missing_caller_key_is_not_limited(self, store, rate_limiter):
        verdict = await rate_limiter.check_and_increment("")

        assert verdict.allowed is True
        assert verdict.remaining is None
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_read_failure_fails_open(self, clock):
        limiter = RateLimiter(FlakyStore(fail_get=True), RateLimiterConfig(limit=1), clock=clock)

        verdict = await limiter.check_and_increment("key_1")

        assert verdict.allowed is True
        assert verdict.remaining is None
        assert limiter.pending_writes == 0

    @pytest.mark.asyncio
    async def test_write_failure_still_allows(self, clock):
        store = FlakyStore(fail_put=True)
        limiter = RateLimiter(store, RateLimiterConfig(limit=3), clock=clock)

        verdict = await limiter.check_and_increment("key_1", identifier="123")
        await limiter.drain()

        assert verdict.allowed is True
        assert verdict.remaining == 2
        assert store.keys() == []


class TestAudit:
    @pytest.mark.asyncio
    async def test_allowed_request_is_audited(self, store, rate_limiter):
        await rate_limiter.check_and_increment(
            "key_1", email="Jane@Example.COM", country_code="DE", identifier="12345678912"
        )
        await rate_limiter.drain()

        key = "logs/2024-05-01/2024-05-01T10-00-00.000Z_12345678912.json"
        assert _audit_keys(store) == [key]
        record = json.loads(await store.get(key))
        assert record == {
            "t": "2024-05-01T10-00-00.000Z",
            "apiKey": "key_1",
            "email": "jane@example.com",
            "countryCode": "DE",
            "vatNumber": "12345678912",
        }
        assert rate_limiter.pending_writes == 0

    @pytest.mark.asyncio
    async def test_denied_request_is_not_audited(self, store):
        clock = FakeClock()
        limiter = RateLimiter(store, RateLimiterConfig(limit=2), clock=clock)

        for _ in range(3):
            await limiter.check_and_increment("key_1", identifier="12345678912")
            clock.advance(1)
        await limiter.drain()

        assert len(_audit_keys(store)) == 2

    @pytest.mark.asyncio
    async def test_unknown_identifier_in_audit_key(self, store, rate_limiter):
        await rate_limiter.check_and_increment("key_1")
        await rate_limiter.drain()

        assert _audit_keys(store) == ["logs/2024-05-01/2024-05-01T10-00-00.000Z_unknown.json"]
