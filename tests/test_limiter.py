"""Tests for the fixed-window rate limiter."""

import time
from typing import Dict, Optional

import pytest

from fallback_gateway.kv import KeyValueStoreError, MemoryKeyValueStore
from fallback_gateway.limiter import RateLimitExceeded, RateLimiter


class _BrokenStore:
    """Store whose reads and/or writes fail."""

    def __init__(self, fail_get: bool = True, fail_put: bool = True) -> None:
        self.fail_get = fail_get
        self.fail_put = fail_put
        self.data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        if self.fail_get:
            raise KeyValueStoreError("get failed")
        return self.data.get(key)

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        if self.fail_put:
            raise KeyValueStoreError("put failed")
        self.data[key] = value

    async def ping(self) -> bool:
        return False

    async def close(self) -> None:
        return None


@pytest.fixture()
def frozen_time(monkeypatch: pytest.MonkeyPatch) -> Dict[str, float]:
    clock = {"now": 6000.0}
    monkeypatch.setattr(time, "time", lambda: clock["now"])
    return clock


@pytest.mark.asyncio
async def test_sixty_admitted_sixty_first_rejected(frozen_time: Dict[str, float]) -> None:
    """The default budget is 60 requests per 10-minute window."""
    limiter = RateLimiter(store=MemoryKeyValueStore())

    for _ in range(60):
        assert await limiter.admit("client-a") is True

    assert await limiter.admit("client-a") is False
    assert await limiter.admit("client-a") is False


@pytest.mark.asyncio
async def test_rejected_calls_still_count(frozen_time: Dict[str, float]) -> None:
    store = MemoryKeyValueStore()
    limiter = RateLimiter(store=store, requests_per_window=1)

    await limiter.admit("client-a")
    await limiter.admit("client-a")
    await limiter.admit("client-a")

    assert await store.get(limiter.bucket_key("client-a")) == "3"


@pytest.mark.asyncio
async def test_separate_clients_have_independent_limits(
    frozen_time: Dict[str, float],
) -> None:
    limiter = RateLimiter(store=MemoryKeyValueStore(), requests_per_window=1)
    assert await limiter.admit("client-a") is True
    assert await limiter.admit("client-b") is True
    assert await limiter.admit("client-a") is False


@pytest.mark.asyncio
async def test_missing_client_id_uses_anon_bucket(frozen_time: Dict[str, float]) -> None:
    limiter = RateLimiter(store=MemoryKeyValueStore(), requests_per_window=1)

    assert limiter.bucket_key(None) == "rl:anon:10"
    assert await limiter.admit(None) is True
    assert await limiter.admit("") is False
    assert await limiter.admit("anon") is False


@pytest.mark.asyncio
async def test_window_rolls_over(frozen_time: Dict[str, float]) -> None:
    """A new window means a new key, so the count starts again."""
    limiter = RateLimiter(store=MemoryKeyValueStore(), requests_per_window=1)
    assert await limiter.admit("client-a") is True
    assert await limiter.admit("client-a") is False

    frozen_time["now"] = 6600.0
    assert limiter.bucket_key("client-a") == "rl:client-a:11"
    assert await limiter.admit("client-a") is True


@pytest.mark.asyncio
async def test_unparseable_count_treated_as_zero(frozen_time: Dict[str, float]) -> None:
    store = MemoryKeyValueStore()
    limiter = RateLimiter(store=store, requests_per_window=1)
    await store.put(limiter.bucket_key("client-a"), "garbage", 660)

    assert await limiter.admit("client-a") is True
    assert await store.get(limiter.bucket_key("client-a")) == "1"


@pytest.mark.asyncio
async def test_counter_persisted_with_ttl(frozen_time: Dict[str, float]) -> None:
    store = MemoryKeyValueStore()
    limiter = RateLimiter(store=store, ttl_seconds=660)
    await limiter.admit("client-a")

    frozen_time["now"] += 659
    assert await store.get("rl:client-a:10") == "1"
    frozen_time["now"] += 1
    assert await store.get("rl:client-a:10") is None


@pytest.mark.asyncio
async def test_store_failures_do_not_crash() -> None:
    limiter = RateLimiter(store=_BrokenStore(), requests_per_window=1)
    assert await limiter.admit("client-a") is True


@pytest.mark.asyncio
async def test_write_failure_still_enforces_read_count() -> None:
    """A reachable store that refuses writes still blocks an exhausted client."""
    store = _BrokenStore(fail_get=False, fail_put=True)
    limiter = RateLimiter(store=store, requests_per_window=2)
    store.data[limiter.bucket_key("client-a")] = "2"

    assert await limiter.admit("client-a") is False


@pytest.mark.asyncio
async def test_check_raises_when_over_limit(frozen_time: Dict[str, float]) -> None:
    limiter = RateLimiter(store=MemoryKeyValueStore(), requests_per_window=1)
    await limiter.check("client-a")

    with pytest.raises(RateLimitExceeded, match="Request rate exceeded") as exc_info:
        await limiter.check("client-a")
    assert exc_info.value.client_id == "client-a"
