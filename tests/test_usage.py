"""Tests for the promotion usage recorder (in-memory and mocked Redis stores)."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from tripquote.schemas import Promotion, PromotionType, PromotionUsage, Requester
from tripquote.services.usage import (
    REDEEM_SCRIPT, InMemoryUsageStore, PromotionUsageRecorder, RedisUsageStore,
)


def _promo(**kwargs):
    kwargs.setdefault("code", "SPRING")
    kwargs.setdefault("type", PromotionType.PERCENTAGE)
    kwargs.setdefault("value", 20)
    return Promotion(**kwargs)


@pytest.mark.asyncio
async def test_first_redemption_adds_entry():
    """First use should bump the global count and add a usedBy entry."""
    promo = _promo()
    recorder = PromotionUsageRecorder(InMemoryUsageStore())
    now = datetime(2026, 3, 4, 12, 0)

    assert await recorder.record(promo, Requester(user_id="u1"), now) is True
    assert promo.usage_count == 1
    assert len(promo.used_by) == 1
    assert promo.used_by[0].user_id == "u1"
    assert promo.used_by[0].usage_count == 1
    assert promo.used_by[0].last_used_at == now


@pytest.mark.asyncio
async def test_repeat_redemption_increments_entry():
    promo = _promo(limit_per_user=2)
    recorder = PromotionUsageRecorder()
    requester = Requester(client_id="c1")

    await recorder.record(promo, requester, datetime(2026, 3, 4, 12, 0))
    later = datetime(2026, 3, 5, 9, 0)
    assert await recorder.record(promo, requester, later) is True

    assert promo.usage_count == 2
    assert len(promo.used_by) == 1
    assert promo.used_by[0].usage_count == 2
    assert promo.used_by[0].last_used_at == later


@pytest.mark.asyncio
async def test_global_limit_refuses():
    promo = _promo(usage_limit=1)
    recorder = PromotionUsageRecorder()

    assert await recorder.record(promo, Requester(user_id="u1")) is True
    assert await recorder.record(promo, Requester(user_id="u2")) is False
    assert promo.usage_count == 1
    assert len(promo.used_by) == 1


@pytest.mark.asyncio
async def test_per_identity_limit_refuses():
    promo = _promo(limit_per_user=1)
    recorder = PromotionUsageRecorder()

    assert await recorder.record(promo, Requester(user_id="u1")) is True
    assert await recorder.record(promo, Requester(user_id="u1", client_id="c9")) is False
    assert promo.usage_count == 1


@pytest.mark.asyncio
async def test_anonymous_redemption_counts_globally():
    promo = _promo()
    assert await PromotionUsageRecorder().record(promo) is True
    assert promo.usage_count == 1
    assert promo.used_by == []


@pytest.mark.asyncio
async def test_concurrent_redemptions_single_slot():
    """Two simultaneous redemptions with usageLimit=1 → exactly one succeeds."""
    promo = _promo(usage_limit=1)
    recorder = PromotionUsageRecorder()

    results = await asyncio.gather(
        recorder.record(promo, Requester(user_id="u1")),
        recorder.record(promo, Requester(user_id="u2")),
    )
    assert sorted(results) == [False, True]
    assert promo.usage_count == 1


def test_threaded_redemptions_respect_limit():
    """Redemptions from many threads should never exceed the limit."""
    promo = _promo(usage_limit=3)
    recorder = PromotionUsageRecorder()

    def redeem(i):
        return asyncio.run(recorder.record(promo, Requester(user_id=f"u{i}")))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(redeem, range(16)))

    assert results.count(True) == 3
    assert promo.usage_count == 3
    assert len(promo.used_by) == 3


def test_threaded_redemptions_same_user():
    """One identity racing from many threads gets exactly its per-user allowance."""
    promo = _promo(usage_limit=None, limit_per_user=1)
    recorder = PromotionUsageRecorder()

    def redeem(_):
        return asyncio.run(recorder.record(promo, Requester(user_id="u1")))

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(redeem, range(16)))

    assert results.count(True) == 1
    assert promo.usage_count == 1
    assert len(promo.used_by) == 1
    assert promo.used_by[0].user_id == "u1"
    assert promo.used_by[0].usage_count == 1


# ── Redis store ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_redis_redemption_success():
    """Committed counters from the script should be mirrored on the promotion."""
    mock_conn = AsyncMock()
    mock_conn.eval.return_value = [1, 1]
    promo = _promo(usage_limit=10)
    recorder = PromotionUsageRecorder(RedisUsageStore(mock_conn))

    assert await recorder.record(promo, Requester(user_id="u1")) is True
    assert promo.usage_count == 1
    assert promo.used_by[0].user_id == "u1"
    assert promo.used_by[0].usage_count == 1

    args = mock_conn.eval.call_args.args
    assert args[0] == REDEEM_SCRIPT
    assert args[1] == 3
    assert args[2:5] == ("promo:SPRING:usage", "promo:SPRING:identities", "promo:SPRING:entries")
    assert args[5] == "10"          # usage limit
    assert args[6] == "1"           # limit per user
    assert args[7] == "user:u1"
    assert args[8] == ""


@pytest.mark.asyncio
async def test_redis_global_limit_refused():
    mock_conn = AsyncMock()
    mock_conn.eval.return_value = [-1, 0]
    promo = _promo(usage_limit=1)

    assert await RedisUsageStore(mock_conn).try_increment(promo, None, datetime.now()) is None
    assert promo.usage_count == 0


@pytest.mark.asyncio
async def test_redis_identity_limit_refused():
    mock_conn = AsyncMock()
    mock_conn.eval.return_value = [-2, 1]
    promo = _promo(usage_count=1, used_by=[PromotionUsage(client_id="c1")])
    recorder = PromotionUsageRecorder(RedisUsageStore(mock_conn))

    assert await recorder.record(promo, Requester(client_id="c1")) is False
    assert promo.usage_count == 1
    assert promo.used_by[0].usage_count == 1


@pytest.mark.asyncio
async def test_redis_seeds_existing_counts():
    """Existing counters should be passed as seeds; no limit is sent as ''."""
    mock_conn = AsyncMock()
    mock_conn.eval.return_value = [5, 2]
    promo = _promo(
        limit_per_user=3, usage_count=4,
        used_by=[PromotionUsage(user_id="u1", usage_count=1)],
    )

    await RedisUsageStore(mock_conn).try_increment(promo, Requester(user_id="u1"), datetime.now())

    args = mock_conn.eval.call_args.args
    assert args[5] == ""
    assert args[10] == "4"
    assert args[11] == "1"
    assert promo.usage_count == 5
    assert promo.used_by[0].usage_count == 2


@pytest.mark.asyncio
async def test_redis_store_uses_shared_connection():
    """Without an injected client the module-level connection is used."""
    with patch("tripquote.services.usage.get_redis") as mock_get_redis:
        mock_conn = AsyncMock()
        mock_conn.eval.return_value = [1, 0]
        mock_get_redis.return_value = mock_conn

        promo = _promo()
        assert await PromotionUsageRecorder(RedisUsageStore()).record(promo) is True
        mock_conn.eval.assert_called_once()
        assert promo.usage_count == 1
