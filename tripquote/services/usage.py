"""
Promotion Usage Recorder — atomic redemption counters.

A redemption increments the global usage count and the requester's
per-identity count in one indivisible step, and only while both are
below their limits:
  - InMemoryUsageStore: per-code lock around check-and-increment
  - RedisUsageStore: single Lua script (shared across processes)
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import redis.asyncio as aioredis

from tripquote.config import settings
from tripquote.schemas import Promotion, PromotionUsage, Requester

logger = logging.getLogger(__name__)

_redis: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Singleton Redis connection."""
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


@dataclass
class UsageSnapshot:
    usage_count: int
    identity_count: int | None = None


class UsageStore(Protocol):
    async def try_increment(
        self, promotion: Promotion, requester: Requester | None, now: datetime,
    ) -> UsageSnapshot | None: ...


def _has_identity(requester: Requester | None) -> bool:
    return requester is not None and not requester.is_anonymous


def _mirror(
    promotion: Promotion, requester: Requester | None, snapshot: UsageSnapshot, now: datetime,
) -> None:
    """Copy committed counters onto the promotion object."""
    promotion.usage_count = snapshot.usage_count
    if not _has_identity(requester) or snapshot.identity_count is None:
        return
    usage = promotion.find_usage(requester)
    if usage is None:
        promotion.used_by.append(PromotionUsage(
            user_id=requester.user_id,
            client_id=requester.client_id,
            usage_count=snapshot.identity_count,
            last_used_at=now,
        ))
    else:
        usage.usage_count = snapshot.identity_count
        usage.last_used_at = now


class InMemoryUsageStore:
    """The promotion object itself is the state; a per-code lock makes updates atomic."""

    def __init__(self):
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, code: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(code, threading.Lock())

    async def try_increment(
        self, promotion: Promotion, requester: Requester | None, now: datetime,
    ) -> UsageSnapshot | None:
        with self._lock_for(promotion.code):
            if promotion.usage_limit is not None and promotion.usage_count >= promotion.usage_limit:
                return None
            identity_count = None
            if _has_identity(requester):
                usage = promotion.find_usage(requester)
                current = usage.usage_count if usage else 0
                if current >= promotion.limit_per_user:
                    return None
                identity_count = current + 1

            snapshot = UsageSnapshot(promotion.usage_count + 1, identity_count)
            _mirror(promotion, requester, snapshot, now)
            return snapshot


# KEYS: usage hash, identity index hash, entry hash
# ARGV: usage_limit ("" = none), limit_per_user, user key, client key, now,
#       seed usage count, seed identity count
REDEEM_SCRIPT = """
redis.call('HSETNX', KEYS[1], 'count', ARGV[6])
local count = tonumber(redis.call('HGET', KEYS[1], 'count'))
local limit = tonumber(ARGV[1])
if limit and count >= limit then
  return {-1, 0}
end
local user_key = ARGV[3]
local client_key = ARGV[4]
local entry = false
if user_key ~= '' then entry = redis.call('HGET', KEYS[2], user_key) end
if (not entry) and client_key ~= '' then entry = redis.call('HGET', KEYS[2], client_key) end
if (not entry) and (user_key ~= '' or client_key ~= '') then
  entry = tostring(redis.call('HINCRBY', KEYS[1], 'entries', 1))
  if user_key ~= '' then redis.call('HSET', KEYS[2], user_key, entry) end
  if client_key ~= '' then redis.call('HSET', KEYS[2], client_key, entry) end
  redis.call('HSET', KEYS[3], entry .. ':count', ARGV[7])
end
local identity_count = 0
if entry then
  identity_count = tonumber(redis.call('HGET', KEYS[3], entry .. ':count') or '0')
  if identity_count >= tonumber(ARGV[2]) then
    return {-2, identity_count}
  end
end
count = redis.call('HINCRBY', KEYS[1], 'count', 1)
if entry then
  identity_count = redis.call('HINCRBY', KEYS[3], entry .. ':count', 1)
  redis.call('HSET', KEYS[3], entry .. ':last_used', ARGV[5])
end
return {count, identity_count}
"""

REFUSED_GLOBAL = -1
REFUSED_IDENTITY = -2


class RedisUsageStore:
    """Counters live in Redis; the Lua script runs atomically on the server."""

    def __init__(self, redis: aioredis.Redis | None = None, prefix: str = "promo"):
        self._redis = redis
        self.prefix = prefix

    async def _conn(self) -> aioredis.Redis:
        return self._redis if self._redis is not None else await get_redis()

    def keys(self, code: str) -> list[str]:
        base = f"{self.prefix}:{code}"
        return [f"{base}:usage", f"{base}:identities", f"{base}:entries"]

    async def try_increment(
        self, promotion: Promotion, requester: Requester | None, now: datetime,
    ) -> UsageSnapshot | None:
        r = await self._conn()
        existing = promotion.find_usage(requester)
        user_key = f"user:{requester.user_id}" if requester and requester.user_id else ""
        client_key = f"client:{requester.client_id}" if requester and requester.client_id else ""

        result = await r.eval(
            REDEEM_SCRIPT,
            3,
            *self.keys(promotion.code),
            "" if promotion.usage_limit is None else str(promotion.usage_limit),
            str(promotion.limit_per_user),
            user_key,
            client_key,
            now.isoformat(),
            str(promotion.usage_count),
            str(existing.usage_count if existing else 0),
        )
        count, identity_count = int(result[0]), int(result[1])
        if count in (REFUSED_GLOBAL, REFUSED_IDENTITY):
            return None

        snapshot = UsageSnapshot(count, identity_count if _has_identity(requester) else None)
        _mirror(promotion, requester, snapshot, now)
        return snapshot


class PromotionUsageRecorder:
    def __init__(self, store: UsageStore | None = None):
        self.store = store or InMemoryUsageStore()

    async def record(
        self,
        promotion: Promotion,
        requester: Requester | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Record one redemption.

        Returns False (and changes nothing) when the global or
        per-identity limit has already been reached.
        """
        snapshot = await self.store.try_increment(promotion, requester, now or datetime.now())
        if snapshot is None:
            logger.warning("Redemption refused, limit reached: code=%s", promotion.code)
            return False
        logger.info(
            "Promotion redeemed: code=%s usage_count=%s identity_count=%s",
            promotion.code, snapshot.usage_count, snapshot.identity_count,
        )
        return True
