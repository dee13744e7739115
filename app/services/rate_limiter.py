"""Per-client admission gate for the anonymous booking endpoints.

Fixed-window counters: the first attempt for a key opens a window of
window_seconds; attempts beyond max_attempts inside that window are denied
until it expires. The counter store is pluggable so the limit can be shared
across instances (Redis) or kept per process (memory).
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Protocol

import redis.asyncio as redis
from fastapi import Request

from app.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRecord:
    key: str
    count: int
    reset_at: float


class RateLimitStore(Protocol):
    async def increment(self, key: str, now: float, window_seconds: int) -> RateLimitRecord: ...

    async def get(self, key: str, now: float) -> RateLimitRecord | None: ...

    async def close(self) -> None: ...

class InMemoryRateLimitStore:
    """Process-local counters. Expired records are dropped on a periodic sweep."""

    CLEANUP_INTERVAL_SECONDS = 60

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}
        self._lock = Lock()
        self._last_cleanup = 0.0

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < self.CLEANUP_INTERVAL_SECONDS:
            return
        expired = [k for k, r in self._records.items() if now >= r.reset_at]
        for k in expired:
            del self._records[k]
        if expired:
            logger.debug("Cleaned up %d expired rate limit record(s)", len(expired))
        self._last_cleanup = now

    async def increment(self, key: str, now: float, window_seconds: int) -> RateLimitRecord:
        with self._lock:
            self._cleanup(now)
            record = self._records.get(key)
            if record is None or now >= record.reset_at:
                record = RateLimitRecord(key=key, count=1, reset_at=now + window_seconds)
                self._records[key] = record
            else:
                record.count += 1
            return RateLimitRecord(record.key, record.count, record.reset_at)

    async def get(self, key: str, now: float) -> RateLimitRecord | None:
        with self._lock:
            record = self._records.get(key)
            if record is None or now >= record.reset_at:
                return None
            return RateLimitRecord(record.key, record.count, record.reset_at)

    async def close(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


class RedisRateLimitStore:
    """Counters shared by every instance: INCR, plus EXPIRE when a window opens."""

    def __init__(self, client: redis.Redis, prefix: str = "rate_limit") -> None:
        self._client = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def increment(self, key: str, now: float, window_seconds: int) -> RateLimitRecord:
        redis_key = self._key(key)
        pipe = self._client.pipeline()
        pipe.incr(redis_key)
        pipe.ttl(redis_key)
        count, ttl = await pipe.execute()
        if count == 1 or ttl < 0:
            await self._client.expire(redis_key, window_seconds)
            ttl = window_seconds
        return RateLimitRecord(key=key, count=int(count), reset_at=now + ttl)

    async def get(self, key: str, now: float) -> RateLimitRecord | None:
        redis_key = self._key(key)
        pipe = self._client.pipeline()
        pipe.get(redis_key)
        pipe.ttl(redis_key)
        count, ttl = await pipe.execute()
        if count is None or ttl <= 0:
            return None
        return RateLimitRecord(key=key, count=int(count), reset_at=now + ttl)

    async def close(self) -> None:
        await self._client.aclose()


class AdmissionGate:
    def __init__(
        self,
        store: RateLimitStore,
        max_attempts: int = 5,
        window_seconds: int = 15 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.clock = clock

    async def allow(self, key: str) -> bool:
        record = await self.store.increment(key, self.clock(), self.window_seconds)
        allowed = record.count <= self.max_attempts
        if not allowed:
            logger.warning("Rate limit exceeded for %s (%d attempts)", key, record.count)
        return allowed

    async def time_until_reset(self, key: str) -> float:
        """Seconds until the key's current window closes; 0 when no window is open."""
        now = self.clock()
        record = await self.store.get(key, now)
        if record is None:
            return 0.0
        return max(0.0, record.reset_at - now)

    async def close(self) -> None:
        await self.store.close()


def build_admission_gate(settings: Settings) -> AdmissionGate:
    if settings.rate_limit_backend == "redis":
        if not settings.redis_url:
            raise ValueError("RATE_LIMIT_BACKEND=redis requires REDIS_URL")
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=settings.store_timeout_seconds,
            socket_timeout=settings.store_timeout_seconds,
        )
        store: RateLimitStore = RedisRateLimitStore(client)
        logger.info("Admission gate: Redis-backed counters")
    else:
        store = InMemoryRateLimitStore()
        logger.info("Admission gate: in-memory counters (per process)")
    return AdmissionGate(
        store,
        max_attempts=settings.rate_limit_max_attempts,
        window_seconds=settings.rate_limit_window_seconds,
    )


def client_key(request: Request, trusted_hops: int = 1) -> str:
    """Client address as seen by the outermost trusted proxy, else the socket peer.

    Each proxy appends the address it received the request from, so only the
    last trusted_hops entries of X-Forwarded-For can be relied on; anything to
    their left is client-supplied. With trusted_hops=0 the header is ignored.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and trusted_hops > 0:
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        if hops:
            return hops[-min(trusted_hops, len(hops))]
    return request.client.host if request.client else "unknown"
