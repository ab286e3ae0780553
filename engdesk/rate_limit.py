from __future__ import annotations

import time
from dataclasses import dataclass

import redis
from redis.asyncio import from_url as redis_from_url

from engdesk.config import settings
from engdesk.errors import RateLimited
from engdesk.logging import get_logger

log = get_logger(__name__)


@dataclass
class _Bucket:
  reset_at: float
  count: int


class RateLimiter:
  """
  Fixed-window rate limiter.

  Uses Redis when `redis_url` is configured so limits hold across replicas;
  otherwise counts in process memory. Expired in-memory windows are swept
  on every hit, so distinct keys do not accumulate.
  """

  def __init__(self, redis_url: str | None = None, *, sweep_interval_seconds: float = 30.0) -> None:
    self._buckets: dict[str, _Bucket] = {}
    self._sweep_interval = sweep_interval_seconds
    self._next_sweep = 0.0
    self._redis = redis_from_url(redis_url, encoding="utf-8", decode_responses=True) if redis_url else None

  async def hit(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    """
    if self._redis is not None:
      try:
        return await self._hit_redis(key, limit=limit, window_seconds=window_seconds)
      except redis.RedisError as exc:
        log.warning("rate_limit_redis_unavailable", error=str(exc))
    return self._hit_memory(key, limit=limit, window_seconds=window_seconds, now=time.time())

  def _hit_memory(self, key: str, *, limit: int, window_seconds: int, now: float) -> tuple[bool, int]:
    # Event-loop only; nothing is awaited between read and write.
    self._sweep(now)
    b = self._buckets.get(key)
    if b is None or now >= b.reset_at:
      self._buckets[key] = _Bucket(reset_at=now + window_seconds, count=1)
      return True, 0
    if b.count >= limit:
      retry = max(1, int(b.reset_at - now))
      return False, retry
    b.count += 1
    return True, 0

  def _sweep(self, now: float) -> None:
    if now < self._next_sweep:
      return
    self._next_sweep = now + self._sweep_interval
    for k in [k for k, b in self._buckets.items() if now >= b.reset_at]:
      del self._buckets[k]

  async def _hit_redis(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    rk = f"rl:{key}"
    async with self._redis.pipeline(transaction=True) as pipe:
      pipe.incr(rk, 1)
      pipe.ttl(rk)
      count, ttl = await pipe.execute()
    if int(count) == 1 or int(ttl) < 0:
      await self._redis.expire(rk, int(window_seconds))
      ttl = int(window_seconds)
    if int(count) > int(limit):
      return False, max(1, int(ttl))
    return True, 0

  async def check(self, key: str, *, limit: int, window_seconds: int) -> None:
    allowed, retry_after = await self.hit(key, limit=limit, window_seconds=window_seconds)
    if not allowed:
      raise RateLimited(retry_after)

  def reset_prefix(self, prefix: str) -> None:
    for k in list(self._buckets.keys()):
      if k.startswith(prefix):
        del self._buckets[k]


limiter = RateLimiter(settings.redis_url)
