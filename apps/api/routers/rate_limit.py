"""Fixed-window request quotas for sign-in and support endpoints."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Tuple

from fastapi import HTTPException, Request
import redis.asyncio as redis

from config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "nexus:quota"

# key -> (hits in window, window end)
_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def _caller(request: Request) -> str:
    # Socket peer first; the forwarded header is client-controlled.
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


async def _count_in_redis(key: str, window_seconds: int) -> Tuple[int, int]:
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        async with client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, window_seconds, nx=True)
            pipe.ttl(key)
            hits, _, ttl = await pipe.execute()
    finally:
        await client.aclose()
    return int(hits), max(int(ttl), 1)


async def _count_locally(key: str, window_seconds: int) -> Tuple[int, int]:
    now = time.time()
    async with _local_lock:
        hits, window_end = _local_counters.get(key, (0, now + window_seconds))
        if now >= window_end:
            hits, window_end = 0, now + window_seconds
        hits += 1
        _local_counters[key] = (hits, window_end)
    return hits, max(int(window_end - now), 1)


def rate_limit(scope: str, limit: int, window_seconds: int) -> Callable:
    """Dependency that allows ``limit`` calls per caller per window for one endpoint scope."""

    async def _dependency(request: Request) -> None:
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        key = f"{KEY_PREFIX}:{scope}:{_caller(request)}"
        try:
            hits, retry_after = await _count_in_redis(key, window_seconds)
        except (redis.RedisError, OSError) as exc:
            logger.debug("Redis unavailable for quota %s (%s); counting in process", scope, exc)
            hits, retry_after = await _count_locally(key, window_seconds)

        if hits > limit:
            logger.info("Quota %s exhausted for %s", scope, key)
            raise HTTPException(
                status_code=429,
                detail="Too many requests. Please try again later.",
                headers={"Retry-After": str(retry_after)},
            )

    return _dependency
