"""
Fixed-window rate limiting for public endpoints
Counters live in Redis so every worker shares them; when Redis is disabled or
unreachable the window is counted in process memory instead
"""

import logging
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request

from .config import REDIS_ENABLED, REDIS_URL

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None

# {key: (count, window_ends_at)}
memory_cache: dict[str, tuple[int, int]] = {}
cache_lock = Lock()


def _mask_url(redis_url: str) -> str:
    if "@" in redis_url:
        url_parts = redis_url.split("@")
        protocol = url_parts[0].split(":")[0]
        return f"{protocol}:****@{url_parts[1]}"
    return redis_url


def get_redis_client() -> Optional[redis.Redis]:
    """Shared Redis connection for rate limits and the cache; None when disabled"""
    global redis_client

    if not REDIS_ENABLED:
        return None

    if redis_client is None:
        logger.info(f"📡 Connecting to Redis at {_mask_url(REDIS_URL)}")
        client = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=10,
            health_check_interval=30,
        )
        try:
            client.ping()
        except redis.RedisError as e:
            logger.error(f"❌ Failed to connect to Redis: {e}")
            raise
        redis_client = client
        logger.info("✅ Redis connected")

    return redis_client


def _count_in_redis(client: redis.Redis, key: str, window_seconds: int) -> tuple[int, int]:
    pipe = client.pipeline()
    pipe.incr(key)
    pipe.ttl(key)
    count, ttl = pipe.execute()
    if ttl < 0:
        client.expire(key, window_seconds)
        ttl = window_seconds
    return int(count), int(ttl)


def _count_in_memory(key: str, window_seconds: int) -> tuple[int, int]:
    now = int(time.time())
    with cache_lock:
        count, ends_at = memory_cache.get(key, (0, 0))
        if now >= ends_at:
            count, ends_at = 0, now + window_seconds
            for stale in [k for k, (_, end) in memory_cache.items() if end <= now]:
                del memory_cache[stale]
        count += 1
        memory_cache[key] = (count, ends_at)
    return count, ends_at - now


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: Optional[redis.Redis] = None
) -> tuple[bool, int, int]:
    """Count one hit against the window; returns (is_allowed, count, ttl_seconds)"""
    if client is not None:
        try:
            count, ttl = _count_in_redis(client, key, window_seconds)
            return count <= limit, count, ttl
        except redis.RedisError as e:
            logger.warning(f"⚠️ Redis counter failed for {key}, counting in memory: {e}")
    count, ttl = _count_in_memory(key, window_seconds)
    return count <= limit, count, ttl


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit"):
    """
    Build a per-IP rate limit dependency

    Example usage:
        review_rate_limit = create_rate_limiter(limit=5, window_seconds=3600, key_prefix="public_review")

        @router.post("/review/{slug}")
        async def submit_review(slug: str, _: None = Depends(review_rate_limit)):
            ...
    """

    async def rate_limiter(request: Request):
        try:
            client = get_redis_client()
        except redis.RedisError:
            client = None

        key = f"{key_prefix}:{_client_ip(request)}"
        is_allowed, count, ttl = check_rate_limit(key, limit, window_seconds, client)
        if not is_allowed:
            logger.warning(f"🚫 Rate limit exceeded for {key}: {count}/{limit}")
            raise HTTPException(
                status_code=429,
                detail={
                    "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                    "retry_after": ttl,
                },
                headers={"Retry-After": str(ttl)},
            )

    return rate_limiter
