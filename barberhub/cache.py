"""
Redis caching utilities for the schedule grid and appointment detail
Appointment writes drop their own keys; tenant settings changes drop every grid of the tenant
"""
import json
import logging
from datetime import date
from typing import Any, Optional

from .config import CACHE_ENABLED, CACHE_TTL_SECONDS
from .rate_limiter import get_redis_client

logger = logging.getLogger(__name__)


class Cache:
    """Redis cache wrapper with automatic serialization"""

    def __init__(self, enabled: bool = CACHE_ENABLED):
        self.enabled = enabled
        self.redis_client = None

    def _get_client(self):
        """Lazy load Redis client"""
        if not self.enabled:
            return None
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Redis cache unavailable: {e}")
                return None
        return self.redis_client

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except Exception as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = CACHE_TTL_SECONDS) -> bool:
        """Set value in cache with TTL"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.setex(key, ttl, json.dumps(value, default=str))
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, *keys: str) -> int:
        """Delete exact keys"""
        client = self._get_client()
        if not client or not keys:
            return 0

        try:
            deleted = client.delete(*keys)
            logger.debug(f"✅ Cache DELETE: {', '.join(keys)}")
            return deleted
        except Exception as e:
            logger.error(f"❌ Cache delete error for {keys}: {e}")
            return 0

    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching pattern (e.g., 'appointments:12:*')"""
        client = self._get_client()
        if not client:
            return 0

        try:
            keys = client.keys(pattern)
            if keys:
                deleted = client.delete(*keys)
                logger.debug(f"✅ Cache DELETE pattern: {pattern} ({deleted} keys)")
                return deleted
            return 0
        except Exception as e:
            logger.error(f"❌ Cache delete pattern error for {pattern}: {e}")
            return 0


# Global cache instance
cache = Cache()


# Key builders

def day_grid_key(barbershop_id: int, day: date) -> str:
    return f"appointments:{barbershop_id}:{day.isoformat()}"


def appointment_key(appointment_id: int) -> str:
    return f"appointment:{appointment_id}"


def invalidate_appointment(barbershop_id: int, appointment_id: int, *days: date) -> int:
    """
    Drop the detail entry of one appointment and the grids of the days it touches.

    Pass both the old and the new date when an appointment moves between days.
    """
    keys = [appointment_key(appointment_id)]
    keys.extend(day_grid_key(barbershop_id, d) for d in set(days) if d is not None)
    return cache.delete(*keys)


def invalidate_barbershop_grids(barbershop_id: int) -> int:
    """Drop every cached day grid of a barbershop (hours, interval or staff changed)"""
    return cache.delete_pattern(f"appointments:{barbershop_id}:*")
