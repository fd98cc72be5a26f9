"""Redis cache service for composed itineraries and provider availability responses."""

import gzip
import hashlib
import json
import logging
from typing import Any

import redis.asyncio as redis

from awardroute.config import settings

logger = logging.getLogger(__name__)

ROUTE_ID_SET = "availability_v2_routeids"


def _digest(params: Any) -> str:
    payload = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode()).hexdigest()


def compress(value: Any) -> bytes:
    return gzip.compress(json.dumps(value, default=str).encode("utf-8"))


def decompress(raw: bytes) -> Any:
    return json.loads(gzip.decompress(raw).decode("utf-8"))


class CacheService:
    """Redis-backed cache of gzip-compressed JSON blobs."""

    def __init__(self, client: redis.Redis | None = None):
        self._redis: redis.Redis | None = client

    async def _get_redis(self) -> redis.Redis | None:
        if self._redis is None:
            try:
                self._redis = redis.from_url(settings.redis_url, decode_responses=False)
                await self._redis.ping()
            except Exception as e:
                logger.warning(f"Redis unavailable, cache disabled: {e}")
                self._redis = None
                return None
        return self._redis

    async def get(self, key: str) -> Any | None:
        """Get a value from cache. Returns None on miss or error."""
        try:
            r = await self._get_redis()
            if r is None:
                return None
            raw = await r.get(key)
            if raw is None:
                logger.debug(f"Cache miss {key}")
                return None
            logger.debug(f"Cache hit {key}")
            return decompress(raw)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        """Set a value in cache with TTL. Returns False on error."""
        try:
            r = await self._get_redis()
            if r is None:
                return False
            await r.set(key, compress(value), ex=ttl)
            return True
        except Exception as e:
            logger.error(f"Cache write failed for {key}: {e}")
            return False

    async def add_route_id(self, route_id: str) -> bool:
        """Record an issued query identifier (best effort)."""
        try:
            r = await self._get_redis()
            if r is None:
                return False
            await r.sadd(ROUTE_ID_SET, route_id)
            await r.expire(ROUTE_ID_SET, settings.availability_cache_ttl_seconds)
            return True
        except Exception as e:
            logger.warning(f"Failed to record route id {route_id}: {e}")
            return False

    # Typed helpers

    def itinerary_key(
        self,
        origin: str,
        destination: str,
        max_stop: int,
        start_date: str,
        end_date: str,
        cabin: str | None,
        carriers: str | None,
        min_reliability_percent: float,
        seats: int = 1,
    ) -> str:
        digest = _digest({
            "origin": origin,
            "destination": destination,
            "maxStop": max_stop,
            "startDate": start_date,
            "endDate": end_date,
            "cabin": cabin,
            "carriers": carriers,
            "minReliabilityPercent": min_reliability_percent,
            "seats": seats,
        })
        return f"build-itins:{origin}:{destination}:{digest}"

    def availability_key(
        self,
        route_id: str,
        start_date: str,
        end_date: str,
        cabin: str | None,
        carriers: str | None,
        seats: int,
    ) -> str:
        digest = _digest({
            "routeId": route_id,
            "startDate": start_date,
            "endDate": end_date,
            "cabin": cabin,
            "carriers": carriers,
            "seats": seats,
        })
        return f"availability-v2-response:{digest}"

    async def get_itineraries(self, key: str) -> dict | None:
        return await self.get(key)

    async def set_itineraries(self, key: str, data: dict) -> bool:
        return await self.set(key, data, settings.itinerary_cache_ttl_seconds)

    async def get_availability(self, key: str) -> dict | None:
        return await self.get(key)

    async def set_availability(self, key: str, data: dict) -> bool:
        return await self.set(key, data, settings.availability_cache_ttl_seconds)

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None


cache_service = CacheService()
