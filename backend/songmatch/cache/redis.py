from __future__ import annotations

import json
import logging
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..core.config import Settings

logger = logging.getLogger("cache")


def create_redis(settings: Settings) -> Redis:
    return Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


def recommendation_cache_key(track_id: str, mode: str, limit: int) -> str:
    return f"recommendations:{track_id}:{mode}:{limit}"


async def cache_get_json(redis: Optional[Redis], key: str) -> Optional[Any]:
    if redis is None:
        return None
    try:
        raw = await redis.get(key)
    except RedisError as exc:
        logger.warning("Cache read failed for %s: %s", key, exc)
        return None
    if raw is None:
        return None
    return json.loads(raw)


async def cache_set_json(redis: Optional[Redis], key: str, value: Any, *, ttl: int) -> None:
    if redis is None or ttl <= 0:
        return
    try:
        await redis.set(name=key, value=json.dumps(value), ex=ttl)
    except RedisError as exc:
        logger.warning("Cache write failed for %s: %s", key, exc)
