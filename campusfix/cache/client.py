import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from campusfix.core.config import settings

logger = logging.getLogger(__name__)

# Создаем Redis-клиент; соединение открывается при первом запросе
redis_client = redis.Redis(host=settings.REDIS_HOST, port=settings.REDIS_PORT, db=0, decode_responses=True)


async def get_cache(key: str) -> Optional[Any]:
    """
    Получает данные из кэша по ключу. Недоступный Redis считается промахом кэша.
    """
    if not settings.CACHE_ENABLED:
        return None
    try:
        data = await redis_client.get(key)
    except RedisError as e:
        logger.warning(f"Redis unavailable, cache miss for {key}: {e}")
        return None
    if data:
        return json.loads(data)
    return None


async def set_cache(key: str, value: Any, expires: int = 3600) -> bool:
    """
    Устанавливает данные в кэш с указанным временем жизни (по умолчанию 1 час)
    """
    if not settings.CACHE_ENABLED:
        return False
    try:
        return bool(await redis_client.set(key, json.dumps(value, default=str), ex=expires))
    except RedisError as e:
        logger.warning(f"Failed to write cache key {key}: {e}")
        return False


async def delete_cache(key: str) -> bool:
    """
    Удаляет данные из кэша по ключу
    """
    if not settings.CACHE_ENABLED:
        return False
    try:
        return bool(await redis_client.delete(key))
    except RedisError as e:
        logger.warning(f"Failed to delete cache key {key}: {e}")
        return False


async def invalidate_pattern(pattern: str) -> int:
    """
    Удаляет все ключи, соответствующие шаблону
    """
    if not settings.CACHE_ENABLED:
        return 0
    try:
        keys = [key async for key in redis_client.scan_iter(match=pattern)]
        if keys:
            return await redis_client.delete(*keys)
    except RedisError as e:
        logger.warning(f"Failed to invalidate cache pattern {pattern}: {e}")
    return 0


async def close_cache() -> None:
    await redis_client.aclose()
