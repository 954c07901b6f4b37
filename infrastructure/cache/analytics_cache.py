"""Analytics view cache on Redis.

Stores one typed pydantic model per key as JSON (model_dump_json), so
entries are debuggable and a hit decodes into exactly the type a cold
computation returns.

The cache is advisory. Every Redis error, timeout or undecodable payload
is logged and treated as a miss; nothing here raises to the caller.
"""

from typing import Awaitable, Callable, Optional, Type, TypeVar

import redis.asyncio as aioredis
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger, should_sample

log = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class AnalyticsCache:
    def __init__(self, redis_client: Optional[aioredis.Redis]) -> None:
        self._redis = redis_client

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    async def get(self, key: str) -> Optional[str]:
        if self._redis is None:
            return None
        try:
            return await self._redis.get(key)
        except Exception as e:
            log.warning("analytics_cache_get_error", key=key, error=str(e))
            return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.setex(key, ttl_seconds, value)
        except Exception as e:
            log.error("analytics_cache_set_error", key=key, error=str(e))

    async def invalidate(self, key: str) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.delete(key)
            log.info("cache_invalidated", key=key, reason="manual_invalidation")
        except Exception as e:
            log.error("analytics_cache_invalidate_error", key=key, error=str(e))

    async def get_model(self, key: str, model: Type[M]) -> Optional[M]:
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except PydanticValidationError as e:
            log.warning(
                "analytics_cache_decode_error",
                key=key,
                model=model.__name__,
                error=str(e),
            )
            return None

    async def set_model(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        await self.set(key, value.model_dump_json(), ttl_seconds)

    async def get_or_compute(
        self,
        key: str,
        model: Type[M],
        ttl_seconds: int,
        compute: Callable[[], Awaitable[M]],
    ) -> M:
        """Return the cached view for *key*, or compute it and write it through.

        Errors raised by *compute* propagate unchanged.
        """
        cached = await self.get_model(key, model)
        if cached is not None:
            if should_sample("cache_operation"):
                log.debug("analytics_cache_hit", key=key)
            return cached

        if should_sample("cache_operation"):
            log.debug("analytics_cache_miss", key=key)

        value = await compute()
        await self.set_model(key, value, ttl_seconds)
        return value
