"""Short-lived cache of ranked market data, plus a last-good copy."""
import logging

from pydantic import TypeAdapter
from redis.asyncio import Redis
from redis.exceptions import RedisError

from coinspree.schemas import CryptoAsset
from coinspree.storage.kv import Keys

logger = logging.getLogger(__name__)

_assets = TypeAdapter(list[CryptoAsset])


class MarketCache:
    """Read-through cache entries keyed by requested rank range.

    ``market:ranked:{start}-{end}`` expires after ``ttl_seconds``;
    ``...:last_good`` never expires and backs stale fallbacks. Cache failures
    never fail a fetch: reads degrade to a miss, writes are logged.
    """

    def __init__(self, redis: Redis, ttl_seconds: int = 60) -> None:
        self._redis = redis
        self._ttl = ttl_seconds

    async def get_fresh(self, range_start: int, range_end: int) -> list[CryptoAsset] | None:
        return await self._load(Keys.market_ranked(range_start, range_end))

    async def get_last_good(self, range_start: int, range_end: int) -> list[CryptoAsset] | None:
        return await self._load(f"{Keys.market_ranked(range_start, range_end)}:last_good")

    async def put(self, range_start: int, range_end: int, assets: list[CryptoAsset]) -> None:
        key = Keys.market_ranked(range_start, range_end)
        payload = _assets.dump_json(assets).decode()
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(key, payload, ex=self._ttl)
                pipe.set(f"{key}:last_good", payload)
                await pipe.execute()
        except RedisError as exc:
            logger.error("Failed to cache market data %s: %s", key, exc)

    async def clear(self, range_start: int, range_end: int) -> None:
        await self._redis.delete(Keys.market_ranked(range_start, range_end))

    async def _load(self, key: str) -> list[CryptoAsset] | None:
        try:
            raw = await self._redis.get(key)
        except RedisError as exc:
            logger.warning("Market cache read failed for %s: %s", key, exc)
            return None
        if not raw:
            return None
        return _assets.validate_json(raw)
