"""Historical ATH state per asset."""
from datetime import datetime

from redis.asyncio import Redis

from coinspree.schemas import StoredAssetState
from coinspree.storage.kv import Keys, reading, to_hash, writing
from coinspree.utils import parse_timestamp


class AssetStateStore:
    """Persists the last known ATH and last notification time of each asset.

    Layout: ``asset:{id}`` hash for the ATH record and
    ``asset:{id}:lastNotified`` string (ISO timestamp) for the cooldown.
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def get(self, asset_id: str) -> StoredAssetState | None:
        """Stored state, or None on first observation."""
        with reading(f"state of {asset_id}"):
            data = await self._redis.hgetall(Keys.asset(asset_id))
            if not data:
                return None
            last_notified = await self._redis.get(Keys.asset_last_notified(asset_id))
        state = StoredAssetState.model_validate({**data, "asset_id": asset_id})
        state.last_notified_at = parse_timestamp(last_notified)
        return state

    async def save(self, state: StoredAssetState) -> None:
        with writing(f"state of {state.asset_id}"):
            await self._redis.hset(
                Keys.asset(state.asset_id),
                mapping=to_hash(state, exclude={"asset_id", "last_notified_at"}),
            )

    async def get_last_notified(self, asset_id: str) -> datetime | None:
        with reading(f"last notification of {asset_id}"):
            raw = await self._redis.get(Keys.asset_last_notified(asset_id))
        return parse_timestamp(raw)

    async def set_last_notified(self, asset_id: str, when: datetime) -> None:
        with writing(f"last notification of {asset_id}"):
            await self._redis.set(Keys.asset_last_notified(asset_id), when.isoformat())
