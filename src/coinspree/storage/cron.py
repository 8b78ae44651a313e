"""Bookkeeping for externally scheduled ticks."""
from redis.asyncio import Redis

from coinspree.storage.kv import reading, writing

DETECTION_PREFIX = "cron:"
EMAIL_PREFIX = "cron:email_"


class CronStatusStore:
    """Last-run markers per tick kind, e.g. ``cron:last_run`` / ``cron:email_last_run``."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def record(self, prefix: str, values: dict[str, object]) -> None:
        with writing("cron status"):
            await self._redis.mset({f"{prefix}{name}": str(value) for name, value in values.items()})

    async def get(self, prefix: str, names: tuple[str, ...]) -> dict[str, str | None]:
        with reading("cron status"):
            values = await self._redis.mget([f"{prefix}{name}" for name in names])
        return dict(zip(names, values))
