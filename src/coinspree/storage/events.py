"""ATH event log and per-user notification history."""
import asyncio
from datetime import datetime

from redis.asyncio import Redis

from coinspree.schemas import ATHEvent, UserNotificationLogEntry
from coinspree.storage.kv import Keys, reading, to_hash, writing
from coinspree.utils import to_ms


class EventStore:
    """Persists ATH events and the append-only per-user audit trail.

    Layout: ``event:{id}`` hash, ``events:timeline`` sorted set of event ids
    scored by ``sent_at`` (ms), ``user:{id}:notifications`` sorted set of JSON
    log entries scored by ``sent_at``.
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def save(self, event: ATHEvent) -> None:
        with writing(f"event {event.id}"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(Keys.event(event.id), mapping=to_hash(event))
                pipe.zadd(Keys.EVENTS_TIMELINE, {event.id: to_ms(event.sent_at)})
                await pipe.execute()

    async def get(self, event_id: str) -> ATHEvent | None:
        with reading(f"event {event_id}"):
            data = await self._redis.hgetall(Keys.event(event_id))
        return ATHEvent.model_validate(data) if data else None

    async def update_recipient_count(self, event_id: str, count: int) -> None:
        with writing(f"event {event_id}"):
            await self._redis.hset(Keys.event(event_id), "recipient_count", str(count))

    async def get_since(self, since: datetime) -> list[ATHEvent]:
        """Events with ``sent_at >= since``, oldest first."""
        with reading("event timeline"):
            ids = await self._redis.zrangebyscore(Keys.EVENTS_TIMELINE, to_ms(since), "+inf")
        return await self._load_many(ids)

    async def append_user_log(self, entry: UserNotificationLogEntry) -> None:
        member = entry.model_dump_json()
        with writing(f"notification log of {entry.user_id}"):
            await self._redis.zadd(
                Keys.user_notifications(entry.user_id), {member: to_ms(entry.sent_at)}
            )

    async def get_user_log(self, user_id: str, limit: int = 50) -> list[UserNotificationLogEntry]:
        """Newest-first audit entries for one user."""
        with reading(f"notification log of {user_id}"):
            members = await self._redis.zrevrange(Keys.user_notifications(user_id), 0, limit - 1)
        return [UserNotificationLogEntry.model_validate_json(m) for m in members]

    async def get_user_history(self, user_id: str, limit: int = 50) -> list[ATHEvent]:
        """Events a user was notified about, newest first."""
        entries = await self.get_user_log(user_id, limit)
        return await self._load_many([e.notification_id for e in entries])

    async def delete_before(self, cutoff: datetime) -> int:
        """Drop events older than cutoff. Returns the number removed."""
        with reading("event timeline"):
            ids = await self._redis.zrangebyscore(Keys.EVENTS_TIMELINE, "-inf", to_ms(cutoff))
        if not ids:
            return 0
        with writing("event timeline"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(*(Keys.event(i) for i in ids))
                pipe.zrem(Keys.EVENTS_TIMELINE, *ids)
                await pipe.execute()
        return len(ids)

    async def _load_many(self, ids: list[str]) -> list[ATHEvent]:
        with reading("events"):
            rows = await asyncio.gather(*(self._redis.hgetall(Keys.event(i)) for i in ids))
        return [ATHEvent.model_validate(row) for row in rows if row]
