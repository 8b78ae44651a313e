"""Email delivery log."""
from redis.asyncio import Redis

from coinspree.schemas.emails import EmailDeliveryLog
from coinspree.storage.kv import Keys, reading, to_hash, writing
from coinspree.utils import to_ms


class DeliveryLogStore:
    """One hash per provider send attempt, indexed per user and globally."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def save(self, log: EmailDeliveryLog) -> None:
        score = to_ms(log.sent_at)
        with writing(f"delivery log {log.id}"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(Keys.email_delivery(log.id), mapping=to_hash(log))
                pipe.zadd(Keys.user_emails(log.user_id), {log.id: score})
                pipe.zadd(Keys.EMAILS_ALL, {log.id: score})
                await pipe.execute()

    async def get_user_history(self, user_id: str, limit: int = 50) -> list[EmailDeliveryLog]:
        with reading(f"email history of {user_id}"):
            ids = await self._redis.zrevrange(Keys.user_emails(user_id), 0, limit - 1)
            rows = [await self._redis.hgetall(Keys.email_delivery(i)) for i in ids]
        return [EmailDeliveryLog.model_validate(row) for row in rows if row]
