"""Read access to accounts and subscriptions owned by other subsystems."""
import asyncio
import logging
import secrets

from pydantic import ValidationError
from redis.asyncio import Redis

from coinspree.schemas import Subscription, User
from coinspree.storage.kv import Keys, reading, to_hash, writing
from coinspree.utils import utcnow

logger = logging.getLogger(__name__)

UNSUBSCRIBE_TOKEN_TTL_SECONDS = 365 * 24 * 60 * 60


class UserDirectory:
    """Account and billing records as the pipeline sees them.

    Layout: ``user:{id}`` hash, ``users:all`` set of ids,
    ``user:subscription:{user_id}`` pointer to the current ``subscription:{id}``
    hash. The save_* methods exist for the owning subsystems and fixtures.
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def list_all_users(self) -> list[User]:
        with reading("user index"):
            ids = sorted(await self._redis.smembers(Keys.USERS_ALL))
            rows = await asyncio.gather(*(self._redis.hgetall(Keys.user(i)) for i in ids))
        users: list[User] = []
        for user_id, row in zip(ids, rows):
            if not row:
                continue
            try:
                users.append(User.model_validate({**row, "id": user_id}))
            except ValidationError as exc:
                logger.warning("Skipping malformed user record %s: %s", user_id, exc)
        return users

    async def get_user(self, user_id: str) -> User | None:
        with reading(f"user {user_id}"):
            row = await self._redis.hgetall(Keys.user(user_id))
        return User.model_validate({**row, "id": user_id}) if row else None

    async def get_subscription(self, user_id: str) -> Subscription | None:
        """The user's current subscription, or None."""
        with reading(f"subscription of {user_id}"):
            subscription_id = await self._redis.get(Keys.user_subscription(user_id))
            if not subscription_id:
                return None
            row = await self._redis.hgetall(Keys.subscription(subscription_id))
        if not row:
            return None
        return Subscription.model_validate({**row, "id": subscription_id})

    async def save_user(self, user: User) -> None:
        with writing(f"user {user.id}"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(Keys.user(user.id), mapping=to_hash(user))
                pipe.sadd(Keys.USERS_ALL, user.id)
                await pipe.execute()

    async def save_subscription(self, subscription: Subscription) -> None:
        """Store a subscription and make it the user's current one."""
        with writing(f"subscription {subscription.id}"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(Keys.subscription(subscription.id), mapping=to_hash(subscription))
                pipe.set(Keys.user_subscription(subscription.user_id), subscription.id)
                await pipe.execute()

    async def get_or_create_unsubscribe_token(self, user_id: str) -> str:
        with reading(f"unsubscribe token of {user_id}"):
            existing = await self._redis.get(Keys.user_unsubscribe_token(user_id))
        if existing:
            return existing

        token = secrets.token_urlsafe(24)
        with writing(f"unsubscribe token of {user_id}"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(
                    Keys.unsubscribe(token),
                    mapping={"token": token, "user_id": user_id, "created_at": utcnow().isoformat()},
                )
                pipe.expire(Keys.unsubscribe(token), UNSUBSCRIBE_TOKEN_TTL_SECONDS)
                pipe.set(Keys.user_unsubscribe_token(user_id), token)
                await pipe.execute()
        return token
