"""Redis connection, key layout and hash encoding shared by the stores."""
import json
from collections.abc import Iterator
from contextlib import contextmanager

from pydantic import BaseModel
from redis.asyncio import Redis
from redis.exceptions import RedisError

from coinspree.providers.core.exceptions import StorageReadError, StorageWriteError


def create_redis(url: str) -> Redis:
    """Create an async Redis client returning ``str`` values."""
    return Redis.from_url(url, decode_responses=True)


class Keys:
    """Every KV key the pipeline touches."""

    USERS_ALL = "users:all"
    EVENTS_TIMELINE = "events:timeline"
    EMAIL_QUEUE = "email:queue"
    EMAIL_PROCESSING = "email:processing"
    EMAIL_FAILED_PATTERN = "email:failed:*"
    EMAILS_ALL = "emails:all"
    ATH_STATS = "ath:stats"

    @staticmethod
    def asset(asset_id: str) -> str:
        return f"asset:{asset_id}"

    @staticmethod
    def asset_last_notified(asset_id: str) -> str:
        return f"asset:{asset_id}:lastNotified"

    @staticmethod
    def event(event_id: str) -> str:
        return f"event:{event_id}"

    @staticmethod
    def user(user_id: str) -> str:
        return f"user:{user_id}"

    @staticmethod
    def user_subscription(user_id: str) -> str:
        return f"user:subscription:{user_id}"

    @staticmethod
    def subscription(subscription_id: str) -> str:
        return f"subscription:{subscription_id}"

    @staticmethod
    def user_notifications(user_id: str) -> str:
        return f"user:{user_id}:notifications"

    @staticmethod
    def user_emails(user_id: str) -> str:
        return f"user:{user_id}:emails"

    @staticmethod
    def user_unsubscribe_token(user_id: str) -> str:
        return f"user:{user_id}:unsubscribe_token"

    @staticmethod
    def unsubscribe(token: str) -> str:
        return f"unsubscribe:{token}"

    @staticmethod
    def email_failed(job_id: str) -> str:
        return f"email:failed:{job_id}"

    @staticmethod
    def email_delivery(log_id: str) -> str:
        return f"email:delivery:{log_id}"

    @staticmethod
    def market_ranked(range_start: int, range_end: int) -> str:
        return f"market:ranked:{range_start}-{range_end}"

    @staticmethod
    def ath_detection(detected_ms: int, asset_id: str) -> str:
        return f"ath:detection:{detected_ms}:{asset_id}"

    @staticmethod
    def ath_coin_stats(asset_id: str) -> str:
        return f"ath:coin_stats:{asset_id}"

    @staticmethod
    def ath_hourly(hour: int) -> str:
        return f"ath:hourly:{hour}"


def _encode(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def to_hash(model: BaseModel, exclude: set[str] | None = None) -> dict[str, str]:
    """Flatten a model into Redis hash fields. None values are omitted."""
    data = model.model_dump(mode="json", exclude=exclude, exclude_none=True)
    return {key: _encode(value) for key, value in data.items()}


@contextmanager
def reading(what: str) -> Iterator[None]:
    """Translate Redis failures inside the block into StorageReadError."""
    try:
        yield
    except RedisError as exc:
        raise StorageReadError(f"Failed to read {what}: {exc}") from exc


@contextmanager
def writing(what: str) -> Iterator[None]:
    """Translate Redis failures inside the block into StorageWriteError."""
    try:
        yield
    except RedisError as exc:
        raise StorageWriteError(f"Failed to write {what}: {exc}") from exc
