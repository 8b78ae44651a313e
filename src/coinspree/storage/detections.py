"""Detection audit trail and accuracy statistics."""
from datetime import datetime

from redis.asyncio import Redis

from coinspree.schemas import ATHKind, DetectedEvent
from coinspree.storage.kv import Keys, reading, writing
from coinspree.utils import to_ms

DETECTION_TTL_SECONDS = 90 * 24 * 60 * 60
HOURLY_TTL_SECONDS = 25 * 60 * 60


class DetectionTracker:
    """Records every notified detection for later accuracy analysis.

    Writes ``ath:detection:{ms}:{id}`` (kept 90 days), running totals in
    ``ath:stats`` and ``ath:coin_stats:{id}``, and an hour-of-day counter
    ``ath:hourly:{hour}`` (kept 25 hours).
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def track(self, detected: DetectedEvent, now: datetime) -> None:
        asset = detected.asset
        detected_ms = to_ms(now)
        # Missed peaks happened somewhere inside the last poll interval.
        latency_seconds = 300 if detected.kind is ATHKind.MISSED else 0
        key = Keys.ath_detection(detected_ms, asset.id)
        coin_key = Keys.ath_coin_stats(asset.id)
        hourly_key = Keys.ath_hourly(now.hour)

        with writing(f"detection of {asset.id}"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(
                    key,
                    mapping={
                        "coin_id": asset.id,
                        "coin_symbol": asset.symbol,
                        "previous_ath": str(detected.previous_ath),
                        "new_ath": str(detected.new_ath),
                        "detection_type": detected.kind.value,
                        "detection_latency": str(latency_seconds),
                        "timestamp": now.isoformat(),
                    },
                )
                pipe.expire(key, DETECTION_TTL_SECONDS)
                pipe.hincrby(Keys.ATH_STATS, "total_detections", 1)
                pipe.hincrby(Keys.ATH_STATS, f"{detected.kind.value}_detections", 1)
                pipe.hset(Keys.ATH_STATS, "last_updated", now.isoformat())
                pipe.hincrby(coin_key, "detections", 1)
                pipe.hset(
                    coin_key,
                    mapping={
                        "coin_symbol": asset.symbol,
                        "coin_name": asset.name,
                        "last_detection": now.isoformat(),
                        "last_detection_latency": str(latency_seconds),
                    },
                )
                pipe.incr(hourly_key)
                pipe.expire(hourly_key, HOURLY_TTL_SECONDS)
                await pipe.execute()

    async def get_stats(self) -> dict[str, str]:
        with reading("detection stats"):
            return await self._redis.hgetall(Keys.ATH_STATS)
