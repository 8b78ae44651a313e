"""KV-backed stores for pipeline state (Redis)."""
from coinspree.storage.asset_state import AssetStateStore
from coinspree.storage.cron import CronStatusStore
from coinspree.storage.deliveries import DeliveryLogStore
from coinspree.storage.detections import DetectionTracker
from coinspree.storage.events import EventStore
from coinspree.storage.kv import Keys, create_redis
from coinspree.storage.market_cache import MarketCache
from coinspree.storage.users import UserDirectory

__all__ = [
    "AssetStateStore",
    "CronStatusStore",
    "DeliveryLogStore",
    "DetectionTracker",
    "EventStore",
    "Keys",
    "MarketCache",
    "UserDirectory",
    "create_redis",
]
