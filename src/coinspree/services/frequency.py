"""Per-asset notification cooldown."""
import logging
from datetime import datetime, timedelta

from coinspree.providers.core import StorageReadError
from coinspree.storage import AssetStateStore
from coinspree.utils import utcnow

logger = logging.getLogger(__name__)


class FrequencyGate:
    """Allows at most one notification per asset per ``min_interval_minutes``."""

    def __init__(self, states: AssetStateStore, min_interval_minutes: float = 5.0) -> None:
        self._states = states
        self._min_interval = timedelta(minutes=min_interval_minutes)

    async def should_notify(self, asset_id: str, now: datetime | None = None) -> bool:
        """True when the cooldown has elapsed. Fails open on read errors."""
        now = now or utcnow()
        try:
            last = await self._states.get_last_notified(asset_id)
        except StorageReadError as exc:
            logger.warning("Cooldown lookup failed for %s, allowing notification: %s", asset_id, exc)
            return True
        if last is None:
            return True
        return now - last >= self._min_interval

    async def record_notified(self, asset_id: str, when: datetime) -> None:
        await self._states.set_last_notified(asset_id, when)
