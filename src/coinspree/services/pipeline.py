"""Detection and queue ticks, plus notification history queries."""
import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from coinspree.providers.core import (CoinSpreeError, NetworkError,
                                      StorageError, UpstreamDataError)
from coinspree.schemas import (ATHEvent, DetectedEvent, DetectionTickResult,
                               NotificationStats, QueueTickResult)
from coinspree.services.ath_detector import ATHDetector
from coinspree.services.email_queue import EmailQueue
from coinspree.services.fanout import NotificationFanout
from coinspree.services.frequency import FrequencyGate
from coinspree.services.market_data import MarketDataClient
from coinspree.services.recipients import RecipientResolver
from coinspree.storage import CronStatusStore, DetectionTracker, EventStore
from coinspree.storage.cron import DETECTION_PREFIX, EMAIL_PREFIX
from coinspree.utils import utcnow

logger = logging.getLogger(__name__)

DETECTION_STATUS_FIELDS = ("last_run", "last_duration", "last_ath_count", "last_error")
EMAIL_STATUS_FIELDS = ("last_run", "last_processed", "last_sent", "last_failed", "last_remaining")


class ATHPipeline:
    """Wires market data, detection, gating and fan-out into schedulable ticks.

    Each detected ATH is handled independently: a failure while notifying one
    asset is logged and recorded in the tick result without affecting others.
    """

    def __init__(
        self,
        market: MarketDataClient,
        detector: ATHDetector,
        gate: FrequencyGate,
        resolver: RecipientResolver,
        fanout: NotificationFanout,
        queue: EmailQueue,
        events: EventStore,
        tracker: DetectionTracker,
        cron: CronStatusStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._market = market
        self._detector = detector
        self._gate = gate
        self._resolver = resolver
        self._fanout = fanout
        self._queue = queue
        self._events = events
        self._tracker = tracker
        self._cron = cron
        self._clock = clock

    async def run_detection_tick(self) -> DetectionTickResult:
        """Fetch ranks 1-200, detect new ATHs and notify eligible users.

        Stale (fallback) market data is never used for detection. An upstream
        outage yields an empty result with the error recorded.
        """
        started = time.monotonic()
        now = self._clock()
        result = DetectionTickResult()

        try:
            snapshot = await self._market.fetch_top()
        except (UpstreamDataError, NetworkError) as exc:
            logger.error("Market data unavailable, skipping detection: %s", exc)
            result.errors.append(str(exc))
            snapshot = None

        if snapshot is not None and snapshot.stale:
            logger.warning("Market data is stale, skipping detection this tick")
            result.stale = True
        elif snapshot is not None:
            result.assets_checked = len(snapshot.assets)
            for detected in await self._detector.detect(snapshot.assets):
                try:
                    await self._handle(detected, now, result)
                except CoinSpreeError as exc:
                    logger.exception("Failed to process ATH for %s", detected.asset.id)
                    result.errors.append(f"{detected.asset.id}: {exc}")

        result.duration_ms = int((time.monotonic() - started) * 1000)
        await self._record_run(
            DETECTION_PREFIX,
            {
                "last_run": now.isoformat(),
                "last_duration": result.duration_ms,
                "last_ath_count": len(result.events),
                "last_error": "; ".join(result.errors[:3]),
            },
        )
        logger.info(
            "Detection tick: checked=%d events=%d gated=%d errors=%d in %dms",
            result.assets_checked, len(result.events), len(result.skipped_by_gate),
            len(result.errors), result.duration_ms,
        )
        return result

    async def run_queue_tick(self) -> QueueTickResult:
        result = await self._queue.process_queue()
        await self._record_run(
            EMAIL_PREFIX,
            {
                "last_run": self._clock().isoformat(),
                "last_processed": result.processed,
                "last_sent": result.sent,
                "last_failed": result.failed,
                "last_remaining": result.remaining,
            },
        )
        return result

    async def get_cron_status(self) -> dict[str, dict[str, str | None]]:
        """Last-run bookkeeping for both ticks plus running detection totals."""
        return {
            "ath_detection": await self._cron.get(DETECTION_PREFIX, DETECTION_STATUS_FIELDS),
            "email_queue": await self._cron.get(EMAIL_PREFIX, EMAIL_STATUS_FIELDS),
            "detection_stats": await self._tracker.get_stats(),
        }

    async def get_recent_events(self, hours: int = 24) -> list[ATHEvent]:
        """Events from the last ``hours`` hours, newest first."""
        events = await self._events.get_since(self._clock() - timedelta(hours=hours))
        return list(reversed(events))

    async def get_user_history(self, user_id: str, limit: int = 50) -> list[ATHEvent]:
        return await self._events.get_user_history(user_id, limit)

    async def get_stats(self, days: int = 30) -> NotificationStats:
        events = await self._events.get_since(self._clock() - timedelta(days=days))
        total_recipients = sum(e.recipient_count for e in events)
        return NotificationStats(
            total_notifications=len(events),
            total_recipients=total_recipients,
            average_recipients_per_notification=(
                round(total_recipients / len(events), 2) if events else 0.0
            ),
            unique_cryptos=len({e.crypto_id for e in events}),
        )

    async def cleanup_before(self, days: int = 90) -> int:
        """Delete events older than ``days`` days. Returns how many were removed."""
        removed = await self._events.delete_before(self._clock() - timedelta(days=days))
        if removed:
            logger.info("Removed %d events older than %d days", removed, days)
        return removed

    async def _handle(self, detected: DetectedEvent, now: datetime, result: DetectionTickResult) -> None:
        asset = detected.asset
        if not await self._gate.should_notify(asset.id, now):
            logger.info("Cooldown active for %s, not notifying", asset.id)
            result.skipped_by_gate.append(asset.id)
            return

        event = ATHEvent(
            id=uuid.uuid4().hex,
            crypto_id=asset.id,
            new_ath=detected.new_ath,
            previous_ath=detected.previous_ath,
            sent_at=now,
        )
        await self._events.save(event)
        await self._gate.record_notified(asset.id, now)

        users = await self._resolver.resolve_eligible(now)
        notified = await self._fanout.notify(event, users, asset)
        event.recipient_count = notified.recipient_count
        result.errors.extend(f"{asset.id}: {error}" for error in notified.errors)

        await self._tracker.track(detected, now)
        result.events.append(event)

    async def _record_run(self, prefix: str, values: dict[str, object]) -> None:
        try:
            await self._cron.record(prefix, values)
        except StorageError as exc:
            logger.warning("Failed to record cron status: %s", exc)
