"""Fan-out of one ATH event to its eligible recipients."""
import asyncio
import logging

from coinspree.providers.core import StorageWriteError, round2
from coinspree.schemas import (ATHEvent, CryptoAsset, NotifyResult, User,
                               UserNotificationLogEntry)
from coinspree.schemas.emails import ATHNotificationData, EmailType
from coinspree.services.email_queue import EmailQueue
from coinspree.storage import EventStore

logger = logging.getLogger(__name__)


class NotificationFanout:
    """Enqueues one ATH email per recipient in rate-limited batches.

    Users inside a batch are enqueued concurrently; a short pause separates
    batches. One failing recipient never aborts the rest.
    """

    def __init__(
        self,
        queue: EmailQueue,
        events: EventStore,
        batch_size: int = 50,
        batch_delay_ms: int = 100,
    ) -> None:
        self._queue = queue
        self._events = events
        self._batch_size = batch_size
        self._batch_delay = batch_delay_ms / 1000

    async def notify(self, event: ATHEvent, users: list[User], asset: CryptoAsset) -> NotifyResult:
        """Enqueue the event for every user and record who was reached.

        Args:
            event: The persisted ATH event.
            users: Eligible recipients.
            asset: Market data behind the event (name, symbol, dates).

        Returns:
            NotifyResult with the number of successful enqueues and one error
            string per failed recipient.
        """
        data = ATHNotificationData(
            crypto_id=event.crypto_id,
            crypto_name=asset.name,
            symbol=asset.symbol,
            new_ath=event.new_ath,
            previous_ath=event.previous_ath,
            percentage_increase=round2(_percentage(event)),
            ath_date=event.sent_at,
        )
        result = NotifyResult()

        for offset in range(0, len(users), self._batch_size):
            if offset:
                await asyncio.sleep(self._batch_delay)
            batch = users[offset : offset + self._batch_size]
            outcomes = await asyncio.gather(
                *(self._notify_user(event, user, data) for user in batch),
                return_exceptions=True,
            )
            for user, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    logger.warning("Failed to notify %s of %s: %s", user.id, event.id, outcome)
                    result.errors.append(f"{user.email}: {outcome}")
                else:
                    result.recipient_count += 1

        await self._events.update_recipient_count(event.id, result.recipient_count)
        logger.info(
            "Event %s fanned out to %d/%d users", event.id, result.recipient_count, len(users)
        )
        return result

    async def _notify_user(self, event: ATHEvent, user: User, data: ATHNotificationData) -> None:
        """Enqueue for one user. Raises only when the enqueue itself fails."""
        await self._queue.enqueue(EmailType.ATH_NOTIFICATION, user, data)
        try:
            await self._events.append_user_log(
                UserNotificationLogEntry(
                    user_id=user.id,
                    notification_id=event.id,
                    crypto_id=event.crypto_id,
                    sent_at=event.sent_at,
                )
            )
        except StorageWriteError:
            # The job is queued and will be sent; only the audit entry is missing.
            logger.exception("Failed to log notification %s for %s", event.id, user.id)


def _percentage(event: ATHEvent) -> float:
    if event.previous_ath <= 0:
        return 100.0
    return (event.new_ath - event.previous_ath) / event.previous_ath * 100
