"""Persistent email delivery queue with exponential backoff and dead letters."""
import json
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ValidationError
from redis.asyncio import Redis

from coinspree.providers.core import StorageWriteError
from coinspree.schemas import QueueStatus, QueueTickResult, User
from coinspree.schemas.emails import (ATHNotificationJob, DeadLetter,
                                      EmailType, PasswordResetJob,
                                      QueuedEmailJob, SubscriptionExpiryJob,
                                      WelcomeJob, job_adapter)
from coinspree.services.email_sender import EmailSender
from coinspree.storage.kv import Keys, reading, writing
from coinspree.utils import to_ms, utcnow

logger = logging.getLogger(__name__)


class EmailQueue:
    """Email jobs kept in the KV store until delivered or dead-lettered.

    Layout: ``email:queue`` sorted set of JSON job snapshots scored by
    ``scheduled_for`` (ms); ``email:processing`` set of in-flight job ids;
    ``email:failed:{id}`` hash per dead letter.
    """

    def __init__(
        self,
        redis: Redis,
        sender: EmailSender,
        batch_size: int = 10,
        max_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._redis = redis
        self._sender = sender
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._clock = clock

    async def enqueue(
        self,
        job_type: EmailType,
        recipient: User,
        data: BaseModel | dict[str, Any] | None = None,
        delay_ms: int = 0,
    ) -> str:
        """Schedule a job ``delay_ms`` from now and return its id."""
        now = self._clock()
        payload: dict[str, Any] = {
            "id": f"email_{to_ms(now)}_{uuid.uuid4().hex[:9]}",
            "type": job_type.value,
            "recipient": recipient.model_dump(),
            "max_attempts": self._max_attempts,
            "scheduled_for": now + timedelta(milliseconds=delay_ms),
            "created_at": now,
        }
        if data is not None:
            payload["data"] = data.model_dump() if isinstance(data, BaseModel) else data
        job = job_adapter.validate_python(payload)
        await self._push(job)
        logger.debug("Queued %s email %s for %s", job.type, job.id, recipient.email)
        return job.id

    async def process_queue(self) -> QueueTickResult:
        """Deliver up to ``batch_size`` due jobs. Send failures never raise."""
        now = self._clock()
        result = QueueTickResult()
        with reading("email queue"):
            members = await self._redis.zrangebyscore(
                Keys.EMAIL_QUEUE, "-inf", to_ms(now), start=0, num=self._batch_size
            )

        for member in members:
            try:
                job = job_adapter.validate_json(member)
            except ValidationError:
                logger.exception("Dropping unreadable email job")
                with writing("email queue"):
                    await self._redis.zrem(Keys.EMAIL_QUEUE, member)
                continue

            if not await self._claim(job.id, member):
                logger.debug("Email job %s already claimed elsewhere", job.id)
                continue

            result.processed += 1
            try:
                if await self._dispatch(job):
                    result.sent += 1
            except Exception as exc:  # pylint: disable=broad-except
                if await self._handle_failure(job, exc, now):
                    result.failed += 1
            finally:
                with writing("email processing set"):
                    await self._redis.srem(Keys.EMAIL_PROCESSING, job.id)

        with reading("email queue"):
            result.remaining = await self._redis.zcard(Keys.EMAIL_QUEUE)
        if result.processed:
            logger.info(
                "Email queue: processed=%d sent=%d failed=%d remaining=%d",
                result.processed, result.sent, result.failed, result.remaining,
            )
        return result

    async def get_failed_emails(self) -> list[DeadLetter]:
        failed: list[DeadLetter] = []
        with reading("dead letters"):
            async for key in self._redis.scan_iter(match=Keys.EMAIL_FAILED_PATTERN):
                row = await self._redis.hgetall(key)
                if row:
                    failed.append(_dead_letter_from(row))
        failed.sort(key=lambda d: d.failed_at, reverse=True)
        return failed

    async def retry_failed_email(self, job_id: str) -> bool:
        """Requeue a dead letter with attempts reset. False if there is none."""
        with reading(f"dead letter {job_id}"):
            row = await self._redis.hgetall(Keys.email_failed(job_id))
        if not row:
            return False
        job = _dead_letter_from(row).job
        job.attempts = 0
        job.scheduled_for = self._clock()
        with writing(f"dead letter {job_id}"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zadd(Keys.EMAIL_QUEUE, {job.model_dump_json(): to_ms(job.scheduled_for)})
                pipe.delete(Keys.email_failed(job_id))
                await pipe.execute()
        logger.info("Requeued dead letter %s", job_id)
        return True

    async def get_queue_status(self) -> QueueStatus:
        with reading("email queue status"):
            pending = await self._redis.zcard(Keys.EMAIL_QUEUE)
            processing = await self._redis.scard(Keys.EMAIL_PROCESSING)
            failed = 0
            async for _ in self._redis.scan_iter(match=Keys.EMAIL_FAILED_PATTERN):
                failed += 1
        return QueueStatus(pending=pending, processing=processing, failed=failed)

    async def clear_queue(self) -> None:
        """Drop pending and in-flight jobs. Dead letters are kept."""
        with writing("email queue"):
            await self._redis.delete(Keys.EMAIL_QUEUE, Keys.EMAIL_PROCESSING)
        logger.warning("Email queue cleared")

    async def _push(self, job: QueuedEmailJob) -> None:
        with writing(f"email job {job.id}"):
            await self._redis.zadd(Keys.EMAIL_QUEUE, {job.model_dump_json(): to_ms(job.scheduled_for)})

    async def _claim(self, job_id: str, member: str) -> bool:
        with writing(f"claim of email job {job_id}"):
            if await self._redis.zrem(Keys.EMAIL_QUEUE, member) != 1:
                return False
            await self._redis.sadd(Keys.EMAIL_PROCESSING, job_id)
        return True

    async def _dispatch(self, job: QueuedEmailJob) -> bool:
        match job:
            case ATHNotificationJob():
                return await self._sender.send_ath_notification(job)
            case WelcomeJob():
                return await self._sender.send_welcome(job)
            case SubscriptionExpiryJob():
                return await self._sender.send_subscription_expiry(job)
            case PasswordResetJob():
                return await self._sender.send_password_reset(job)
            case _:
                raise TypeError(f"Unknown email job type: {type(job).__name__}")

    async def _handle_failure(self, job: QueuedEmailJob, exc: Exception, now: datetime) -> bool:
        """Reschedule with backoff or dead-letter. True when dead-lettered."""
        job.attempts += 1
        if job.attempts < job.max_attempts:
            job.scheduled_for = now + timedelta(minutes=2**job.attempts)
            logger.warning(
                "Email %s failed (attempt %d/%d), retrying at %s: %s",
                job.id, job.attempts, job.max_attempts, job.scheduled_for.isoformat(), exc,
            )
            try:
                await self._push(job)
            except StorageWriteError:
                logger.exception("Could not requeue email %s, parking it as a dead letter", job.id)
                await self._dead_letter(job, f"requeue failed after: {exc}", now)
                return True
            return False

        logger.error("Email %s failed permanently after %d attempts: %s", job.id, job.attempts, exc)
        await self._dead_letter(job, str(exc) or type(exc).__name__, now)
        return True

    async def _dead_letter(self, job: QueuedEmailJob, error: str, now: datetime) -> None:
        snapshot = job.model_dump_json()
        try:
            with writing(f"dead letter {job.id}"):
                await self._redis.hset(
                    Keys.email_failed(job.id),
                    mapping={"job": snapshot, "last_error": error, "failed_at": now.isoformat()},
                )
        except StorageWriteError:
            logger.error("Lost email job %s: %s", job.id, snapshot)
            raise


def _dead_letter_from(row: dict[str, str]) -> DeadLetter:
    return DeadLetter.model_validate({**row, "job": json.loads(row["job"])})
