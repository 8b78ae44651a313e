"""Renders and sends queued emails through the configured provider."""
import logging
import uuid
from datetime import datetime

from coinspree.providers.core import ProviderSendError, StorageError
from coinspree.providers.email import EmailProviderABC, TemplateStore
from coinspree.providers.email.templates import render
from coinspree.schemas import Role, User
from coinspree.schemas.emails import (ATHNotificationJob, EmailDeliveryLog,
                                      EmailType, OutgoingEmail,
                                      PasswordResetJob, QueuedEmailJob,
                                      SubscriptionExpiryJob, WelcomeJob)
from coinspree.storage import DeliveryLogStore, UserDirectory
from coinspree.utils import utcnow

logger = logging.getLogger(__name__)


def format_usd(value: float) -> str:
    """US currency with two decimals, e.g. ``$70,000.00``."""
    return f"${value:,.2f}"


class EmailSender:
    """One method per job variant. Each returns True when the mail went out.

    ATH notifications are re-checked at send time: a recipient who became an
    admin, was deactivated, opted out or lost their subscription after the
    job was enqueued is skipped (False). Provider failures raise
    ProviderSendError so the queue can retry.
    """

    def __init__(
        self,
        provider: EmailProviderABC,
        templates: TemplateStore,
        users: UserDirectory,
        deliveries: DeliveryLogStore,
        from_address: str,
        reply_to: str | None = None,
        app_url: str = "http://localhost:8000",
    ) -> None:
        self._provider = provider
        self._templates = templates
        self._users = users
        self._deliveries = deliveries
        self._from_address = from_address
        self._reply_to = reply_to
        self._app_url = app_url.rstrip("/")

    async def send_ath_notification(self, job: ATHNotificationJob) -> bool:
        recipient = await self._users.get_user(job.recipient.id) or job.recipient
        reason = await self._ineligible_reason(recipient)
        if reason:
            logger.warning("Blocked ATH email %s to %s: %s", job.id, recipient.email, reason)
            return False

        data = job.data
        replacements = {
            "cryptoName": data.crypto_name,
            "symbol": data.symbol,
            "newATH": format_usd(data.new_ath),
            "previousATH": format_usd(data.previous_ath),
            "percentageIncrease": f"{data.percentage_increase:.2f}",
            "athDate": _format_date(data.ath_date or job.created_at),
            "dashboardUrl": f"{self._app_url}/dashboard",
            "unsubscribeUrl": await self._unsubscribe_url(recipient.id),
        }
        tags = [
            {"name": "category", "value": "ath_notification"},
            {"name": "crypto", "value": data.crypto_id},
        ]
        await self._deliver(job, recipient, EmailType.ATH_NOTIFICATION, "ath-notification", replacements, tags)
        return True

    async def send_welcome(self, job: WelcomeJob) -> bool:
        replacements = {
            "email": job.recipient.email,
            "dashboardUrl": f"{self._app_url}/dashboard",
            "subscriptionUrl": f"{self._app_url}/subscription",
            "notificationsUrl": f"{self._app_url}/notifications",
            "unsubscribeUrl": await self._unsubscribe_url(job.recipient.id),
        }
        tags = [{"name": "category", "value": "welcome"}]
        await self._deliver(job, job.recipient, EmailType.WELCOME, "welcome", replacements, tags)
        return True

    async def send_subscription_expiry(self, job: SubscriptionExpiryJob) -> bool:
        replacements = {
            "email": job.recipient.email,
            "daysUntilExpiry": str(job.data.days_until_expiry),
            "renewUrl": f"{self._app_url}/subscription",
            "unsubscribeUrl": await self._unsubscribe_url(job.recipient.id),
        }
        tags = [{"name": "category", "value": "subscription_expiry"}]
        await self._deliver(
            job, job.recipient, EmailType.SUBSCRIPTION_EXPIRY, "subscription-expiry", replacements, tags
        )
        return True

    async def send_password_reset(self, job: PasswordResetJob) -> bool:
        replacements = {
            "email": job.recipient.email,
            "resetUrl": f"{self._app_url}/reset-password?token={job.data.token}",
        }
        tags = [{"name": "category", "value": "password_reset"}]
        await self._deliver(job, job.recipient, EmailType.PASSWORD_RESET, "password-reset", replacements, tags)
        return True

    async def _ineligible_reason(self, user: User) -> str | None:
        if user.role is Role.ADMIN:
            return "admin account"
        if not user.is_active:
            return "inactive account"
        if not user.notifications_enabled:
            return "notifications disabled"
        subscription = await self._users.get_subscription(user.id)
        if subscription is None or not subscription.is_current(utcnow()):
            return "no active subscription"
        return None

    async def _unsubscribe_url(self, user_id: str) -> str:
        token = await self._users.get_or_create_unsubscribe_token(user_id)
        return f"{self._app_url}/unsubscribe?token={token}"

    async def _deliver(
        self,
        job: QueuedEmailJob,
        recipient: User,
        email_type: EmailType,
        template_name: str,
        replacements: dict[str, str],
        tags: list[dict[str, str]],
    ) -> str:
        content = render(await self._templates.get(template_name), replacements)
        message = OutgoingEmail(
            from_address=self._from_address,
            to=recipient.email,
            subject=content.subject,
            html=content.html,
            text=content.text,
            reply_to=self._reply_to,
            tags=tags,
        )
        log = EmailDeliveryLog(
            id=uuid.uuid4().hex,
            user_id=recipient.id,
            email_type=email_type,
            recipient_email=recipient.email,
            subject=content.subject,
            status="sent",
        )
        try:
            log.provider_id = await self._provider.send(message)
        except ProviderSendError as exc:
            log.status = "failed"
            log.error_message = str(exc)
            await self._record(log)
            raise

        await self._record(log)
        logger.info("Sent %s email %s to %s", email_type.value, job.id, recipient.email)
        return log.provider_id

    async def _record(self, log: EmailDeliveryLog) -> None:
        # Mail is already out; a failed log write is not retried.
        try:
            await self._deliveries.save(log)
        except StorageError:
            logger.exception("Failed to record delivery %s", log.id)


def _format_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC")
