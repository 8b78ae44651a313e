"""Email job variants and delivery records.

Queued jobs are a discriminated union on ``type``; each variant carries its
own payload model so the queue worker can dispatch with ``match``.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from coinspree.schemas import User
from coinspree.utils import utcnow


class EmailType(str, Enum):
    ATH_NOTIFICATION = "ath_notification"
    WELCOME = "welcome"
    SUBSCRIPTION_EXPIRY = "subscription_expiry"
    PASSWORD_RESET = "password_reset"


class ATHNotificationData(BaseModel):
    crypto_id: str
    crypto_name: str
    symbol: str
    new_ath: float
    previous_ath: float
    percentage_increase: float
    ath_date: datetime | None = None


class WelcomeData(BaseModel):
    pass


class SubscriptionExpiryData(BaseModel):
    days_until_expiry: int
    end_date: datetime | None = None


class PasswordResetData(BaseModel):
    token: str


class _EmailJobBase(BaseModel):
    id: str
    recipient: User
    attempts: int = 0
    max_attempts: int = 3
    scheduled_for: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)


class ATHNotificationJob(_EmailJobBase):
    type: Literal["ath_notification"] = "ath_notification"
    data: ATHNotificationData


class WelcomeJob(_EmailJobBase):
    type: Literal["welcome"] = "welcome"
    data: WelcomeData = Field(default_factory=WelcomeData)


class SubscriptionExpiryJob(_EmailJobBase):
    type: Literal["subscription_expiry"] = "subscription_expiry"
    data: SubscriptionExpiryData


class PasswordResetJob(_EmailJobBase):
    type: Literal["password_reset"] = "password_reset"
    data: PasswordResetData


QueuedEmailJob = Annotated[
    Union[ATHNotificationJob, WelcomeJob, SubscriptionExpiryJob, PasswordResetJob],
    Field(discriminator="type"),
]

job_adapter: TypeAdapter[QueuedEmailJob] = TypeAdapter(QueuedEmailJob)


class DeadLetter(BaseModel):
    """A job that exhausted its attempts, parked for manual review."""

    job: QueuedEmailJob
    last_error: str
    failed_at: datetime = Field(default_factory=utcnow)


class EmailTemplate(BaseModel):
    subject: str
    html: str
    text: str


class OutgoingEmail(BaseModel):
    """Provider-agnostic message; field names follow the Resend API."""

    from_address: str
    to: str
    subject: str
    html: str
    text: str
    reply_to: str | None = None
    tags: list[dict[str, str]] = Field(default_factory=list)


class EmailDeliveryLog(BaseModel):
    id: str
    user_id: str
    email_type: EmailType
    recipient_email: str
    subject: str
    status: Literal["sent", "failed"]
    provider_id: str | None = None
    sent_at: datetime = Field(default_factory=utcnow)
    error_message: str | None = None


__all__ = [
    "ATHNotificationData",
    "ATHNotificationJob",
    "DeadLetter",
    "EmailDeliveryLog",
    "EmailTemplate",
    "EmailType",
    "OutgoingEmail",
    "PasswordResetData",
    "PasswordResetJob",
    "QueuedEmailJob",
    "SubscriptionExpiryData",
    "SubscriptionExpiryJob",
    "WelcomeData",
    "WelcomeJob",
    "job_adapter",
]
