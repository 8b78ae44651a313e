"""Pydantic schemas shared by providers, storage and services."""
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from coinspree.utils import parse_timestamp, utcnow


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    EXPIRED = "expired"
    BLOCKED = "blocked"


class ATHKind(str, Enum):
    """How an ATH was detected."""

    REAL_TIME = "real_time"
    MISSED = "missed"
    FIRST_OBSERVATION = "first_observation"


class CryptoAsset(BaseModel):
    """Snapshot of one ranked asset as reported by the market data source."""

    id: str
    symbol: str
    name: str
    current_price: float = Field(gt=0)
    market_cap: float = 0.0
    market_cap_rank: int = 0
    total_volume: float = 0.0
    ath: float = 0.0
    ath_date: datetime | None = None
    last_updated: datetime | None = None
    price_change_percentage_24h: float = 0.0


class MarketSnapshot(BaseModel):
    """Result of a ranked fetch; stale=True means a last-good fallback."""

    assets: list[CryptoAsset]
    stale: bool = False
    fetched_at: datetime = Field(default_factory=utcnow)


class StoredAssetState(BaseModel):
    """Persisted per-asset ATH state."""

    asset_id: str
    ath: float
    ath_date: datetime | None = None
    symbol: str = ""
    name: str = ""
    last_price: float = 0.0
    last_updated: datetime | None = None
    last_notified_at: datetime | None = None


class DetectedEvent(BaseModel):
    """An asset whose fresh data beat the stored ATH."""

    asset: CryptoAsset
    previous_ath: float
    new_ath: float
    kind: ATHKind

    @property
    def percentage_increase(self) -> float:
        if self.previous_ath <= 0:
            return 100.0
        return (self.new_ath - self.previous_ath) / self.previous_ath * 100


class ATHEvent(BaseModel):
    """Notification log record for one detected ATH."""

    id: str
    crypto_id: str
    new_ath: float
    previous_ath: float
    sent_at: datetime = Field(default_factory=utcnow)
    recipient_count: int = 0

    @model_validator(mode="after")
    def _check_increase(self) -> "ATHEvent":
        if self.new_ath <= self.previous_ath:
            raise ValueError(
                f"new_ath ({self.new_ath}) must exceed previous_ath ({self.previous_ath})"
            )
        return self


class User(BaseModel):
    """Subset of the account record the pipeline reads."""

    id: str
    email: str
    role: Role = Role.USER
    is_active: bool = True
    notifications_enabled: bool = False


class Subscription(BaseModel):
    """Subset of the billing record the pipeline reads."""

    id: str
    user_id: str
    status: SubscriptionStatus
    end_date: datetime

    @field_validator("end_date", mode="after")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return parse_timestamp(value)

    def is_current(self, now: datetime) -> bool:
        return self.status is SubscriptionStatus.ACTIVE and self.end_date > now


class UserNotificationLogEntry(BaseModel):
    user_id: str
    notification_id: str
    crypto_id: str
    sent_at: datetime = Field(default_factory=utcnow)


class NotifyResult(BaseModel):
    """Outcome of a fan-out; partial success is represented, not raised."""

    recipient_count: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class QueueTickResult(BaseModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
    remaining: int = 0


class QueueStatus(BaseModel):
    pending: int
    processing: int
    failed: int


class DetectionTickResult(BaseModel):
    """Summary of one detection tick."""

    events: list[ATHEvent] = Field(default_factory=list)
    assets_checked: int = 0
    stale: bool = False
    skipped_by_gate: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0


class NotificationStats(BaseModel):
    total_notifications: int
    total_recipients: int
    average_recipients_per_notification: float
    unique_cryptos: int


__all__ = [
    "ATHEvent",
    "ATHKind",
    "CryptoAsset",
    "DetectedEvent",
    "DetectionTickResult",
    "MarketSnapshot",
    "NotificationStats",
    "NotifyResult",
    "QueueStatus",
    "QueueTickResult",
    "Role",
    "StoredAssetState",
    "Subscription",
    "SubscriptionStatus",
    "User",
    "UserNotificationLogEntry",
]
