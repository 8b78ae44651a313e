"""Pytest configuration and fixtures."""
from datetime import datetime, timedelta, timezone

import pytest
from fakeredis import FakeAsyncRedis

from coinspree.schemas import (CryptoAsset, Role, Subscription,
                               SubscriptionStatus, User)
from coinspree.storage import UserDirectory

# Real time: send-time eligibility checks compare against the wall clock.
NOW = datetime.now(timezone.utc).replace(second=0, microsecond=0)


@pytest.fixture
async def redis():
    """Fresh in-memory Redis for each test."""
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def users(redis) -> UserDirectory:
    return UserDirectory(redis)


def make_asset(asset_id: str = "bitcoin", price: float = 70000.0, ath: float = 0.0, **extra) -> CryptoAsset:
    """Create a CryptoAsset with sensible defaults."""
    return CryptoAsset(
        id=asset_id,
        symbol=extra.pop("symbol", asset_id[:3].upper()),
        name=extra.pop("name", asset_id.title()),
        current_price=price,
        ath=ath,
        **extra,
    )


def make_user(
    user_id: str,
    role: Role = Role.USER,
    is_active: bool = True,
    notifications_enabled: bool = True,
) -> User:
    return User(
        id=user_id,
        email=f"{user_id}@example.com",
        role=role,
        is_active=is_active,
        notifications_enabled=notifications_enabled,
    )


async def add_user(
    directory: UserDirectory,
    user: User,
    status: SubscriptionStatus | None = SubscriptionStatus.ACTIVE,
    end_date: datetime | None = None,
) -> User:
    """Store a user and, unless status is None, a subscription for them."""
    await directory.save_user(user)
    if status is not None:
        await directory.save_subscription(
            Subscription(
                id=f"sub-{user.id}",
                user_id=user.id,
                status=status,
                end_date=end_date or NOW + timedelta(days=30),
            )
        )
    return user
