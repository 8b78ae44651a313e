"""Eligible recipient resolution."""
import logging
from datetime import datetime

from coinspree.schemas import Role, User
from coinspree.storage import UserDirectory
from coinspree.utils import utcnow

logger = logging.getLogger(__name__)


class RecipientResolver:
    """Selects users who may receive ATH notifications right now."""

    def __init__(self, users: UserDirectory) -> None:
        self._users = users

    async def resolve_eligible(self, now: datetime | None = None) -> list[User]:
        """Active, opted-in non-admin users with a current active subscription."""
        now = now or utcnow()
        candidates = [
            user
            for user in await self._users.list_all_users()
            if user.notifications_enabled and user.is_active and user.role is not Role.ADMIN
        ]

        eligible: list[User] = []
        for user in candidates:
            subscription = await self._users.get_subscription(user.id)
            if subscription is not None and subscription.is_current(now):
                eligible.append(user)

        logger.debug("%d of %d opted-in users are eligible", len(eligible), len(candidates))
        return eligible
