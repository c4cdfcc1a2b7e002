"""
Notivate Backend - Profile Repository
=======================================

What:  Read-only access to `user_profiles`, used to resolve subscription tiers.
Who:   SupabaseIdentityProvider.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notivate.database import session_scope
from notivate.models.profile import SubscriptionTier, UserProfile

logger = logging.getLogger(__name__)


class ProfileRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_profile(self, user_id: uuid.UUID) -> Optional[UserProfile]:
        async with session_scope(self._session_factory) as session:
            return await session.get(UserProfile, user_id)

    async def get_subscription_tier(self, user_id: uuid.UUID) -> SubscriptionTier:
        """
        The user's tier. A missing profile, or a tier value this service does
        not know, counts as FREE.
        """
        profile = await self.get_profile(user_id)
        if profile is None:
            return SubscriptionTier.FREE
        try:
            return SubscriptionTier(profile.subscription_tier)
        except ValueError:
            logger.warning(
                "Unknown subscription_tier '%s' for user %s; treating as free",
                profile.subscription_tier,
                user_id,
            )
            return SubscriptionTier.FREE
