"""
Notivate Backend - User Profile Model
=======================================

What:  ORM model for `user_profiles`, the per-user subscription record.
Who:   Written by the billing integration (outside this service); only read
       here, by ProfileRepository, to resolve a caller's subscription tier.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from notivate.database import Base
from notivate.models.note import utc_now


class SubscriptionTier(str, enum.Enum):
    """Subscription level. Anything other than PREMIUM is metered."""

    FREE = "free"
    PREMIUM = "premium"


# Monthly transform allowance of the free tier
FREE_TIER_MONTHLY_LIMIT = 5


class UserProfile(Base):
    __tablename__ = "user_profiles"

    # Same id as the identity provider's user
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    subscription_tier: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionTier.FREE.value
    )
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    def __repr__(self) -> str:
        return f"<UserProfile(id={self.id}, tier='{self.subscription_tier}')>"
