# Importing the models registers every table on Base.metadata
from notivate.models.note import Note
from notivate.models.profile import FREE_TIER_MONTHLY_LIMIT, SubscriptionTier, UserProfile
from notivate.models.usage import UsageRecord

__all__ = [
    "FREE_TIER_MONTHLY_LIMIT",
    "Note",
    "SubscriptionTier",
    "UsageRecord",
    "UserProfile",
]
