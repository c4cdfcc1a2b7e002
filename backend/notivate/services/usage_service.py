"""
Notivate Backend - Usage Accounting Service
=============================================

What:  Monthly quota checks and usage increments for transform requests.
How:   Wraps UsageRepository with the tier rules and turns store failures
       into explicit AccountingResult outcomes instead of exceptions, so the
       caller's policy is visible at the call site:

           check_quota     store failure → FAILED    (caller fails closed)
           increment_usage store failure → DEGRADED  (logged, request succeeds)

Who:   TransformationOrchestrator, routes/usage.py.

Tier rules:
    premium → always allowed, limit None, store not consulted
    free    → allowed while this month's count < FREE_TIER_MONTHLY_LIMIT (5)

Month key:
    UTC calendar month, 'YYYY-MM', taken from the injected clock at the moment
    of each call.
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from notivate.exceptions import AccountingError
from notivate.models.profile import FREE_TIER_MONTHLY_LIMIT, SubscriptionTier
from notivate.repositories.usage_repository import UsageRepository

logger = logging.getLogger(__name__)


def current_month_key(now: Optional[datetime] = None) -> str:
    """'YYYY-MM' of `now` in UTC. Naive datetimes are taken as UTC."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m")


class AccountingOutcome(str, enum.Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass(frozen=True)
class QuotaStatus:
    allowed: bool
    current_count: int
    limit: Optional[int]


@dataclass(frozen=True)
class AccountingResult:
    """
    Outcome of one accounting call.

    `quota` is set by check_quota on OK; `new_count` by increment_usage on OK.
    `error` holds the store exception for DEGRADED / FAILED.
    """

    outcome: AccountingOutcome
    quota: Optional[QuotaStatus] = None
    new_count: Optional[int] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.outcome == AccountingOutcome.OK


@dataclass(frozen=True)
class UsageSummary:
    month: str
    transforms_this_month: int
    limit: Optional[int]
    tier: SubscriptionTier


def limit_for(tier: SubscriptionTier) -> Optional[int]:
    return None if tier == SubscriptionTier.PREMIUM else FREE_TIER_MONTHLY_LIMIT


class UsageService:
    def __init__(
        self,
        repository: UsageRepository,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.repository = repository
        self._clock = clock

    def month_key(self) -> str:
        return current_month_key(self._clock())

    async def check_quota(self, user_id: uuid.UUID, tier: SubscriptionTier) -> AccountingResult:
        """
        Decides whether the caller may run one more transform this month.

        Never raises for store failures; returns outcome FAILED instead.
        """
        if tier == SubscriptionTier.PREMIUM:
            return AccountingResult(
                outcome=AccountingOutcome.OK,
                quota=QuotaStatus(allowed=True, current_count=0, limit=None),
            )

        month = self.month_key()
        try:
            count = await self.repository.get_usage(user_id, month) or 0
        except Exception as e:
            logger.error(
                "Quota check failed for user %s month %s: %s",
                user_id,
                month,
                e,
                exc_info=True,
            )
            return AccountingResult(outcome=AccountingOutcome.FAILED, error=e)

        limit = FREE_TIER_MONTHLY_LIMIT
        return AccountingResult(
            outcome=AccountingOutcome.OK,
            quota=QuotaStatus(allowed=count < limit, current_count=count, limit=limit),
        )

    async def increment_usage(self, user_id: uuid.UUID) -> AccountingResult:
        """
        Records one successful transform for the current month.

        Never raises for store failures; returns outcome DEGRADED instead.
        The user already has their study guide at this point.
        """
        month = self.month_key()
        try:
            new_count = await self.repository.increment_usage(user_id, month)
        except Exception as e:
            logger.error(
                "Usage increment failed for user %s month %s (request still succeeds): %s",
                user_id,
                month,
                e,
                exc_info=True,
            )
            return AccountingResult(outcome=AccountingOutcome.DEGRADED, error=e)

        logger.info("Usage for user %s in %s is now %d", user_id, month, new_count)
        return AccountingResult(outcome=AccountingOutcome.OK, new_count=new_count)

    async def get_usage_summary(self, user_id: uuid.UUID, tier: SubscriptionTier) -> UsageSummary:
        """
        Current month usage for display.

        Raises:
            AccountingError: the store could not be read.
        """
        month = self.month_key()
        try:
            count = await self.repository.get_usage(user_id, month) or 0
        except Exception as e:
            logger.error("Usage lookup failed for user %s: %s", user_id, e, exc_info=True)
            raise AccountingError(message="Failed to load usage", context={"month": month}) from e
        return UsageSummary(month=month, transforms_this_month=count, limit=limit_for(tier), tier=tier)
