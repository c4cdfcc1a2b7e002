"""
Notivate Backend - Usage Repository Tests (SQLite)
====================================================

Runs the real ON CONFLICT upsert against a file-backed SQLite database.
"""

import asyncio
import uuid

import pytest

from notivate.database import session_scope
from notivate.models.profile import SubscriptionTier, UserProfile
from notivate.repositories.profile_repository import ProfileRepository
from notivate.repositories.usage_repository import UsageRepository


class TestUsageRepository:

    @pytest.mark.asyncio
    async def test_absent_record_reads_as_none(self, sqlite_session_factory):
        repo = UsageRepository(sqlite_session_factory)
        assert await repo.get_usage(uuid.uuid4(), "2024-06") is None

    @pytest.mark.asyncio
    async def test_first_increment_creates_record(self, sqlite_session_factory):
        repo = UsageRepository(sqlite_session_factory)
        user_id = uuid.uuid4()

        assert await repo.increment_usage(user_id, "2024-06") == 1
        assert await repo.get_usage(user_id, "2024-06") == 1

    @pytest.mark.asyncio
    async def test_sequential_increments(self, sqlite_session_factory):
        repo = UsageRepository(sqlite_session_factory)
        user_id = uuid.uuid4()

        counts = [await repo.increment_usage(user_id, "2024-06") for _ in range(4)]
        assert counts == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_months_and_users_are_independent(self, sqlite_session_factory):
        repo = UsageRepository(sqlite_session_factory)
        alice, bob = uuid.uuid4(), uuid.uuid4()

        await repo.increment_usage(alice, "2024-06")
        await repo.increment_usage(alice, "2024-06")
        await repo.increment_usage(alice, "2024-07")
        await repo.increment_usage(bob, "2024-06")

        assert await repo.get_usage(alice, "2024-06") == 2
        assert await repo.get_usage(alice, "2024-07") == 1
        assert await repo.get_usage(bob, "2024-06") == 1

    @pytest.mark.asyncio
    async def test_concurrent_increments_lose_nothing(self, sqlite_session_factory):
        """N concurrent increments on one (user, month) add exactly N."""
        repo = UsageRepository(sqlite_session_factory)
        user_id = uuid.uuid4()
        n = 10

        results = await asyncio.gather(
            *(repo.increment_usage(user_id, "2024-06") for _ in range(n))
        )

        assert await repo.get_usage(user_id, "2024-06") == n
        assert sorted(results) == list(range(1, n + 1))


class TestProfileRepository:

    @pytest.mark.asyncio
    async def test_missing_profile_is_free(self, sqlite_session_factory):
        repo = ProfileRepository(sqlite_session_factory)
        assert await repo.get_subscription_tier(uuid.uuid4()) == SubscriptionTier.FREE

    @pytest.mark.asyncio
    async def test_stored_tier(self, sqlite_session_factory):
        user_id = uuid.uuid4()
        async with session_scope(sqlite_session_factory) as session:
            session.add(
                UserProfile(
                    id=user_id,
                    email="scholar@example.com",
                    subscription_tier=SubscriptionTier.PREMIUM.value,
                )
            )

        repo = ProfileRepository(sqlite_session_factory)
        assert await repo.get_subscription_tier(user_id) == SubscriptionTier.PREMIUM

    @pytest.mark.asyncio
    async def test_unknown_tier_is_free(self, sqlite_session_factory):
        user_id = uuid.uuid4()
        async with session_scope(sqlite_session_factory) as session:
            session.add(UserProfile(id=user_id, email="x@example.com", subscription_tier="enterprise"))

        repo = ProfileRepository(sqlite_session_factory)
        assert await repo.get_subscription_tier(user_id) == SubscriptionTier.FREE
