"""
Notivate Backend - Usage Repository
=====================================

What:  Data access for `usage_tracking`: read a month's count, and increment
       it atomically.
How:   Every call opens its own short transaction from the session factory, so
       an increment is committed independently of whatever request-scoped
       session the caller may hold.

Atomic increment:
    INSERT INTO usage_tracking (user_id, month, transforms_count, ...)
    VALUES (:user_id, :month, 1, ...)
    ON CONFLICT (user_id, month)
    DO UPDATE SET transforms_count = usage_tracking.transforms_count + 1
    RETURNING transforms_count

    One statement, so the database serializes concurrent increments on the
    row lock. No read-then-write window exists, across requests or across
    processes.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notivate.database import session_scope
from notivate.models.note import utc_now
from notivate.models.usage import UsageRecord

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def upsert_insert_for(dialect: str):
    """
    The dialect's INSERT construct with ON CONFLICT support.

    Raises:
        ValueError: the database has no atomic upsert; usage could not be
            counted, so the service must not start on it.
    """
    insert = _UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise ValueError(
            f"Database dialect '{dialect}' is not supported for usage accounting "
            f"(supported: {', '.join(sorted(_UPSERT_INSERTS))})"
        )
    return insert


class UsageRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_usage(self, user_id: uuid.UUID, month: str) -> Optional[int]:
        """Returns the month's count, or None when no record exists yet."""
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(UsageRecord.transforms_count).where(
                    UsageRecord.user_id == user_id,
                    UsageRecord.month == month,
                )
            )
            return result.scalar_one_or_none()

    async def increment_usage(self, user_id: uuid.UUID, month: str) -> int:
        """
        Adds exactly one transform to (user_id, month), creating the record
        with count 1 if absent.

        Returns:
            The count after the increment.

        Raises:
            ValueError: the bound dialect has no ON CONFLICT upsert.
            sqlalchemy.exc.SQLAlchemyError: the statement failed.
        """
        async with session_scope(self._session_factory) as session:
            insert = upsert_insert_for(session.get_bind().dialect.name)

            now = utc_now()
            stmt = insert(UsageRecord).values(
                id=uuid.uuid4(),
                user_id=user_id,
                month=month,
                transforms_count=1,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "month"],
                set_={
                    "transforms_count": UsageRecord.transforms_count + 1,
                    "updated_at": now,
                },
            ).returning(UsageRecord.transforms_count)

            result = await session.execute(stmt)
            return result.scalar_one()
