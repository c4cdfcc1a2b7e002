"""
Notivate Backend - Usage Tracking Model
=========================================

What:  ORM model for `usage_tracking`: one row per (user, calendar month).
How:   The row is created lazily by the first successful transform of the month
       (count = 1) and afterwards only ever incremented by exactly one, through
       a single INSERT ... ON CONFLICT DO UPDATE statement (see
       repositories/usage_repository.py). Rows are never decremented or deleted
       by the application.
Who:   UsageRepository, Alembic.

Month key:
    'YYYY-MM' of the UTC calendar date at the time of the event. A request that
    starts in one month and finishes in the next is charged to the month in
    which the increment runs.
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from notivate.database import Base
from notivate.models.note import utc_now


class UsageRecord(Base):
    __tablename__ = "usage_tracking"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    transforms_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        # Target of the upsert's ON CONFLICT clause
        UniqueConstraint("user_id", "month", name="uq_usage_tracking_user_month"),
        CheckConstraint("transforms_count >= 0", name="ck_usage_tracking_count_nonneg"),
    )

    def __repr__(self) -> str:
        return (
            f"<UsageRecord(user_id={self.user_id}, month='{self.month}', "
            f"transforms_count={self.transforms_count})>"
        )
