# wheelbot/database/models/checkin.py
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, UniqueConstraint, func, Index
from sqlalchemy.orm import Mapped, mapped_column

from wheelbot.database.base import Base


class CheckInRecord(Base):
    """
    One row per user per civil day (home timezone).
    The unique constraint is what rejects a second check-in on the same day.
    consecutive_days is fixed at insert time and never recomputed.
    """
    __tablename__ = "check_in_records"
    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_check_in_records_user_day"),
        Index("ix_check_in_records_user_day_desc", "user_id", "day"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    day: Mapped[date] = mapped_column(Date)

    consecutive_days: Mapped[int] = mapped_column(Integer, default=1)
    # the day's bonus draw attempt has been used
    reward_claimed: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())
