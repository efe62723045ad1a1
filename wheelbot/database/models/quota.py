# wheelbot/database/models/quota.py
from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    UniqueConstraint,
    func,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from wheelbot.database.base import Base
from wheelbot.database.models.draw import MealPeriod


class QuotaCounter(Base):
    """
    One row per (user, day, period). `day` is the civil date in the home timezone.
    A new day simply has no row yet, which reads as zero.
    Privileged accounts never get rows.
    """
    __tablename__ = "quota_counters"
    __table_args__ = (
        UniqueConstraint("user_id", "day", "period", name="uq_quota_counters_user_day_period"),
        Index("ix_quota_counters_user_day", "user_id", "day"),
        CheckConstraint("used_count >= 0", name="ck_quota_counters_used_nonneg"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    day: Mapped[date] = mapped_column(Date)
    period: Mapped[MealPeriod] = mapped_column(Enum(MealPeriod, native_enum=False))

    used_count: Mapped[int] = mapped_column(Integer, default=0)
    # draws in this bucket that carried a coupon
    rewarded_count: Mapped[int] = mapped_column(Integer, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        onupdate=func.now(),
    )


class BonusSource(str, enum.Enum):
    CHECKIN = "checkin"
    SHARE = "share"


class BonusAttempt(Base):
    """
    Ledger of extra draw attempts, valid on the day they were granted.
    Consumed only after the regular period/day quota is exhausted.

    Anti-duplicate: one grant per (user, source, ref), where ref is the
    check-in record id or the shared draw id.
    """
    __tablename__ = "bonus_attempts"
    __table_args__ = (
        UniqueConstraint("user_id", "source", "ref_id", name="uq_bonus_attempts_user_src_ref"),
        Index("ix_bonus_attempts_user_day", "user_id", "day"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    day: Mapped[date] = mapped_column(Date)

    source: Mapped[BonusSource] = mapped_column(Enum(BonusSource, native_enum=False))
    ref_id: Mapped[int] = mapped_column(Integer)

    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())
