# wheelbot/database/models/draw.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    func,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from wheelbot.database.base import Base


class MealPeriod(str, enum.Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    AFTERNOON_TEA = "afternoon_tea"
    DINNER = "dinner"
    LATE_NIGHT = "late_night"


class DrawSource(str, enum.Enum):
    WHEEL = "wheel"
    STREAK = "streak"  # check-in milestone grant, never from the wheel


class DrawRecord(Base):
    """
    Authoritative result of one confirmed draw (or one streak grant).
    Immutable after creation except is_shared, which flips false -> true once.
    """
    __tablename__ = "draw_records"
    __table_args__ = (
        Index("ix_draw_records_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    merchant_id: Mapped[int] = mapped_column(ForeignKey("merchants.id", ondelete="CASCADE"), index=True)
    coupon_id: Mapped[int | None] = mapped_column(
        ForeignKey("coupons.id", ondelete="SET NULL"),
        nullable=True,
    )

    period: Mapped[MealPeriod] = mapped_column(Enum(MealPeriod, native_enum=False), index=True)
    source: Mapped[DrawSource] = mapped_column(
        Enum(DrawSource, native_enum=False),
        default=DrawSource.WHEEL,
    )

    is_shared: Mapped[bool] = mapped_column(Boolean, default=False)

    # naive UTC, set by the service from its clock
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())


class DrawAnomaly(Base):
    """
    Declared outcomes the arbiter refused to honor (coupon downgraded to none).
    Never surfaced to the user; kept for operators.
    """
    __tablename__ = "draw_anomalies"
    __table_args__ = (
        Index("ix_draw_anomalies_user_time", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    draw_id: Mapped[int | None] = mapped_column(
        ForeignKey("draw_records.id", ondelete="SET NULL"),
        nullable=True,
    )

    merchant_id: Mapped[int] = mapped_column(Integer)
    declared_coupon_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # "coupon_missing" | "coupon_inactive" | "coupon_expired" | "streak_reward" | "merchant_mismatch"
    reason: Mapped[str] = mapped_column(String(32), index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())
