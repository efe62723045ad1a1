# wheelbot/database/models/coupon.py
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wheelbot.database.base import Base

if TYPE_CHECKING:
    from wheelbot.database.models.merchant import Merchant


class Coupon(Base):
    """
    A merchant's discount coupon.

    weight is the relative frequency on the wheel (5 is five times as likely as 1).
    Streak-reward coupons are never put on the wheel; only the check-in milestone grants them.
    """
    __tablename__ = "coupons"
    __table_args__ = (
        Index("ix_coupons_merchant_active", "merchant_id", "is_active"),
        CheckConstraint("weight >= 1 AND weight <= 10", name="ck_coupons_weight_range"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    merchant_id: Mapped[int] = mapped_column(ForeignKey("merchants.id", ondelete="CASCADE"), index=True)

    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    weight: Mapped[int] = mapped_column(Integer, default=5)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_streak_reward: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    # null = never expires (naive UTC)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())

    merchant: Mapped["Merchant"] = relationship(back_populates="coupons")

    def is_expired(self, now_utc: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now_utc

    def is_available(self, now_utc: datetime) -> bool:
        """Active and not expired. Says nothing about the streak-reward class."""
        return bool(self.is_active) and not self.is_expired(now_utc)
