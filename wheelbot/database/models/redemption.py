# wheelbot/database/models/redemption.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func, Index
from sqlalchemy.orm import Mapped, mapped_column

from wheelbot.database.base import Base


class CouponRedemption(Base):
    """
    A won coupon handed in at the merchant. At most one per draw.
    """
    __tablename__ = "coupon_redemptions"
    __table_args__ = (
        UniqueConstraint("user_id", "draw_id", name="uq_coupon_redemptions_user_draw"),
        Index("ix_coupon_redemptions_user_time", "user_id", "redeemed_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    draw_id: Mapped[int] = mapped_column(ForeignKey("draw_records.id", ondelete="CASCADE"))
    merchant_id: Mapped[int] = mapped_column(ForeignKey("merchants.id", ondelete="CASCADE"))
    coupon_id: Mapped[int | None] = mapped_column(
        ForeignKey("coupons.id", ondelete="SET NULL"),
        nullable=True,
    )

    # naive UTC
    redeemed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())
