# wheelbot/database/models/merchant.py
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wheelbot.database.base import Base

if TYPE_CHECKING:
    from wheelbot.database.models.coupon import Coupon


class Merchant(Base):
    """
    Participating merchant. Written by the CRUD side only; the engine reads it.

    operating_hours keeps whatever encoding the merchant was saved with
    (JSON weekly map, legacy "HH:MM-HH:MM" strings per day, ...).
    It is normalized by services.schedule.parse_weekly_schedule before matching.
    """
    __tablename__ = "merchants"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)

    operating_hours: Mapped[str] = mapped_column(Text, default="{}")

    # opted into the 7-day check-in reward pool
    provides_streak_reward: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        onupdate=func.now(),
    )

    coupons: Mapped[List["Coupon"]] = relationship(
        back_populates="merchant",
        cascade="all, delete-orphan",
        order_by="Coupon.id",
    )
