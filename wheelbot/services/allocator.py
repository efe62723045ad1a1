# wheelbot/services/allocator.py
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from random import Random, SystemRandom
from typing import Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.database.models import Coupon, Merchant
from wheelbot.database.repo.merchants_repo import coupons_by_merchant, get_merchants_by_ids
from wheelbot.services.errors import MerchantNotFound
from wheelbot.utils.dt import to_utc_naive


@dataclass(frozen=True, slots=True)
class WheelSlice:
    """One wheel position for one allocation request. Never persisted."""
    merchant: Merchant
    coupon: Coupon | None

    @property
    def merchant_id(self) -> int:
        return self.merchant.id

    @property
    def coupon_id(self) -> int | None:
        return self.coupon.id if self.coupon is not None else None


def wheel_candidates(coupons: Sequence[Coupon], now_utc: datetime) -> list[Coupon]:
    """Coupons allowed on the wheel: active, unexpired, never a streak reward."""
    return [c for c in coupons if c.is_available(now_utc) and not c.is_streak_reward]


def weighted_choice(coupons: Sequence[Coupon], rng: Random) -> Coupon | None:
    """
    Draw uniformly over the sum of weights, so weight 5 is five times as
    likely as weight 1. Non-positive weights never win.
    """
    total = sum(max(int(c.weight or 0), 0) for c in coupons)
    if total <= 0:
        return None

    ticket = rng.randrange(total)
    for c in coupons:
        w = max(int(c.weight or 0), 0)
        if ticket < w:
            return c
        ticket -= w
    return None  # unreachable with a consistent total


def pointer_index(angle_deg: float, count: int) -> int:
    """
    Slice under the pointer after the wheel stops at `angle_deg` of clockwise
    rotation. Slice 0 starts at twelve o'clock and slices run clockwise, so
    the pointer reads the wheel backwards.
    """
    if count <= 0:
        raise ValueError("wheel has no slices")
    normalized = math.fmod(angle_deg, 360.0)
    if normalized < 0:
        normalized += 360.0
    adjusted = (360.0 - normalized) % 360.0
    slice_angle = 360.0 / count
    return int(adjusted // slice_angle) % count


class SliceAllocator:
    def __init__(self, rng: Random | None = None) -> None:
        self.rng = rng or SystemRandom()

    def allocate(
        self,
        merchants: Sequence[Merchant],
        coupons: Mapping[int, Sequence[Coupon]],
        *,
        now: datetime,
    ) -> list[WheelSlice]:
        """
        One slice per merchant, same order as `merchants`.
        Coupons are re-drawn on every call; nothing is remembered between calls.
        """
        now_utc = to_utc_naive(now)
        out: list[WheelSlice] = []
        for m in merchants:
            candidates = wheel_candidates(coupons.get(m.id, ()), now_utc)
            out.append(WheelSlice(merchant=m, coupon=weighted_choice(candidates, self.rng)))
        return out

    async def allocate_wheel(
        self,
        session: AsyncSession,
        merchant_ids: Sequence[int],
        *,
        now: datetime,
    ) -> list[WheelSlice]:
        found = await get_merchants_by_ids(session, merchant_ids)
        for mid in merchant_ids:
            if mid not in found:
                raise MerchantNotFound(mid)

        merchants = [found[mid] for mid in merchant_ids]
        # streak-reward class is filtered at the query too, not only in wheel_candidates
        coupons = await coupons_by_merchant(session, found.keys(), streak_reward=False)
        return self.allocate(merchants, coupons, now=now)
