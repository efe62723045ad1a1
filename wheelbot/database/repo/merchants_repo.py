# wheelbot/database/repo/merchants_repo.py
from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.database.models import Coupon, Merchant


async def get_merchant(session: AsyncSession, merchant_id: int) -> Merchant | None:
    return await session.get(Merchant, merchant_id)


async def get_coupon(session: AsyncSession, coupon_id: int) -> Coupon | None:
    return await session.get(Coupon, coupon_id)


async def list_merchants(session: AsyncSession, *, active_only: bool = False) -> list[Merchant]:
    q = select(Merchant).order_by(Merchant.name, Merchant.id)
    if active_only:
        q = q.where(Merchant.is_active.is_(True))
    res = await session.execute(q)
    return list(res.scalars().all())


async def get_merchants_by_ids(session: AsyncSession, merchant_ids: Iterable[int]) -> dict[int, Merchant]:
    ids = {int(i) for i in merchant_ids}
    if not ids:
        return {}
    res = await session.execute(select(Merchant).where(Merchant.id.in_(ids)))
    return {m.id: m for m in res.scalars().all()}


async def coupons_by_merchant(
    session: AsyncSession,
    merchant_ids: Iterable[int],
    *,
    streak_reward: bool | None = None,
) -> dict[int, list[Coupon]]:
    """
    All coupons of the given merchants, grouped by merchant id.
    Filtering on active/expiry is left to the caller; streak_reward narrows by class.
    """
    ids = {int(i) for i in merchant_ids}
    out: dict[int, list[Coupon]] = defaultdict(list)
    if not ids:
        return out

    q = select(Coupon).where(Coupon.merchant_id.in_(ids)).order_by(Coupon.id)
    if streak_reward is not None:
        q = q.where(Coupon.is_streak_reward.is_(streak_reward))

    res = await session.execute(q)
    for c in res.scalars().all():
        out[c.merchant_id].append(c)
    return out


async def list_streak_reward_merchants(session: AsyncSession) -> Sequence[Merchant]:
    """Active merchants that opted into the check-in reward pool."""
    res = await session.execute(
        select(Merchant)
        .where(
            Merchant.is_active.is_(True),
            Merchant.provides_streak_reward.is_(True),
        )
        .order_by(Merchant.name, Merchant.id)
    )
    return res.scalars().all()
