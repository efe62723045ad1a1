# wheelbot/services/streak.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from random import Random, SystemRandom

from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.database.models import (
    BonusSource,
    CheckInRecord,
    Coupon,
    DrawRecord,
    DrawSource,
    MealPeriod,
    Merchant,
)
from wheelbot.database.repo.merchants_repo import coupons_by_merchant, list_streak_reward_merchants
from wheelbot.database.tx import transactional
from wheelbot.services.allocator import weighted_choice
from wheelbot.services.errors import AlreadyCheckedInToday
from wheelbot.services.quota import QuotaLedger
from wheelbot.utils.dates import days_between
from wheelbot.utils.dt import to_utc_naive

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StreakBonus:
    draw: DrawRecord
    merchant: Merchant
    coupon: Coupon


@dataclass(frozen=True, slots=True)
class CheckInResult:
    record: CheckInRecord
    consecutive_days: int
    bonus_attempt_granted: bool
    bonus: StreakBonus | None = None


@dataclass(frozen=True, slots=True)
class CheckInStatus:
    has_checked_in_today: bool
    consecutive_days: int
    reward_claimed: bool
    last_check_in_day: date | None


def next_streak(previous: CheckInRecord | None, today: date) -> int:
    """Consecutive days after checking in `today`, given the latest earlier record."""
    if previous is None:
        return 1
    if days_between(previous.day, today) == 1:
        return int(previous.consecutive_days or 0) + 1
    return 1


class StreakTracker:
    """
    Daily check-in with streak counting.

    Every check-in grants one bonus draw attempt for the day. Once the streak
    reaches the milestone (and on every later day while it holds) a coupon of
    the streak-reward class is granted directly as a draw record; this is the
    only path that can ever hand out such a coupon.
    """

    def __init__(self, ledger: QuotaLedger, *, milestone_days: int = 7, rng: Random | None = None) -> None:
        self.ledger = ledger
        self.milestone_days = milestone_days
        self.rng = rng or SystemRandom()

    async def check_in(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        today: date,
        now: datetime,
        period: MealPeriod | None = None,
    ) -> CheckInResult:
        now_utc = to_utc_naive(now)

        previous = await session.scalar(
            select(CheckInRecord)
            .where(CheckInRecord.user_id == user_id, CheckInRecord.day < today)
            .order_by(desc(CheckInRecord.day))
            .limit(1)
        )
        consecutive = next_streak(previous, today)

        # 1) the (user_id, day) unique constraint is the duplicate detector
        record = CheckInRecord(
            user_id=user_id,
            day=today,
            consecutive_days=consecutive,
            reward_claimed=False,
            created_at=now_utc,
        )
        try:
            async with transactional(session):
                session.add(record)
                await session.flush()
        except IntegrityError:
            raise AlreadyCheckedInToday("already checked in today") from None

        async with transactional(session):
            # 2) +1 draw attempt for today
            granted = await self.ledger.grant_bonus(
                session,
                user_id=user_id,
                day=today,
                source=BonusSource.CHECKIN,
                ref_id=record.id,
            )

            # 3) milestone reward
            bonus = None
            if consecutive >= self.milestone_days:
                bonus = await self._grant_streak_reward(
                    session,
                    user_id=user_id,
                    period=period or MealPeriod.LUNCH,
                    now_utc=now_utc,
                )

        log.info("Check-in user=%s day=%s streak=%s bonus=%s", user_id, today, consecutive, bool(bonus))
        return CheckInResult(
            record=record,
            consecutive_days=consecutive,
            bonus_attempt_granted=granted,
            bonus=bonus,
        )

    async def _grant_streak_reward(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        period: MealPeriod,
        now_utc: datetime,
    ) -> StreakBonus | None:
        merchants = await list_streak_reward_merchants(session)
        coupons = await coupons_by_merchant(session, [m.id for m in merchants], streak_reward=True)

        offering: list[tuple[Merchant, list[Coupon]]] = []
        for m in merchants:
            live = [c for c in coupons.get(m.id, ()) if c.is_available(now_utc)]
            if live:
                offering.append((m, live))

        if not offering:
            log.info("Streak milestone for user=%s but no merchant offers a streak reward", user_id)
            return None

        merchant, live = self.rng.choice(offering)
        coupon = weighted_choice(live, self.rng) or live[0]

        draw = DrawRecord(
            user_id=user_id,
            merchant_id=merchant.id,
            coupon_id=coupon.id,
            period=period,
            source=DrawSource.STREAK,
            is_shared=False,
            created_at=now_utc,
        )
        session.add(draw)
        await session.flush()
        return StreakBonus(draw=draw, merchant=merchant, coupon=coupon)

    @staticmethod
    async def status(session: AsyncSession, *, user_id: int, today: date) -> CheckInStatus:
        latest = await session.scalar(
            select(CheckInRecord)
            .where(CheckInRecord.user_id == user_id, CheckInRecord.day <= today)
            .order_by(desc(CheckInRecord.day))
            .limit(1)
        )
        if latest is None:
            return CheckInStatus(
                has_checked_in_today=False,
                consecutive_days=0,
                reward_claimed=False,
                last_check_in_day=None,
            )

        checked_today = latest.day == today
        return CheckInStatus(
            has_checked_in_today=checked_today,
            consecutive_days=int(latest.consecutive_days) if checked_today else 0,
            reward_claimed=bool(latest.reward_claimed) if checked_today else False,
            last_check_in_day=latest.day,
        )

    @staticmethod
    async def history(session: AsyncSession, *, user_id: int, limit: int = 30) -> list[CheckInRecord]:
        res = await session.execute(
            select(CheckInRecord)
            .where(CheckInRecord.user_id == user_id)
            .order_by(desc(CheckInRecord.day))
            .limit(limit)
        )
        return list(res.scalars().all())
