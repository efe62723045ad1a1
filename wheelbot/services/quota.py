# wheelbot/services/quota.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.config.settings import QuotaPolicy
from wheelbot.database.models import BonusAttempt, BonusSource, CheckInRecord, MealPeriod, QuotaCounter
from wheelbot.services.errors import DailyQuotaExceeded, PeriodQuotaExceeded, QuotaExceeded
from wheelbot.utils.dt import to_utc_naive

log = logging.getLogger(__name__)

# what privileged accounts see as "remaining"
UNLIMITED = 999


@dataclass(frozen=True, slots=True)
class Reservation:
    user_id: int
    day: date
    period: MealPeriod
    privileged: bool = False
    # paid with a bonus attempt instead of the regular quota
    bonus: bool = False
    used_in_period: int = 0
    used_in_day: int = 0


@dataclass(frozen=True, slots=True)
class QuotaStatus:
    used_in_period: int
    used_in_day: int
    remaining_in_period: int
    remaining_in_day: int
    rewarded_in_day: int
    bonus_remaining: int
    is_privileged: bool

    @property
    def can_draw(self) -> bool:
        if self.is_privileged or self.bonus_remaining > 0:
            return True
        return self.remaining_in_period > 0 and self.remaining_in_day > 0


class QuotaLedger:
    """
    Per (user, day, period) draw counters.

    The period check is a single atomic upsert with a ceiling, so two
    concurrent draws can never both pass at used_count == limit - 1.
    The daily total is summed after that write, inside the same transaction;
    on SQLite the write lock is held from the upsert until commit.
    """

    def __init__(self, policy: QuotaPolicy | None = None) -> None:
        self.policy = policy or QuotaPolicy()

    # -------------------------------------------------
    # Reservation
    # -------------------------------------------------

    async def check_and_reserve(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        day: date,
        period: MealPeriod,
        is_privileged: bool,
        now: datetime,
    ) -> Reservation:
        if is_privileged:
            # no counter row for admins, keeps quota stats clean
            return Reservation(user_id=user_id, day=day, period=period, privileged=True)

        try:
            used_in_period = await self._increment_period(session, user_id=user_id, day=day, period=period)
            used_in_day = await self.used_in_day(session, user_id=user_id, day=day)
            if used_in_day > self.policy.max_per_day:
                # undo our own increment; never retried
                await self._decrement_period(session, user_id=user_id, day=day, period=period)
                raise DailyQuotaExceeded(
                    f"daily limit reached ({self.policy.max_per_day})",
                    used=used_in_day - 1,
                    limit=self.policy.max_per_day,
                )
        except QuotaExceeded as e:
            if not await self._consume_bonus(session, user_id=user_id, day=day, now=now):
                log.info("Quota rejected user=%s day=%s period=%s: %s", user_id, day, period.value, e.code)
                raise

            log.info("Bonus attempt used user=%s day=%s period=%s (%s)", user_id, day, period.value, e.code)
            return Reservation(
                user_id=user_id,
                day=day,
                period=period,
                bonus=True,
                used_in_period=await self.used_in_period(session, user_id=user_id, day=day, period=period),
                used_in_day=await self.used_in_day(session, user_id=user_id, day=day),
            )

        return Reservation(
            user_id=user_id,
            day=day,
            period=period,
            used_in_period=used_in_period,
            used_in_day=used_in_day,
        )

    async def _increment_period(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        day: date,
        period: MealPeriod,
    ) -> int:
        limit = self.policy.max_per_period
        if limit <= 0:
            raise PeriodQuotaExceeded("draws are disabled", used=0, limit=limit)

        # INSERT .. ON CONFLICT DO UPDATE .. WHERE used_count < limit RETURNING used_count
        # no row back == the ceiling held
        stmt = (
            sqlite_insert(QuotaCounter)
            .values(user_id=user_id, day=day, period=period, used_count=1, rewarded_count=0)
            .on_conflict_do_update(
                index_elements=["user_id", "day", "period"],
                set_={
                    "used_count": QuotaCounter.used_count + 1,
                    "updated_at": func.now(),
                },
                where=QuotaCounter.used_count < limit,
            )
            .returning(QuotaCounter.used_count)
        )
        res = await session.execute(stmt)
        used = res.scalar_one_or_none()
        if used is None:
            raise PeriodQuotaExceeded(
                f"period limit reached ({limit})",
                used=limit,
                limit=limit,
            )
        return int(used)

    async def _decrement_period(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        day: date,
        period: MealPeriod,
    ) -> None:
        await session.execute(
            update(QuotaCounter)
            .where(
                QuotaCounter.user_id == user_id,
                QuotaCounter.day == day,
                QuotaCounter.period == period,
                QuotaCounter.used_count > 0,
            )
            .values(used_count=QuotaCounter.used_count - 1)
            .execution_options(synchronize_session=False)
        )

    async def _consume_bonus(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        day: date,
        now: datetime,
    ) -> bool:
        row = (
            await session.execute(
                select(BonusAttempt.id, BonusAttempt.source, BonusAttempt.ref_id)
                .where(
                    BonusAttempt.user_id == user_id,
                    BonusAttempt.day == day,
                    BonusAttempt.used_at.is_(None),
                )
                .order_by(BonusAttempt.id)
                .limit(1)
            )
        ).first()
        if row is None:
            return False

        bonus_id, source, ref_id = row
        res = await session.execute(
            update(BonusAttempt)
            .where(BonusAttempt.id == bonus_id, BonusAttempt.used_at.is_(None))
            .values(used_at=to_utc_naive(now))
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            # a concurrent draw took it
            return False

        if source == BonusSource.CHECKIN:
            await session.execute(
                update(CheckInRecord)
                .where(CheckInRecord.id == ref_id)
                .values(reward_claimed=True)
                .execution_options(synchronize_session=False)
            )
        return True

    # -------------------------------------------------
    # Rewards
    # -------------------------------------------------

    async def record_reward(self, session: AsyncSession, reservation: Reservation) -> None:
        """Count one coupon-bearing outcome against the reservation's bucket."""
        if reservation.privileged:
            return

        stmt = (
            sqlite_insert(QuotaCounter)
            .values(
                user_id=reservation.user_id,
                day=reservation.day,
                period=reservation.period,
                used_count=0,
                rewarded_count=1,
            )
            .on_conflict_do_update(
                index_elements=["user_id", "day", "period"],
                set_={
                    "rewarded_count": QuotaCounter.rewarded_count + 1,
                    "updated_at": func.now(),
                },
            )
        )
        await session.execute(stmt)

    async def rewarded_in_day(self, session: AsyncSession, *, user_id: int, day: date) -> int:
        total = await session.scalar(
            select(func.coalesce(func.sum(QuotaCounter.rewarded_count), 0)).where(
                QuotaCounter.user_id == user_id,
                QuotaCounter.day == day,
            )
        )
        return int(total or 0)

    async def reward_cap_reached(self, session: AsyncSession, reservation: Reservation) -> bool:
        if reservation.privileged:
            return False
        rewarded = await self.rewarded_in_day(session, user_id=reservation.user_id, day=reservation.day)
        return rewarded >= self.policy.max_rewards_per_day

    # -------------------------------------------------
    # Bonus attempts
    # -------------------------------------------------

    async def grant_bonus(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        day: date,
        source: BonusSource,
        ref_id: int,
    ) -> bool:
        """Grant one extra attempt for `day`. Returns False if this grant already exists."""
        stmt = (
            sqlite_insert(BonusAttempt)
            .values(user_id=user_id, day=day, source=source, ref_id=ref_id)
            .on_conflict_do_nothing(index_elements=["user_id", "source", "ref_id"])
        )
        res = await session.execute(stmt)
        return res.rowcount == 1

    async def bonus_remaining(self, session: AsyncSession, *, user_id: int, day: date) -> int:
        total = await session.scalar(
            select(func.count(BonusAttempt.id)).where(
                BonusAttempt.user_id == user_id,
                BonusAttempt.day == day,
                BonusAttempt.used_at.is_(None),
            )
        )
        return int(total or 0)

    # -------------------------------------------------
    # Reads
    # -------------------------------------------------

    async def used_in_period(self, session: AsyncSession, *, user_id: int, day: date, period: MealPeriod) -> int:
        used = await session.scalar(
            select(QuotaCounter.used_count).where(
                QuotaCounter.user_id == user_id,
                QuotaCounter.day == day,
                QuotaCounter.period == period,
            )
        )
        return int(used or 0)

    async def used_in_day(self, session: AsyncSession, *, user_id: int, day: date) -> int:
        total = await session.scalar(
            select(func.coalesce(func.sum(QuotaCounter.used_count), 0)).where(
                QuotaCounter.user_id == user_id,
                QuotaCounter.day == day,
            )
        )
        return int(total or 0)

    async def remaining(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        day: date,
        period: MealPeriod,
        is_privileged: bool,
    ) -> QuotaStatus:
        if is_privileged:
            return QuotaStatus(
                used_in_period=0,
                used_in_day=0,
                remaining_in_period=UNLIMITED,
                remaining_in_day=UNLIMITED,
                rewarded_in_day=0,
                bonus_remaining=0,
                is_privileged=True,
            )

        used_p = await self.used_in_period(session, user_id=user_id, day=day, period=period)
        used_d = await self.used_in_day(session, user_id=user_id, day=day)

        return QuotaStatus(
            used_in_period=used_p,
            used_in_day=used_d,
            remaining_in_period=max(0, self.policy.max_per_period - used_p),
            remaining_in_day=max(0, self.policy.max_per_day - used_d),
            rewarded_in_day=await self.rewarded_in_day(session, user_id=user_id, day=day),
            bonus_remaining=await self.bonus_remaining(session, user_id=user_id, day=day),
            is_privileged=False,
        )
