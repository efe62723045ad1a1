# wheelbot/services/arbiter.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy import desc, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.database.models import (
    BonusSource,
    Coupon,
    CouponRedemption,
    DrawAnomaly,
    DrawRecord,
    DrawSource,
    MealPeriod,
    Merchant,
)
from wheelbot.database.repo.merchants_repo import get_coupon, get_merchant
from wheelbot.database.tx import transactional
from wheelbot.services.errors import (
    AlreadyRedeemed,
    AlreadyShared,
    CouponExpired,
    Forbidden,
    MerchantNotFound,
    NotFound,
    ValidationError,
)
from wheelbot.services.quota import QuotaLedger, Reservation
from wheelbot.services.schedule import parse_period
from wheelbot.utils.dates import days_between
from wheelbot.utils.dt import local_date, to_utc_naive

log = logging.getLogger(__name__)

# won coupons stay listed this many days after they lapse
HIDE_AFTER_DAYS = 2


@dataclass(frozen=True, slots=True)
class DrawConfirmation:
    """What the client must display. Its own local computation is discarded."""
    draw: DrawRecord
    merchant: Merchant
    coupon: Coupon | None
    reservation: Reservation
    # declared coupon refused (anomaly reason), or None
    downgraded: str | None = None
    # coupon withheld by the daily reward cap
    reward_capped: bool = False


@dataclass(frozen=True, slots=True)
class DrawClaim:
    """A client's report of where the wheel stopped."""
    period: MealPeriod
    merchant_id: int
    coupon_id: int | None


def _positive_int(value: object, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{field_name} must be an integer")
    try:
        n = int(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be an integer") from None
    if n <= 0:
        raise ValidationError(f"{field_name} must be positive")
    return n


def parse_draw_claim(raw: str | bytes | None) -> DrawClaim:
    """
    Web App payload -> DrawClaim, rejected before any DB access:
        {"action": "draw", "period": "lunch", "merchant_id": 3, "coupon_id": 12}
    coupon_id may be null or absent (merchant-only slice).
    """
    try:
        data = json.loads(raw or "")
    except (TypeError, ValueError):
        raise ValidationError("malformed draw payload") from None
    if not isinstance(data, dict):
        raise ValidationError("malformed draw payload")
    if data.get("action", "draw") != "draw":
        raise ValidationError(f"unsupported action {data.get('action')!r}")
    if "merchant_id" not in data:
        raise ValidationError("merchant_id is required")

    coupon_raw = data.get("coupon_id")
    return DrawClaim(
        period=parse_period(data.get("period")),
        merchant_id=_positive_int(data["merchant_id"], "merchant_id"),
        coupon_id=None if coupon_raw is None else _positive_int(coupon_raw, "coupon_id"),
    )


@dataclass(frozen=True, slots=True)
class ShareResult:
    draw_id: int
    bonus_granted: bool


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    draw: DrawRecord
    merchant: Merchant
    coupon: Coupon | None
    expired: bool
    redeemed: bool = False


class DrawArbiter:
    """
    Turns a client's claim ("the pointer stopped on merchant M, coupon C")
    into the authoritative draw record.

    The claim is re-validated but never re-derived: the merchant must exist,
    and the coupon is honored only if it is a live wheel coupon of that
    merchant. Anything else is downgraded to a merchant-only win without an
    error, so a client cannot discover which coupons are streak rewards.
    """

    def __init__(self, ledger: QuotaLedger, tz: ZoneInfo) -> None:
        self.ledger = ledger
        self.tz = tz

    async def confirm_draw(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        period: MealPeriod,
        merchant_id: int,
        coupon_id: int | None,
        is_privileged: bool,
        now: datetime,
    ) -> DrawConfirmation:
        day = local_date(now, self.tz)
        now_utc = to_utc_naive(now)

        async with transactional(session):
            # 1) existence first: a vanished merchant must not cost quota
            merchant = await get_merchant(session, merchant_id)
            if merchant is None:
                raise MerchantNotFound(merchant_id)

            # 2) declared coupon, silently downgraded when not honorable
            coupon, anomaly = await self._validate_coupon(session, merchant, coupon_id, now_utc)

            # 3) quota, errors propagate as-is
            reservation = await self.ledger.check_and_reserve(
                session,
                user_id=user_id,
                day=day,
                period=period,
                is_privileged=is_privileged,
                now=now,
            )

            reward_capped = False
            if coupon is not None and await self.ledger.reward_cap_reached(session, reservation):
                coupon = None
                reward_capped = True

            # 4) persist
            draw = DrawRecord(
                user_id=user_id,
                merchant_id=merchant.id,
                coupon_id=coupon.id if coupon is not None else None,
                period=period,
                source=DrawSource.WHEEL,
                is_shared=False,
                created_at=now_utc,
            )
            session.add(draw)
            await session.flush()

            if anomaly is not None:
                log.warning(
                    "Draw %s downgraded: user=%s merchant=%s declared_coupon=%s reason=%s",
                    draw.id,
                    user_id,
                    merchant.id,
                    coupon_id,
                    anomaly,
                )
                session.add(
                    DrawAnomaly(
                        user_id=user_id,
                        draw_id=draw.id,
                        merchant_id=merchant.id,
                        declared_coupon_id=coupon_id,
                        reason=anomaly,
                        created_at=now_utc,
                    )
                )
                await session.flush()

            if coupon is not None:
                await self.ledger.record_reward(session, reservation)

        # 5) the persisted record is the single source of truth
        return DrawConfirmation(
            draw=draw,
            merchant=merchant,
            coupon=coupon,
            reservation=reservation,
            downgraded=anomaly,
            reward_capped=reward_capped,
        )

    @staticmethod
    async def _validate_coupon(
        session: AsyncSession,
        merchant: Merchant,
        coupon_id: int | None,
        now_utc: datetime,
    ) -> tuple[Coupon | None, str | None]:
        if coupon_id is None:
            return None, None

        coupon = await get_coupon(session, coupon_id)
        if coupon is None:
            return None, "coupon_missing"
        if coupon.is_streak_reward:
            return None, "streak_reward"
        if coupon.merchant_id != merchant.id:
            return None, "merchant_mismatch"
        if not coupon.is_active:
            return None, "coupon_inactive"
        if coupon.is_expired(now_utc):
            return None, "coupon_expired"
        return coupon, None

    async def record_share(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        draw_id: int,
        day: date,
    ) -> ShareResult:
        """
        Mark a draw as shared and grant one bonus attempt for `day`.
        The flag flips with a conditional UPDATE, so two racing shares grant once.
        """
        async with transactional(session):
            owner_id = await session.scalar(select(DrawRecord.user_id).where(DrawRecord.id == draw_id))
            if owner_id is None:
                raise NotFound(f"draw {draw_id} not found")
            if owner_id != user_id:
                raise Forbidden("not your draw")

            res = await session.execute(
                update(DrawRecord)
                .where(DrawRecord.id == draw_id, DrawRecord.is_shared.is_(False))
                .values(is_shared=True)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                raise AlreadyShared("already shared")

            granted = await self.ledger.grant_bonus(
                session,
                user_id=user_id,
                day=day,
                source=BonusSource.SHARE,
                ref_id=draw_id,
            )

        log.info("Draw %s shared by user=%s bonus_granted=%s", draw_id, user_id, granted)
        return ShareResult(draw_id=draw_id, bonus_granted=granted)

    # -------------------------------------------------
    # Redemption (coupon handed in at the merchant)
    # -------------------------------------------------

    async def redeem(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        draw_id: int,
        now: datetime,
    ) -> CouponRedemption:
        """
        Mark the coupon won in `draw_id` as used.
        Only the owner can redeem, only once, and only on the day it was won.
        """
        draw = await session.scalar(select(DrawRecord).where(DrawRecord.id == draw_id))
        if draw is None:
            raise NotFound(f"draw {draw_id} not found")
        if draw.user_id != user_id:
            raise Forbidden("not your draw")
        if draw.coupon_id is None:
            raise ValidationError("this draw carries no coupon")
        if self.is_draw_expired(draw.created_at, now):
            raise CouponExpired("coupon expired")

        redemption = CouponRedemption(
            user_id=user_id,
            draw_id=draw.id,
            merchant_id=draw.merchant_id,
            coupon_id=draw.coupon_id,
            redeemed_at=to_utc_naive(now),
        )
        # the (user_id, draw_id) unique constraint is the duplicate detector
        try:
            async with transactional(session):
                session.add(redemption)
                await session.flush()
        except IntegrityError:
            raise AlreadyRedeemed("already redeemed") from None

        log.info("Draw %s redeemed by user=%s coupon=%s", draw_id, user_id, draw.coupon_id)
        return redemption

    async def is_redeemed(self, session: AsyncSession, *, user_id: int, draw_id: int) -> bool:
        found = await session.scalar(
            select(CouponRedemption.id).where(
                CouponRedemption.user_id == user_id,
                CouponRedemption.draw_id == draw_id,
            )
        )
        return found is not None

    # -------------------------------------------------
    # History (/coupons)
    # -------------------------------------------------

    def is_draw_expired(self, created_at: datetime, now: datetime) -> bool:
        """A won coupon is good until the end of the civil day it was drawn."""
        return local_date(now, self.tz) > local_date(created_at, self.tz)

    def days_expired(self, created_at: datetime, now: datetime) -> int:
        return max(0, days_between(local_date(created_at, self.tz), local_date(now, self.tz)))

    def should_hide(self, created_at: datetime, now: datetime, max_days: int = HIDE_AFTER_DAYS) -> bool:
        return self.days_expired(created_at, now) > max_days

    async def draw_history(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        now: datetime,
        limit: int = 20,
        coupons_only: bool = True,
    ) -> list[HistoryEntry]:
        q = (
            select(DrawRecord, Merchant, Coupon)
            .join(Merchant, Merchant.id == DrawRecord.merchant_id)
            .outerjoin(Coupon, Coupon.id == DrawRecord.coupon_id)
            .where(DrawRecord.user_id == user_id)
            .order_by(desc(DrawRecord.created_at), desc(DrawRecord.id))
            .limit(limit)
        )
        if coupons_only:
            q = q.where(DrawRecord.coupon_id.is_not(None))

        rows = [row for row in (await session.execute(q)).all() if not self.should_hide(row[0].created_at, now)]
        if not rows:
            return []

        redeemed = set(
            (
                await session.scalars(
                    select(CouponRedemption.draw_id).where(
                        CouponRedemption.user_id == user_id,
                        CouponRedemption.draw_id.in_([draw.id for draw, _, _ in rows]),
                    )
                )
            ).all()
        )

        return [
            HistoryEntry(
                draw=draw,
                merchant=merchant,
                coupon=coupon,
                expired=self.is_draw_expired(draw.created_at, now),
                redeemed=draw.id in redeemed,
            )
            for draw, merchant, coupon in rows
        ]
