import json
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from conftest import TZ, local_at
from wheelbot.config import QuotaPolicy
from wheelbot.database.models import CouponRedemption, DrawAnomaly, DrawRecord, MealPeriod, QuotaCounter
from wheelbot.services.arbiter import DrawArbiter, parse_draw_claim
from wheelbot.services.errors import (
    AlreadyRedeemed,
    AlreadyShared,
    CouponExpired,
    Forbidden,
    MerchantNotFound,
    NotFound,
    PeriodQuotaExceeded,
    ValidationError,
)
from wheelbot.services.quota import QuotaLedger

NOW = local_at(0, 12, 0)
DAY = NOW.date()


@pytest.fixture
def ledger() -> QuotaLedger:
    return QuotaLedger(QuotaPolicy())


@pytest.fixture
def arbiter(ledger) -> DrawArbiter:
    return DrawArbiter(ledger, TZ)


async def confirm(arbiter, session, user, merchant_id, coupon_id=None, *, period=MealPeriod.LUNCH, privileged=False, now=NOW):
    return await arbiter.confirm_draw(
        session,
        user_id=user.id,
        period=period,
        merchant_id=merchant_id,
        coupon_id=coupon_id,
        is_privileged=privileged,
        now=now,
    )


@pytest.mark.asyncio
async def test_valid_coupon_is_honored(session, arbiter, ledger, make_user, make_merchant, make_coupon) -> None:
    user = await make_user()
    m = await make_merchant()
    c = await make_coupon(m, "Free drink")

    conf = await confirm(arbiter, session, user, m.id, c.id)

    assert conf.coupon is c
    assert conf.downgraded is None
    assert conf.draw.coupon_id == c.id
    assert conf.draw.merchant_id == m.id
    assert conf.draw.period == MealPeriod.LUNCH
    assert conf.draw.is_shared is False
    assert await ledger.rewarded_in_day(session, user_id=user.id, day=DAY) == 1
    assert await ledger.used_in_period(session, user_id=user.id, day=DAY, period=MealPeriod.LUNCH) == 1


@pytest.mark.asyncio
async def test_streak_coupon_is_never_honored(session, arbiter, make_user, make_merchant, make_coupon) -> None:
    user = await make_user()
    m = await make_merchant()
    streak = await make_coupon(m, "Milestone feast", is_streak_reward=True)

    conf = await confirm(arbiter, session, user, m.id, streak.id)

    assert conf.coupon is None
    assert conf.draw.coupon_id is None
    assert conf.downgraded == "streak_reward"

    anomaly = await session.scalar(select(DrawAnomaly).where(DrawAnomaly.draw_id == conf.draw.id))
    assert anomaly is not None
    assert anomaly.declared_coupon_id == streak.id
    assert anomaly.reason == "streak_reward"


@pytest.mark.asyncio
async def test_unhonorable_coupons_are_downgraded(session, arbiter, make_user, make_merchant, make_coupon) -> None:
    user = await make_user()
    m = await make_merchant("Mine")
    other = await make_merchant("Other")
    foreign = await make_coupon(other)
    inactive = await make_coupon(m, is_active=False)
    expired = await make_coupon(m, expires_at=datetime(2026, 10, 5, 3, 0))

    cases = [
        (9999, "coupon_missing"),
        (foreign.id, "merchant_mismatch"),
        (inactive.id, "coupon_inactive"),
        (expired.id, "coupon_expired"),
    ]
    for i, (coupon_id, reason) in enumerate(cases):
        period = list(MealPeriod)[i]
        conf = await confirm(arbiter, session, user, m.id, coupon_id, period=period)
        assert conf.coupon is None
        assert conf.downgraded == reason

    assert await session.scalar(select(func.count(DrawAnomaly.id))) == len(cases)


@pytest.mark.asyncio
async def test_merchant_only_slice(session, arbiter, make_user, make_merchant) -> None:
    user = await make_user()
    m = await make_merchant()

    conf = await confirm(arbiter, session, user, m.id, None)

    assert conf.coupon is None
    assert conf.downgraded is None
    assert await session.scalar(select(func.count(DrawAnomaly.id))) == 0


@pytest.mark.asyncio
async def test_missing_merchant_consumes_no_quota(session, arbiter, ledger, make_user) -> None:
    user = await make_user()

    with pytest.raises(MerchantNotFound):
        await confirm(arbiter, session, user, 424242)

    assert await ledger.used_in_day(session, user_id=user.id, day=DAY) == 0
    assert await session.scalar(select(func.count(DrawRecord.id))) == 0


@pytest.mark.asyncio
async def test_third_draw_in_period_rejected(session, arbiter, make_user, make_merchant) -> None:
    user = await make_user()
    m = await make_merchant()

    await confirm(arbiter, session, user, m.id)
    await confirm(arbiter, session, user, m.id)
    with pytest.raises(PeriodQuotaExceeded):
        await confirm(arbiter, session, user, m.id)

    assert await session.scalar(select(func.count(DrawRecord.id))) == 2


@pytest.mark.asyncio
async def test_privileged_draws_touch_no_counters(session, arbiter, make_user, make_merchant, make_coupon) -> None:
    admin = await make_user()
    m = await make_merchant()
    c = await make_coupon(m)

    for _ in range(12):
        conf = await confirm(arbiter, session, admin, m.id, c.id, privileged=True)
        assert conf.coupon is c

    assert await session.scalar(select(func.count(QuotaCounter.id))) == 0
    assert await session.scalar(select(func.count(DrawRecord.id))) == 12


@pytest.mark.asyncio
async def test_reward_cap_downgrades_but_records(session, make_user, make_merchant, make_coupon) -> None:
    ledger = QuotaLedger(QuotaPolicy(max_rewards_per_day=1))
    arbiter = DrawArbiter(ledger, TZ)
    user = await make_user()
    m = await make_merchant()
    c = await make_coupon(m)

    first = await confirm(arbiter, session, user, m.id, c.id)
    second = await confirm(arbiter, session, user, m.id, c.id)

    assert first.coupon is c and not first.reward_capped
    assert second.coupon is None and second.reward_capped
    assert second.draw.id is not None
    assert second.downgraded is None


# -------------------------------------------------
# Share
# -------------------------------------------------


@pytest.mark.asyncio
async def test_share_twice(session, arbiter, ledger, make_user, make_merchant) -> None:
    user = await make_user()
    m = await make_merchant()
    conf = await confirm(arbiter, session, user, m.id)

    res = await arbiter.record_share(session, user_id=user.id, draw_id=conf.draw.id, day=DAY)
    assert res.bonus_granted
    assert await ledger.bonus_remaining(session, user_id=user.id, day=DAY) == 1
    assert await session.scalar(select(DrawRecord.is_shared).where(DrawRecord.id == conf.draw.id)) is True

    with pytest.raises(AlreadyShared):
        await arbiter.record_share(session, user_id=user.id, draw_id=conf.draw.id, day=DAY)
    assert await ledger.bonus_remaining(session, user_id=user.id, day=DAY) == 1


@pytest.mark.asyncio
async def test_share_someone_elses_or_missing_draw(session, arbiter, make_user, make_merchant) -> None:
    owner = await make_user()
    stranger = await make_user()
    m = await make_merchant()
    conf = await confirm(arbiter, session, owner, m.id)

    with pytest.raises(Forbidden):
        await arbiter.record_share(session, user_id=stranger.id, draw_id=conf.draw.id, day=DAY)
    with pytest.raises(NotFound):
        await arbiter.record_share(session, user_id=owner.id, draw_id=conf.draw.id + 100, day=DAY)

    # the failed attempts did not flip the flag
    res = await arbiter.record_share(session, user_id=owner.id, draw_id=conf.draw.id, day=DAY)
    assert res.bonus_granted


# -------------------------------------------------
# Redemption
# -------------------------------------------------


@pytest.mark.asyncio
async def test_redeem_once(session, arbiter, make_user, make_merchant, make_coupon) -> None:
    user = await make_user()
    m = await make_merchant()
    c = await make_coupon(m, "Free drink")
    won = await confirm(arbiter, session, user, m.id, c.id)

    assert not await arbiter.is_redeemed(session, user_id=user.id, draw_id=won.draw.id)

    redemption = await arbiter.redeem(session, user_id=user.id, draw_id=won.draw.id, now=NOW)
    assert (redemption.draw_id, redemption.coupon_id, redemption.merchant_id) == (won.draw.id, c.id, m.id)
    assert await arbiter.is_redeemed(session, user_id=user.id, draw_id=won.draw.id)

    with pytest.raises(AlreadyRedeemed):
        await arbiter.redeem(session, user_id=user.id, draw_id=won.draw.id, now=NOW + timedelta(minutes=5))

    assert await session.scalar(select(func.count(CouponRedemption.id))) == 1


@pytest.mark.asyncio
async def test_redeem_refusals(session, arbiter, make_user, make_merchant, make_coupon) -> None:
    owner = await make_user()
    stranger = await make_user()
    m = await make_merchant()
    c = await make_coupon(m)
    won = await confirm(arbiter, session, owner, m.id, c.id)
    empty = await confirm(arbiter, session, owner, m.id, None)

    with pytest.raises(NotFound):
        await arbiter.redeem(session, user_id=owner.id, draw_id=won.draw.id + 100, now=NOW)
    with pytest.raises(Forbidden):
        await arbiter.redeem(session, user_id=stranger.id, draw_id=won.draw.id, now=NOW)
    with pytest.raises(ValidationError):
        await arbiter.redeem(session, user_id=owner.id, draw_id=empty.draw.id, now=NOW)
    # valid until the end of the day it was won
    with pytest.raises(CouponExpired):
        await arbiter.redeem(session, user_id=owner.id, draw_id=won.draw.id, now=NOW + timedelta(days=1))

    assert await session.scalar(select(func.count(CouponRedemption.id))) == 0


@pytest.mark.asyncio
async def test_history_shows_redeemed(session, arbiter, make_user, make_merchant, make_coupon) -> None:
    user = await make_user()
    m = await make_merchant()
    c = await make_coupon(m)
    first = await confirm(arbiter, session, user, m.id, c.id)
    second = await confirm(arbiter, session, user, m.id, c.id)
    await arbiter.redeem(session, user_id=user.id, draw_id=first.draw.id, now=NOW)

    entries = await arbiter.draw_history(session, user_id=user.id, now=NOW)
    assert {e.draw.id: e.redeemed for e in entries} == {first.draw.id: True, second.draw.id: False}


# -------------------------------------------------
# History
# -------------------------------------------------


@pytest.mark.asyncio
async def test_draw_history_expiry_and_hiding(session, arbiter, make_user, make_merchant, make_coupon) -> None:
    user = await make_user()
    m = await make_merchant()
    c = await make_coupon(m)
    won = await confirm(arbiter, session, user, m.id, c.id)
    await confirm(arbiter, session, user, m.id, None)

    today = await arbiter.draw_history(session, user_id=user.id, now=NOW)
    assert [(e.draw.id, e.expired) for e in today] == [(won.draw.id, False)]

    tomorrow = await arbiter.draw_history(session, user_id=user.id, now=NOW + timedelta(days=1))
    assert [e.expired for e in tomorrow] == [True]

    assert await arbiter.draw_history(session, user_id=user.id, now=NOW + timedelta(days=3)) == []

    everything = await arbiter.draw_history(session, user_id=user.id, now=NOW, coupons_only=False)
    assert len(everything) == 2


def test_coupon_valid_until_end_of_local_day(arbiter) -> None:
    drawn = local_at(0, 23, 50)
    assert not arbiter.is_draw_expired(drawn, local_at(0, 23, 59))
    assert arbiter.is_draw_expired(drawn, local_at(1, 0, 1))


# -------------------------------------------------
# Web App payload
# -------------------------------------------------


def test_parse_draw_claim() -> None:
    claim = parse_draw_claim(json.dumps({"action": "draw", "period": "lunch", "merchant_id": 3, "coupon_id": 12}))
    assert (claim.period, claim.merchant_id, claim.coupon_id) == (MealPeriod.LUNCH, 3, 12)

    bare = parse_draw_claim('{"period": "dinner", "merchant_id": "7"}')
    assert (bare.period, bare.merchant_id, bare.coupon_id) == (MealPeriod.DINNER, 7, None)


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "not json",
        "[]",
        '{"action": "share", "period": "lunch", "merchant_id": 1}',
        '{"period": "lunch"}',
        '{"period": "brunch", "merchant_id": 1}',
        '{"period": "lunch", "merchant_id": 0}',
        '{"period": "lunch", "merchant_id": true}',
        '{"period": "lunch", "merchant_id": 1, "coupon_id": "x"}',
    ],
)
def test_parse_draw_claim_rejects(raw) -> None:
    with pytest.raises(ValidationError):
        parse_draw_claim(raw)
