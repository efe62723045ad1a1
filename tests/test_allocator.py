from collections import Counter
from datetime import datetime, timedelta
from random import Random

import pytest

from conftest import local_at
from wheelbot.database.models import Coupon, Merchant
from wheelbot.services.allocator import SliceAllocator, pointer_index, weighted_choice, wheel_candidates
from wheelbot.services.errors import MerchantNotFound

NOW = local_at(0, 12, 0)


def coupon(cid: int, weight: int = 5, **kwargs) -> Coupon:
    kwargs.setdefault("is_active", True)
    kwargs.setdefault("is_streak_reward", False)
    return Coupon(id=cid, merchant_id=1, title=f"c{cid}", weight=weight, **kwargs)


def test_weighted_choice_converges_to_weight_ratio() -> None:
    rng = Random(20261005)
    heavy, light = coupon(1, weight=5), coupon(2, weight=1)

    counts = Counter(weighted_choice([heavy, light], rng).id for _ in range(60_000))

    ratio = counts[1] / counts[2]
    assert 4.6 < ratio < 5.4


def test_weighted_choice_empty_and_zero_weight() -> None:
    rng = Random(1)
    assert weighted_choice([], rng) is None
    assert weighted_choice([coupon(1, weight=0)], rng) is None
    only = coupon(2, weight=3)
    assert weighted_choice([coupon(1, weight=0), only], rng) is only


def test_wheel_candidates_excludes_streak_inactive_expired() -> None:
    now_utc = datetime(2026, 10, 5, 4, 0)
    live = coupon(1)
    pool = [
        live,
        coupon(2, is_streak_reward=True),
        coupon(3, is_active=False),
        coupon(4, expires_at=now_utc - timedelta(minutes=1)),
        coupon(5, expires_at=now_utc),
    ]
    assert wheel_candidates(pool, now_utc) == [live]


@pytest.mark.parametrize(
    "angle,count,expected",
    [
        (0, 4, 0),
        (360, 4, 0),
        (720, 4, 0),
        (10, 4, 3),
        (89.9, 4, 3),
        (90, 4, 3),
        (90.1, 4, 2),
        (180, 4, 2),
        (270, 4, 1),
        (350, 4, 0),
        (-10, 4, 0),
        (-100, 4, 1),
        (0, 1, 0),
        (123.4, 1, 0),
    ],
)
def test_pointer_index(angle, count, expected) -> None:
    assert pointer_index(angle, count) == expected


def test_pointer_index_rejects_empty_wheel() -> None:
    with pytest.raises(ValueError):
        pointer_index(10, 0)


def test_allocate_keeps_order_and_allows_empty_slice() -> None:
    a = Merchant(id=1, name="A")
    b = Merchant(id=2, name="B")
    c = Merchant(id=3, name="C")
    only_streak = coupon(9, is_streak_reward=True)
    regular = coupon(7)

    slices = SliceAllocator(Random(3)).allocate(
        [c, a, b],
        {1: [regular], 3: [only_streak]},
        now=NOW,
    )

    assert [s.merchant_id for s in slices] == [3, 1, 2]
    assert slices[0].coupon is None
    assert slices[1].coupon is regular
    assert slices[2].coupon is None


def test_allocate_never_hands_out_streak_coupons() -> None:
    m = Merchant(id=1, name="A")
    pool = [coupon(1, weight=1), coupon(2, weight=10, is_streak_reward=True)]
    allocator = SliceAllocator(Random(7))

    for _ in range(500):
        (s,) = allocator.allocate([m], {1: pool}, now=NOW)
        assert s.coupon_id == 1


@pytest.mark.asyncio
async def test_allocate_wheel_reads_coupons(session, make_merchant, make_coupon) -> None:
    m1 = await make_merchant("Dumplings")
    m2 = await make_merchant("Bento")
    wheel_coupon = await make_coupon(m1, "Free soup", weight=10)
    await make_coupon(m1, "Milestone meal", is_streak_reward=True, weight=10)
    await make_coupon(m2, "Retired", is_active=False)

    slices = await SliceAllocator(Random(11)).allocate_wheel(session, [m2.id, m1.id], now=NOW)

    assert [s.merchant_id for s in slices] == [m2.id, m1.id]
    assert slices[0].coupon is None
    assert slices[1].coupon_id == wheel_coupon.id


@pytest.mark.asyncio
async def test_allocate_wheel_unknown_merchant(session, make_merchant) -> None:
    m = await make_merchant()
    with pytest.raises(MerchantNotFound) as exc:
        await SliceAllocator(Random(1)).allocate_wheel(session, [m.id, 9999], now=NOW)
    assert exc.value.merchant_id == 9999
