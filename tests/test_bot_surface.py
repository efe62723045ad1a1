from datetime import datetime, timezone
from random import Random

import pytest
from aiogram.types import Chat, Message, Update, User as TgUser
from sqlalchemy import func, select

from wheelbot.config import Settings
from wheelbot.handlers.user.coupons import coupon_state, redeemable
from wheelbot.handlers.user.wheel import resolve_period
from wheelbot.keyboards.main import BTN_SPIN, REDEEM_PREFIX, SHARE_PREFIX, main_menu_kb, redeem_kb, share_kb
from wheelbot.database.models import Coupon, DrawRecord, MealPeriod, Merchant, User
from wheelbot.services.arbiter import HistoryEntry
from wheelbot.services.engine import build_engine
from wheelbot.services.errors import (
    AlreadyRedeemed,
    AlreadyShared,
    CouponExpired,
    DailyQuotaExceeded,
    EngineError,
    MerchantNotFound,
    PeriodQuotaExceeded,
    ValidationError,
)
from wheelbot.utils.middleware import DbSessionMiddleware
from wheelbot.utils.reply import engine_error_alert, engine_error_text


def test_build_engine_wires_policy_and_clock() -> None:
    settings = Settings(bot_token="t", max_draws_per_period=3, streak_milestone_days=5)
    engine = build_engine(settings, rng=Random(1))

    assert engine.ledger.policy.max_per_period == 3
    assert engine.arbiter.ledger is engine.ledger
    assert engine.streak.ledger is engine.ledger
    assert engine.streak.milestone_days == 5
    assert str(engine.clock.tz) == "Asia/Taipei"


def test_resolve_period_prefers_argument() -> None:
    engine = build_engine(Settings(bot_token="t"))
    assert resolve_period(engine, "dinner") == MealPeriod.DINNER
    with pytest.raises(ValidationError):
        resolve_period(engine, "elevenses")


@pytest.mark.parametrize(
    "error,fragment",
    [
        (PeriodQuotaExceeded("x", used=2, limit=2), "meal period"),
        (DailyQuotaExceeded("x", used=10, limit=10), "Daily limit"),
        (MerchantNotFound(5), "no longer available"),
        (AlreadyShared(), "Already shared"),
        (AlreadyRedeemed(), "already redeemed"),
        (CouponExpired(), "expired"),
        (ValidationError("bad <period>"), "bad &lt;period&gt;"),
        (EngineError(), "Something went wrong"),
    ],
)
def test_engine_error_text(error, fragment) -> None:
    assert fragment in engine_error_text(error)


def test_keyboards() -> None:
    plain = main_menu_kb()
    assert plain.keyboard[0][0].text == BTN_SPIN
    assert plain.keyboard[0][0].web_app is None

    webapp = main_menu_kb("https://wheel.example/app")
    assert webapp.keyboard[0][0].web_app.url == "https://wheel.example/app"

    share = share_kb(17)
    assert share.inline_keyboard[0][0].callback_data == f"{SHARE_PREFIX}17"

    redeem = redeem_kb([(3, "Free drink"), (9, "10% off")])
    assert [row[0].callback_data for row in redeem.inline_keyboard] == [f"{REDEEM_PREFIX}3", f"{REDEEM_PREFIX}9"]
    assert redeem_kb([]) is None


def test_engine_error_alert_is_plain_text() -> None:
    assert engine_error_alert(ValidationError("a < b")) == "⚠️ a < b"
    assert "<b>" not in engine_error_alert(PeriodQuotaExceeded("x", used=2, limit=2))


def _entry(draw_id: int, *, coupon: bool = True, expired: bool = False, redeemed: bool = False) -> HistoryEntry:
    return HistoryEntry(
        draw=DrawRecord(id=draw_id, user_id=1, merchant_id=1, period=MealPeriod.LUNCH),
        merchant=Merchant(id=1, name="Noodle Bar"),
        coupon=Coupon(id=draw_id, merchant_id=1, title=f"c{draw_id}") if coupon else None,
        expired=expired,
        redeemed=redeemed,
    )


def test_coupon_list_states() -> None:
    live = _entry(1)
    used = _entry(2, redeemed=True)
    lapsed = _entry(3, expired=True)
    # redeemed wins over expired
    used_then_lapsed = _entry(4, expired=True, redeemed=True)

    assert coupon_state(live) == "✅ valid today"
    assert coupon_state(used) == "🧾 redeemed"
    assert coupon_state(lapsed) == "❌ expired"
    assert coupon_state(used_then_lapsed) == "🧾 redeemed"

    assert redeemable([live, used, lapsed, _entry(5, coupon=False)]) == [(1, "c1")]


# -------------------------------------------------
# DbSessionMiddleware
# -------------------------------------------------


def _update(telegram_id: int) -> Update:
    message = Message(
        message_id=1,
        date=datetime(2026, 10, 5, 4, 0, tzinfo=timezone.utc),
        chat=Chat(id=telegram_id, type="private"),
        from_user=TgUser(id=telegram_id, is_bot=False, first_name="Mei"),
        text="/spin",
    )
    return Update(update_id=1, message=message)


@pytest.mark.asyncio
async def test_middleware_injects_user_and_privilege_and_commits(db) -> None:
    engine = build_engine(Settings(bot_token="t", root_admin_ids=(900,)))
    seen = {}

    async def handler(event, data):
        seen["user"] = data["db_user"].telegram_id
        seen["privileged"] = data["authz"].is_privileged
        return "done"

    result = await DbSessionMiddleware(db)(handler, _update(900), {"engine": engine})

    assert result == "done"
    assert seen == {"user": 900, "privileged": True}
    async with db.session() as s:
        assert await s.scalar(select(func.count(User.id)).where(User.telegram_id == 900)) == 1


@pytest.mark.asyncio
async def test_middleware_rolls_back_on_engine_error(db) -> None:
    engine = build_engine(Settings(bot_token="t"))

    async def handler(event, data):
        assert not data["authz"].is_privileged
        raise PeriodQuotaExceeded("no spins left", used=2, limit=2)

    with pytest.raises(PeriodQuotaExceeded):
        await DbSessionMiddleware(db)(handler, _update(901), {"engine": engine})

    # the user upsert went with the rest of the update
    async with db.session() as s:
        assert await s.scalar(select(func.count(User.id))) == 0
