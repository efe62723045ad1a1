# wheelbot/handlers/user/checkin.py
from __future__ import annotations

import html

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.keyboards.main import BTN_CHECKIN, BTN_STREAK
from wheelbot.services.engine import SpinEngine
from wheelbot.services.errors import AlreadyCheckedInToday
from wheelbot.services.schedule import primary_period
from wheelbot.utils.ensure_user import ensure_user
from wheelbot.utils.reply import engine_error_text, reply_safe

router = Router()


@router.message(Command("checkin"))
@router.message(lambda m: (m.text or "").strip() == BTN_CHECKIN)
async def checkin_cmd(message: Message, session: AsyncSession, engine: SpinEngine) -> None:
    user = await ensure_user(session, message)
    now = engine.clock.now()

    try:
        res = await engine.streak.check_in(
            session,
            user_id=user.id,
            today=engine.clock.today(),
            now=now,
            period=primary_period(now, engine.clock.tz),
        )
    except AlreadyCheckedInToday as e:
        await reply_safe(message, engine_error_text(e))
        return

    milestone = engine.streak.milestone_days
    lines = [
        "🔥 <b>Check-in successful!</b>",
        f"• Streak: <b>{res.consecutive_days}</b> day(s)",
    ]
    if res.bonus_attempt_granted:
        lines.append("• +1 bonus spin for today")

    if res.bonus is not None:
        lines.append(
            f"\n🏆 <b>{milestone}-day streak reward!</b>\n"
            f"{html.escape(res.bonus.merchant.name)}: <b>{html.escape(res.bonus.coupon.title)}</b>"
        )
    elif res.consecutive_days < milestone:
        lines.append(f"• {milestone - res.consecutive_days} more day(s) to the streak reward")

    await reply_safe(message, "\n".join(lines))


@router.message(Command("streak"))
@router.message(lambda m: (m.text or "").strip() == BTN_STREAK)
async def streak_cmd(message: Message, session: AsyncSession, engine: SpinEngine) -> None:
    user = await ensure_user(session, message)
    st = await engine.streak.status(session, user_id=user.id, today=engine.clock.today())

    if not st.has_checked_in_today:
        last = f"\nLast check-in: {st.last_check_in_day:%Y-%m-%d}" if st.last_check_in_day else ""
        await reply_safe(message, f"📅 Not checked in today. Send /checkin!{last}")
        return

    claimed = "used" if st.reward_claimed else "available"
    await reply_safe(
        message,
        "🔥 <b>Your streak</b>\n"
        f"• Consecutive days: <b>{st.consecutive_days}</b>\n"
        f"• Today's bonus spin: {claimed}",
    )
