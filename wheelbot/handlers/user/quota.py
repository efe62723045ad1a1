# wheelbot/handlers/user/quota.py
from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.handlers.user.wheel import resolve_period
from wheelbot.keyboards.main import BTN_QUOTA
from wheelbot.services.auth import AuthResult
from wheelbot.services.engine import SpinEngine
from wheelbot.services.errors import ValidationError
from wheelbot.services.schedule import PERIOD_LABELS
from wheelbot.utils.ensure_user import ensure_user
from wheelbot.utils.reply import engine_error_text, reply_safe

router = Router()


@router.message(Command("quota"))
@router.message(lambda m: (m.text or "").strip() == BTN_QUOTA)
async def quota_cmd(
    message: Message,
    session: AsyncSession,
    engine: SpinEngine,
    command: CommandObject | None = None,
    authz: AuthResult | None = None,
) -> None:
    user = await ensure_user(session, message)

    try:
        period = resolve_period(engine, command.args if command else None)
    except ValidationError as e:
        await reply_safe(message, engine_error_text(e))
        return

    if authz is None:
        authz = await engine.auth.resolve(session, user)
    st = await engine.ledger.remaining(
        session,
        user_id=user.id,
        day=engine.clock.today(),
        period=period,
        is_privileged=authz.is_privileged,
    )

    if st.is_privileged:
        await reply_safe(message, f"🎟 <b>{PERIOD_LABELS[period]}</b>\n• Unlimited spins (admin)")
        return

    policy = engine.ledger.policy
    text = (
        f"🎟 <b>{PERIOD_LABELS[period]}</b>\n"
        f"• This period: <b>{st.remaining_in_period}</b> of {policy.max_per_period} left\n"
        f"• Today: <b>{st.remaining_in_day}</b> of {policy.max_per_day} left\n"
        f"• Bonus spins: <b>{st.bonus_remaining}</b>\n"
        f"• Coupons today: <b>{st.rewarded_in_day}</b>/{policy.max_rewards_per_day}"
    )
    if not st.can_draw:
        text += "\n\n⏳ No spins left right now. Check in or share a win for a bonus spin."
    await reply_safe(message, text)
