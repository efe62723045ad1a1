# wheelbot/handlers/user/merchants.py
from __future__ import annotations

import html

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.keyboards.main import BTN_MERCHANTS
from wheelbot.services.eligibility import EligibilityService
from wheelbot.services.engine import SpinEngine
from wheelbot.services.schedule import describe_hours_at, parse_weekly_schedule
from wheelbot.utils.reply import reply_safe

router = Router()


@router.message(Command("merchants"))
@router.message(lambda m: (m.text or "").strip() == BTN_MERCHANTS)
async def merchants_cmd(message: Message, session: AsyncSession, engine: SpinEngine) -> None:
    now = engine.clock.now()
    merchants = await EligibilityService.list_eligible_merchants(session, at=now, tz=engine.clock.tz)

    if not merchants:
        await reply_safe(message, "😴 No merchant is open right now.")
        return

    lines = [f"🏪 <b>Open now</b> ({now:%a %H:%M})", ""]
    for m in merchants:
        hours = describe_hours_at(parse_weekly_schedule(m.operating_hours), now, engine.clock.tz)
        lines.append(f"• <b>{html.escape(m.name)}</b> · {hours}")

    await reply_safe(message, "\n".join(lines))
