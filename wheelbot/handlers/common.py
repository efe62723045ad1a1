# wheelbot/handlers/common.py
from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

from wheelbot.config import Settings
from wheelbot.utils.reply import reply_safe

router = Router(name="common")


@router.message(CommandStart())
async def cmd_start(message: Message, settings: Settings) -> None:
    await reply_safe(
        message,
        "👋 Welcome to the lunch wheel!\n\n"
        "Spin to pick a merchant that is open right now and maybe win a coupon.\n"
        "Use /help to see commands.",
        webapp_url=settings.webapp_url,
    )


@router.message(Command("help"))
async def cmd_help(message: Message, settings: Settings) -> None:
    await reply_safe(
        message,
        "📌 Available commands:\n"
        "/merchants — merchants open now\n"
        "/wheel — today's wheel\n"
        "/spin [period] — spin it\n"
        "/quota [period] — spins left\n"
        "/checkin — daily check-in (+1 spin)\n"
        "/streak — your check-in streak\n"
        "/coupons — coupons you won, redeem them at the counter\n\n"
        "Periods: breakfast, lunch, afternoon_tea, dinner, late_night.",
        webapp_url=settings.webapp_url,
    )
