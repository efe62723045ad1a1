# wheelbot/utils/reply.py
from __future__ import annotations

import html

from aiogram.types import Message

from wheelbot.keyboards.main import main_menu_kb
from wheelbot.services.errors import (
    AlreadyCheckedInToday,
    AlreadyRedeemed,
    AlreadyShared,
    CouponExpired,
    DailyQuotaExceeded,
    EngineError,
    Forbidden,
    MerchantNotFound,
    NotFound,
    PeriodQuotaExceeded,
    ValidationError,
)


async def reply_safe(message: Message, text: str, **kwargs) -> None:
    """
    Menu keyboard in private chats only; groups get plain replies.
    """
    if message.chat.type == "private":
        kwargs.setdefault("reply_markup", main_menu_kb(kwargs.pop("webapp_url", None)))
    else:
        kwargs.pop("webapp_url", None)
        kwargs.setdefault("reply_markup", None)

    kwargs.setdefault("parse_mode", "HTML")
    await message.answer(text, **kwargs)


def engine_error_text(e: EngineError) -> str:
    if isinstance(e, PeriodQuotaExceeded):
        return (
            "⏳ <b>No spins left for this meal period</b>\n"
            f"You used {e.limit}/{e.limit}. Come back next period!"
        )
    if isinstance(e, DailyQuotaExceeded):
        return f"🌙 <b>Daily limit reached</b> ({e.limit} spins). See you tomorrow!"
    if isinstance(e, MerchantNotFound):
        return "🏪 That merchant is no longer available. Spin again!"
    if isinstance(e, NotFound):
        return "🔎 Not found."
    if isinstance(e, Forbidden):
        return "⛔ That is not yours."
    if isinstance(e, AlreadyShared):
        return "📣 Already shared, the bonus was granted once."
    if isinstance(e, AlreadyRedeemed):
        return "🧾 This coupon was already redeemed."
    if isinstance(e, CouponExpired):
        return "❌ This coupon has expired."
    if isinstance(e, AlreadyCheckedInToday):
        return "✅ <b>Already checked in today</b>\nCome back tomorrow."
    if isinstance(e, ValidationError):
        return f"⚠️ {html.escape(e.message)}"
    return "⚠️ Something went wrong, please try again."


def engine_error_alert(e: EngineError) -> str:
    """Callback alerts are plain text."""
    text = engine_error_text(e)
    for tag in ("<b>", "</b>", "<i>", "</i>"):
        text = text.replace(tag, "")
    return html.unescape(text)
