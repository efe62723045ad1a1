# wheelbot/handlers/user/coupons.py
from __future__ import annotations

import html
import logging

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.database.models import DrawSource
from wheelbot.keyboards.main import BTN_COUPONS, REDEEM_PREFIX, redeem_kb
from wheelbot.services.arbiter import HistoryEntry
from wheelbot.services.engine import SpinEngine
from wheelbot.services.errors import EngineError
from wheelbot.utils.ensure_user import ensure_user, ensure_user_from_tg
from wheelbot.utils.reply import engine_error_alert, reply_safe

log = logging.getLogger(__name__)

router = Router()


def coupon_state(e: HistoryEntry) -> str:
    if e.redeemed:
        return "🧾 redeemed"
    if e.expired:
        return "❌ expired"
    return "✅ valid today"


def coupon_line(e: HistoryEntry) -> str:
    title = html.escape(e.coupon.title) if e.coupon is not None else "-"
    badge = "🔥 " if e.draw.source == DrawSource.STREAK else ""
    return f"{badge}<b>{title}</b> @ {html.escape(e.merchant.name)} · {coupon_state(e)}"


def redeemable(entries: list[HistoryEntry]) -> list[tuple[int, str]]:
    return [
        (e.draw.id, e.coupon.title)
        for e in entries
        if e.coupon is not None and not e.expired and not e.redeemed
    ]


@router.message(Command("coupons"))
@router.message(lambda m: (m.text or "").strip() == BTN_COUPONS)
async def coupons_cmd(message: Message, session: AsyncSession, engine: SpinEngine) -> None:
    user = await ensure_user(session, message)
    entries = await engine.arbiter.draw_history(session, user_id=user.id, now=engine.clock.now())

    if not entries:
        await reply_safe(message, "🎁 No coupons yet. Spin the wheel!")
        return

    lines = ["🎁 <b>My coupons</b>", ""]
    lines.extend(coupon_line(e) for e in entries)

    kb = redeem_kb(redeemable(entries))
    if kb is not None:
        lines.append("\n<i>Show this chat at the counter and tap Redeem.</i>")
        await message.answer("\n".join(lines), parse_mode="HTML", reply_markup=kb)
        return

    await reply_safe(message, "\n".join(lines))


@router.callback_query(F.data.startswith(REDEEM_PREFIX))
async def redeem_cb(query: CallbackQuery, session: AsyncSession, engine: SpinEngine) -> None:
    user = await ensure_user_from_tg(session, query.from_user)

    try:
        draw_id = int((query.data or "")[len(REDEEM_PREFIX):])
    except ValueError:
        await query.answer("Invalid button.", show_alert=True)
        return

    try:
        await engine.arbiter.redeem(session, user_id=user.id, draw_id=draw_id, now=engine.clock.now())
    except EngineError as e:
        await query.answer(engine_error_alert(e), show_alert=True)
        return

    await query.answer("🧾 Redeemed. Enjoy your meal!", show_alert=True)

    # refresh the list so the button disappears
    if isinstance(query.message, Message):
        entries = await engine.arbiter.draw_history(session, user_id=user.id, now=engine.clock.now())
        text = "\n".join(["🎁 <b>My coupons</b>", "", *(coupon_line(e) for e in entries)])
        try:
            await query.message.edit_text(text, parse_mode="HTML", reply_markup=redeem_kb(redeemable(entries)))
        except TelegramBadRequest as ex:
            log.debug("Could not refresh coupon list: %s", ex)
