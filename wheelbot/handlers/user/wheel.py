# wheelbot/handlers/user/wheel.py
from __future__ import annotations

import html
import logging

from aiogram import F, Router
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.config import Settings
from wheelbot.database.models import MealPeriod, User
from wheelbot.keyboards.main import BTN_SPIN, SHARE_PREFIX, share_kb
from wheelbot.services.allocator import WheelSlice, pointer_index
from wheelbot.services.arbiter import DrawConfirmation, parse_draw_claim
from wheelbot.services.auth import AuthResult
from wheelbot.services.eligibility import EligibilityService
from wheelbot.services.engine import SpinEngine
from wheelbot.services.errors import EngineError, ValidationError
from wheelbot.services.schedule import PERIOD_LABELS, parse_period, primary_period
from wheelbot.utils.ensure_user import ensure_user, ensure_user_from_tg
from wheelbot.utils.reply import engine_error_alert, engine_error_text, reply_safe

log = logging.getLogger(__name__)

router = Router()


def resolve_period(engine: SpinEngine, arg: str | None) -> MealPeriod:
    """Explicit argument wins, otherwise the meal period running right now."""
    if arg and arg.strip():
        return parse_period(arg)
    period = primary_period(engine.clock.now(), engine.clock.tz)
    if period is None:
        raise ValidationError("No meal period is running right now. Try e.g. /spin lunch")
    return period


def slice_line(i: int, s: WheelSlice) -> str:
    prize = html.escape(s.coupon.title) if s.coupon is not None else "<i>no coupon</i>"
    return f"{i}. <b>{html.escape(s.merchant.name)}</b> · {prize}"


def confirmation_text(conf: DrawConfirmation) -> str:
    lines = [f"{PERIOD_LABELS[conf.draw.period]} · 🎡 <b>{html.escape(conf.merchant.name)}</b>"]
    if conf.merchant.address:
        lines.append(f"📍 {html.escape(conf.merchant.address)}")

    if conf.coupon is not None:
        lines.append(f"🎁 You won: <b>{html.escape(conf.coupon.title)}</b>")
        if conf.coupon.description:
            lines.append(html.escape(conf.coupon.description))
        lines.append("Valid until the end of today.")
    elif conf.reward_capped:
        lines.append("🍀 Enjoy your meal! You already collected today's maximum of coupons.")
    else:
        lines.append("🍀 No coupon this time, enjoy your meal!")

    if conf.reservation.bonus:
        lines.append("\n<i>This spin used a bonus attempt.</i>")
    return "\n".join(lines)


async def _confirm_and_reply(
    message: Message,
    session: AsyncSession,
    engine: SpinEngine,
    user: User,
    *,
    period: MealPeriod,
    merchant_id: int,
    coupon_id: int | None,
    authz: AuthResult | None = None,
) -> None:
    if authz is None:
        authz = await engine.auth.resolve(session, user)
    try:
        conf = await engine.arbiter.confirm_draw(
            session,
            user_id=user.id,
            period=period,
            merchant_id=merchant_id,
            coupon_id=coupon_id,
            is_privileged=authz.is_privileged,
            now=engine.clock.now(),
        )
    except EngineError as e:
        await reply_safe(message, engine_error_text(e))
        return

    await message.answer(
        confirmation_text(conf),
        parse_mode="HTML",
        reply_markup=share_kb(conf.draw.id),
    )


@router.message(Command("wheel"))
async def wheel_cmd(message: Message, session: AsyncSession, engine: SpinEngine, settings: Settings) -> None:
    now = engine.clock.now()
    merchants = await EligibilityService.list_eligible_merchants(session, at=now, tz=engine.clock.tz)
    if not merchants:
        await reply_safe(message, "😴 No merchant is open right now.", webapp_url=settings.webapp_url)
        return

    slices = await engine.allocator.allocate_wheel(session, [m.id for m in merchants], now=now)
    body = "\n".join(slice_line(i, s) for i, s in enumerate(slices, start=1))

    hint = "Tap 🎡 Spin to open the wheel." if settings.webapp_url else "Send /spin to turn it."
    await reply_safe(
        message,
        f"🎡 <b>Today's wheel</b>\n\n{body}\n\n{hint}",
        webapp_url=settings.webapp_url,
    )


@router.message(Command("spin"))
@router.message(lambda m: (m.text or "").strip() == BTN_SPIN)
async def spin_cmd(
    message: Message,
    session: AsyncSession,
    engine: SpinEngine,
    command: CommandObject | None = None,
    authz: AuthResult | None = None,
) -> None:
    """Server-side spin: allocate a fresh wheel and land the pointer ourselves."""
    user = await ensure_user(session, message)

    try:
        period = resolve_period(engine, command.args if command else None)
    except ValidationError as e:
        await reply_safe(message, engine_error_text(e))
        return

    now = engine.clock.now()
    merchants = await EligibilityService.list_eligible_merchants(session, at=now, tz=engine.clock.tz)
    if not merchants:
        await reply_safe(message, "😴 No merchant is open right now.")
        return

    try:
        slices = await engine.allocator.allocate_wheel(session, [m.id for m in merchants], now=now)
    except EngineError as e:
        await reply_safe(message, engine_error_text(e))
        return

    angle = engine.allocator.rng.uniform(0.0, 360.0)
    landed = slices[pointer_index(angle, len(slices))]
    log.debug("Spin user=%s angle=%.2f -> merchant=%s coupon=%s", user.id, angle, landed.merchant_id, landed.coupon_id)

    await _confirm_and_reply(
        message,
        session,
        engine,
        user,
        period=period,
        merchant_id=landed.merchant_id,
        coupon_id=landed.coupon_id,
        authz=authz,
    )


@router.message(F.web_app_data)
async def webapp_draw(
    message: Message,
    session: AsyncSession,
    engine: SpinEngine,
    authz: AuthResult | None = None,
) -> None:
    """The Web App animated the wheel and reports where it stopped."""
    user = await ensure_user(session, message)

    try:
        claim = parse_draw_claim(message.web_app_data.data)
    except ValidationError as e:
        log.info("Rejected web app payload from user=%s: %s", user.id, e.message)
        await reply_safe(message, engine_error_text(e))
        return

    await _confirm_and_reply(
        message,
        session,
        engine,
        user,
        period=claim.period,
        merchant_id=claim.merchant_id,
        coupon_id=claim.coupon_id,
        authz=authz,
    )


@router.callback_query(F.data.startswith(SHARE_PREFIX))
async def share_cb(query: CallbackQuery, session: AsyncSession, engine: SpinEngine) -> None:
    user = await ensure_user_from_tg(session, query.from_user)

    try:
        draw_id = int((query.data or "")[len(SHARE_PREFIX):])
    except ValueError:
        await query.answer("Invalid button.", show_alert=True)
        return

    try:
        res = await engine.arbiter.record_share(
            session,
            user_id=user.id,
            draw_id=draw_id,
            day=engine.clock.today(),
        )
    except EngineError as e:
        await query.answer(engine_error_alert(e), show_alert=True)
        return

    if res.bonus_granted:
        await query.answer("📣 Thanks for sharing! +1 spin today.", show_alert=True)
    else:
        await query.answer("📣 Thanks for sharing!")
