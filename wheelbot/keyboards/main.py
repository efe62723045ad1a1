# wheelbot/keyboards/main.py
from __future__ import annotations

from aiogram.types import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
    WebAppInfo,
)

BTN_SPIN = "🎡 Spin"
BTN_MERCHANTS = "🏪 Open now"
BTN_QUOTA = "🎟 My spins"
BTN_CHECKIN = "✅ Check-in"
BTN_STREAK = "🔥 Streak"
BTN_COUPONS = "🎁 My coupons"

SHARE_PREFIX = "share:"
REDEEM_PREFIX = "redeem:"


def main_menu_kb(webapp_url: str | None = None) -> ReplyKeyboardMarkup:
    spin_button = (
        KeyboardButton(text=BTN_SPIN, web_app=WebAppInfo(url=webapp_url))
        if webapp_url
        else KeyboardButton(text=BTN_SPIN)
    )
    return ReplyKeyboardMarkup(
        keyboard=[
            [spin_button, KeyboardButton(text=BTN_MERCHANTS)],
            [KeyboardButton(text=BTN_CHECKIN), KeyboardButton(text=BTN_STREAK)],
            [KeyboardButton(text=BTN_QUOTA), KeyboardButton(text=BTN_COUPONS)],
        ],
        resize_keyboard=True,
        input_field_placeholder="Choose an action…",
        selective=False,
        one_time_keyboard=False,
    )


def share_kb(draw_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="📣 Share for +1 spin", callback_data=f"{SHARE_PREFIX}{draw_id}")]
        ]
    )


def redeem_kb(buttons: list[tuple[int, str]]) -> InlineKeyboardMarkup | None:
    """One button per redeemable coupon: (draw_id, label)."""
    if not buttons:
        return None
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=f"🧾 Redeem: {label}", callback_data=f"{REDEEM_PREFIX}{draw_id}")]
            for draw_id, label in buttons
        ]
    )
