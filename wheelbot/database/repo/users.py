# wheelbot/database/repo/users.py
from __future__ import annotations

from typing import Optional

from aiogram.types import TelegramObject, User as TgUser
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.database.models import User


def _extract_from_user(event: TelegramObject) -> Optional[TgUser]:
    """
    Best-effort `from_user` for Message, CallbackQuery and wrapped updates.
    """
    u = getattr(event, "from_user", None)
    if u:
        return u

    for attr in ("message", "callback_query"):
        inner = getattr(event, attr, None)
        if inner is not None and getattr(inner, "from_user", None):
            return inner.from_user

    return None


async def upsert_user(session: AsyncSession, tg: TgUser) -> User:
    user = await session.scalar(select(User).where(User.telegram_id == tg.id))

    if user is None:
        user = User(
            telegram_id=tg.id,
            username=tg.username,
            first_name=tg.first_name,
            last_name=tg.last_name,
        )
        session.add(user)
        await session.flush()  # handlers need user.id
        return user

    # keep profile fresh; only dirty the row when something changed
    if (user.username, user.first_name, user.last_name) != (tg.username, tg.first_name, tg.last_name):
        user.username = tg.username
        user.first_name = tg.first_name
        user.last_name = tg.last_name
    return user


async def upsert_user_from_event(session: AsyncSession, event: TelegramObject) -> Optional[User]:
    tg = _extract_from_user(event)
    if tg is None:
        return None
    return await upsert_user(session, tg)

