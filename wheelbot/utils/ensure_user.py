# wheelbot/utils/ensure_user.py
from __future__ import annotations

from aiogram.types import Message, User as TgUser
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.database.models import User
from wheelbot.database.repo.users import upsert_user, upsert_user_from_event


async def ensure_user(session: AsyncSession, message: Message) -> User:
    """
    DB user for message handlers.
    """
    row = await upsert_user_from_event(session, message)
    if row is None:
        raise RuntimeError("Unable to ensure user: message has no from_user")
    return row


async def ensure_user_from_tg(session: AsyncSession, tg_user: TgUser) -> User:
    """
    For callback queries (where we only have Telegram User).
    """
    return await upsert_user(session, tg_user)
