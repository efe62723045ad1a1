# wheelbot/utils/middleware.py
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from wheelbot.database.session import Database
from wheelbot.database.repo.users import upsert_user_from_event
from wheelbot.services.errors import EngineError

log = logging.getLogger(__name__)


class DbSessionMiddleware(BaseMiddleware):
    """
    One DB session per update, injected as `session`.

    When the update has a Telegram user it is upserted as `db_user`, and its
    quota privilege is resolved once as `authz` (needs `engine` in the
    dispatcher's workflow data).

    Commits on success. Any error rolls the whole update back, so a draw that
    fails half way leaves no quota or bonus use behind.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        async with self.db.SessionLocal() as session:
            data["session"] = session

            db_user = await upsert_user_from_event(session, event)
            user_id = db_user.id if db_user is not None else None
            if db_user is not None:
                data["db_user"] = db_user
                engine = data.get("engine")
                if engine is not None:
                    data["authz"] = await engine.auth.resolve(session, db_user)

            try:
                result = await handler(event, data)
            except EngineError as e:
                await session.rollback()
                log.info(
                    "Update rolled back: user=%s code=%s %s",
                    user_id,
                    e.code,
                    e.message,
                )
                raise
            except Exception:
                await session.rollback()
                raise

            await session.commit()
            return result
