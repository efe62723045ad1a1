# wheelbot/database/tx.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession


@asynccontextmanager
async def transactional(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    One unit of work on top of SQLAlchemy 2.x autobegin.

    - Inside an open transaction (handler session): SAVEPOINT via begin_nested,
      the outer commit is left to DbSessionMiddleware
    - Otherwise: a fresh transaction committed on exit

    Any exception raised in the block rolls the unit back and propagates.
    """
    if session.in_transaction():
        async with session.begin_nested():
            yield session
    else:
        async with session.begin():
            yield session
