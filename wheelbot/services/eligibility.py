# wheelbot/services/eligibility.py
from __future__ import annotations

from datetime import datetime
from typing import Iterable
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.database.models import Merchant
from wheelbot.database.repo.merchants_repo import list_merchants
from wheelbot.services.schedule import is_open, parse_weekly_schedule


def eligible(merchants: Iterable[Merchant], at: datetime, tz: ZoneInfo) -> list[Merchant]:
    """Active merchants open at `at`. Input order is kept but not promised."""
    return [
        m
        for m in merchants
        if m.is_active and is_open(parse_weekly_schedule(m.operating_hours), at, tz)
    ]


class EligibilityService:
    @staticmethod
    async def list_eligible_merchants(session: AsyncSession, *, at: datetime, tz: ZoneInfo) -> list[Merchant]:
        merchants = await list_merchants(session, active_only=True)
        return eligible(merchants, at, tz)
