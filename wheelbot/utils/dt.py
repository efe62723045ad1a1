# wheelbot/utils/dt.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


@dataclass(frozen=True, slots=True)
class TimeProvider:
    """
    Server clock pinned to the home region.
    Every "today" in the engine comes from here so the schedule matcher,
    the quota ledger and the check-in streak agree on day boundaries.
    """
    timezone: str = "Asia/Taipei"

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def now(self) -> datetime:
        return datetime.now(tz=self.tz)

    def today(self) -> date:
        return self.now().date()


def to_utc_naive(at: datetime) -> datetime:
    """Aware datetime -> naive UTC, the storage convention of every DateTime column."""
    if at.tzinfo is None:
        return at
    return at.astimezone(timezone.utc).replace(tzinfo=None)


def local_date(at: datetime, tz: ZoneInfo) -> date:
    """Civil date of `at` in `tz`. Naive values are taken as UTC."""
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    return at.astimezone(tz).date()
