# wheelbot/utils/dates.py
from __future__ import annotations

from datetime import date


def days_between(earlier: date, later: date) -> int:
    return (later - earlier).days
