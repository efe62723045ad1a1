# wheelbot/config/settings.py
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _require(env: dict[str, str], key: str) -> str:
    v = env.get(key)
    if v is None or not v.strip():
        raise RuntimeError(f"Missing required environment variable: {key}")
    return v.strip()


def _to_int(value: str, key_name: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise RuntimeError(f"Invalid integer for {key_name}: {value!r}") from e


def _int_or_default(env, key: str, default: int, *, minimum: int = 0) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    value = _to_int(raw, key)
    if value < minimum:
        raise RuntimeError(f"{key} must be >= {minimum}, got {value}")
    return value


def _parse_int_list(raw: str | None, key_name: str) -> list[int]:
    """
    Parses comma/space/newline separated ints.
    Accepts:
      "951258732"
      "951258732,123"
      "951258732 123"
      "[951258732, 123]"  (brackets ignored)
    """
    if not raw:
        return []

    cleaned = raw.strip().strip("[](){}").strip()
    if not cleaned:
        return []

    parts = [p for p in re.split(r"[,\s]+", cleaned) if p]

    out: list[int] = []
    for p in parts:
        p2 = p.strip().strip("'\"")
        if not p2:
            continue
        out.append(_to_int(p2, key_name))
    return out


@dataclass(frozen=True, slots=True)
class QuotaPolicy:
    max_per_period: int = 2
    max_per_day: int = 10
    max_rewards_per_day: int = 10


@dataclass(frozen=True, slots=True)
class Settings:
    # --- required ---
    bot_token: str

    # --- optional ---
    database_url: str = "sqlite+aiosqlite:///./wheelbot.db"

    # --- security / admin ---
    root_admin_ids: tuple[int, ...] = ()

    # --- time ---
    # home region: schedules, quota days, check-in days and coupon validity all use it
    timezone: str = "Asia/Taipei"

    # --- wheel web app (animation lives there) ---
    webapp_url: Optional[str] = None

    # --- quotas / rewards ---
    max_draws_per_period: int = 2
    max_draws_per_day: int = 10
    max_rewards_per_day: int = 10
    streak_milestone_days: int = 7

    # --- environment ---
    environment: str = "production"  # production | development

    @property
    def is_dev(self) -> bool:
        return self.environment.lower() in {"dev", "development", "local"}

    def quota_policy(self) -> QuotaPolicy:
        return QuotaPolicy(
            max_per_period=self.max_draws_per_period,
            max_per_day=self.max_draws_per_day,
            max_rewards_per_day=self.max_rewards_per_day,
        )

    @classmethod
    def load(cls) -> "Settings":
        """
        Loads from process env (and .env if present).
        Fails fast for required fields and malformed numbers.
        """
        load_dotenv()
        env = os.environ

        bot_token = _require(env, "BOT_TOKEN")

        database_url = (env.get("DATABASE_URL") or "sqlite+aiosqlite:///./wheelbot.db").strip()

        root_admin_ids = tuple(_parse_int_list(env.get("ROOT_ADMIN_IDS"), "ROOT_ADMIN_IDS"))

        timezone = (env.get("TIMEZONE") or "Asia/Taipei").strip() or "Asia/Taipei"
        webapp_url = (env.get("WEBAPP_URL") or "").strip() or None
        environment = (env.get("ENVIRONMENT") or "production").strip() or "production"

        return cls(
            bot_token=bot_token,
            database_url=database_url,
            root_admin_ids=root_admin_ids,
            timezone=timezone,
            webapp_url=webapp_url,
            max_draws_per_period=_int_or_default(env, "MAX_DRAWS_PER_PERIOD", 2),
            max_draws_per_day=_int_or_default(env, "MAX_DRAWS_PER_DAY", 10),
            max_rewards_per_day=_int_or_default(env, "MAX_REWARDS_PER_DAY", 10),
            streak_milestone_days=_int_or_default(env, "STREAK_MILESTONE_DAYS", 7, minimum=1),
            environment=environment,
        )
