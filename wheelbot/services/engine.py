# wheelbot/services/engine.py
from __future__ import annotations

from dataclasses import dataclass
from random import Random

from wheelbot.config import Settings
from wheelbot.services.allocator import SliceAllocator
from wheelbot.services.arbiter import DrawArbiter
from wheelbot.services.auth import AuthService
from wheelbot.services.quota import QuotaLedger
from wheelbot.services.streak import StreakTracker
from wheelbot.utils.dt import TimeProvider


@dataclass(frozen=True, slots=True)
class SpinEngine:
    """Stateless service bundle shared by all handlers (injected as `engine`)."""
    clock: TimeProvider
    auth: AuthService
    ledger: QuotaLedger
    allocator: SliceAllocator
    arbiter: DrawArbiter
    streak: StreakTracker


def build_engine(settings: Settings, *, rng: Random | None = None) -> SpinEngine:
    clock = TimeProvider(settings.timezone)
    ledger = QuotaLedger(settings.quota_policy())
    return SpinEngine(
        clock=clock,
        auth=AuthService(settings),
        ledger=ledger,
        allocator=SliceAllocator(rng),
        arbiter=DrawArbiter(ledger, clock.tz),
        streak=StreakTracker(ledger, milestone_days=settings.streak_milestone_days, rng=rng),
    )
