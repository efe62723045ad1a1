# wheelbot/config/__init__.py
from __future__ import annotations

from .settings import QuotaPolicy, Settings

__all__ = ["QuotaPolicy", "Settings"]
