# wheelbot/services/errors.py
from __future__ import annotations


class EngineError(Exception):
    """Base for every expected, user-facing failure of the spin engine."""

    code = "engine_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(EngineError):
    code = "validation_error"


class QuotaExceeded(EngineError):
    code = "quota_exceeded"

    def __init__(self, message: str = "", *, used: int = 0, limit: int = 0) -> None:
        super().__init__(message)
        self.used = used
        self.limit = limit


class PeriodQuotaExceeded(QuotaExceeded):
    code = "period_quota_exceeded"


class DailyQuotaExceeded(QuotaExceeded):
    code = "daily_quota_exceeded"


class NotFound(EngineError):
    code = "not_found"


class MerchantNotFound(NotFound):
    code = "merchant_not_found"

    def __init__(self, merchant_id: int) -> None:
        super().__init__(f"merchant {merchant_id} not found")
        self.merchant_id = merchant_id


class Forbidden(EngineError):
    code = "forbidden"


class AlreadyShared(EngineError):
    code = "already_shared"


class AlreadyCheckedInToday(EngineError):
    code = "already_checked_in_today"


class AlreadyRedeemed(EngineError):
    code = "already_redeemed"


class CouponExpired(EngineError):
    code = "coupon_expired"
