from .user import User
from .admin import Admin, AdminRole
from .merchant import Merchant
from .coupon import Coupon
from .draw import DrawAnomaly, DrawRecord, DrawSource, MealPeriod
from .quota import BonusAttempt, BonusSource, QuotaCounter
from .checkin import CheckInRecord
from .redemption import CouponRedemption

__all__ = [
    "User",
    "Admin",
    "AdminRole",
    "Merchant",
    "Coupon",
    "DrawRecord",
    "DrawAnomaly",
    "DrawSource",
    "MealPeriod",
    "QuotaCounter",
    "BonusAttempt",
    "BonusSource",
    "CheckInRecord",
    "CouponRedemption",
]
