# wheelbot/handlers/user/router.py
from aiogram import Router

from wheelbot.handlers.user.merchants import router as merchants_router
from wheelbot.handlers.user.wheel import router as wheel_router
from wheelbot.handlers.user.quota import router as quota_router
from wheelbot.handlers.user.checkin import router as checkin_router
from wheelbot.handlers.user.coupons import router as coupons_router


router = Router(name="user")

router.include_router(merchants_router)
router.include_router(wheel_router)
router.include_router(quota_router)
router.include_router(checkin_router)
router.include_router(coupons_router)
