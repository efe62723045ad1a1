from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

from wheelbot.database import Database
from wheelbot.database.models import Coupon, Merchant, User

TZ = ZoneInfo("Asia/Taipei")

# Monday, 5 October 2026
MONDAY = datetime(2026, 10, 5, tzinfo=TZ)

ALWAYS_OPEN = '{"monday": "00:00-23:59", "tuesday": "00:00-23:59", "wednesday": "00:00-23:59",' \
    ' "thursday": "00:00-23:59", "friday": "00:00-23:59", "saturday": "00:00-23:59", "sunday": "00:00-23:59"}'


def local_at(weekday: int, hh: int, mm: int = 0, *, week: int = 0) -> datetime:
    """Aware home-timezone instant on the given weekday (0 = Monday)."""
    at = MONDAY + timedelta(days=weekday + 7 * week, hours=hh, minutes=mm)
    assert at.weekday() == weekday
    return at


@pytest.fixture
def tz() -> ZoneInfo:
    return TZ


@pytest_asyncio.fixture
async def db():
    database = Database("sqlite+aiosqlite:///:memory:")
    await database.init_models()
    try:
        yield database
    finally:
        await database.close()


@pytest_asyncio.fixture
async def session(db):
    async with db.session() as s:
        yield s


@pytest_asyncio.fixture
async def make_user(session):
    counter = {"n": 0}

    async def _make(**kwargs) -> User:
        counter["n"] += 1
        user = User(telegram_id=kwargs.pop("telegram_id", 1000 + counter["n"]), **kwargs)
        session.add(user)
        await session.flush()
        return user

    return _make


@pytest_asyncio.fixture
async def make_merchant(session):
    async def _make(name: str = "Noodle Bar", *, hours: str = ALWAYS_OPEN, **kwargs) -> Merchant:
        merchant = Merchant(name=name, operating_hours=hours, **kwargs)
        session.add(merchant)
        await session.flush()
        return merchant

    return _make


@pytest_asyncio.fixture
async def make_coupon(session):
    async def _make(merchant: Merchant, title: str = "10% off", **kwargs) -> Coupon:
        coupon = Coupon(merchant_id=merchant.id, title=title, **kwargs)
        session.add(coupon)
        await session.flush()
        return coupon

    return _make
