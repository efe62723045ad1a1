import pytest

from conftest import TZ, local_at
from wheelbot.database.models import Merchant
from wheelbot.services.eligibility import EligibilityService, eligible


def merchant(mid: int, hours: str, *, active: bool = True) -> Merchant:
    return Merchant(id=mid, name=f"m{mid}", operating_hours=hours, is_active=active)


def test_eligible_filters_by_schedule_and_active() -> None:
    lunch = merchant(1, '{"monday": "11:00-14:00"}')
    night = merchant(2, '{"sunday": "20:00-05:00"}')
    inactive = merchant(3, '{"monday": "00:00-23:59"}', active=False)
    broken = merchant(4, "{oops")

    assert eligible([lunch, night, inactive, broken], local_at(0, 12, 0), TZ) == [lunch, broken]
    assert eligible([lunch, night, inactive, broken], local_at(0, 2, 0), TZ) == [night, broken]
    assert eligible([lunch, night, inactive, broken], local_at(1, 12, 0), TZ) == [broken]


def test_eligible_empty_when_nothing_open() -> None:
    shut = merchant(1, '{"monday": "closed"}')
    assert eligible([shut], local_at(0, 12, 0), TZ) == []


@pytest.mark.asyncio
async def test_list_eligible_merchants(session, make_merchant) -> None:
    open_now = await make_merchant("Open", hours='{"wednesday": "10:00-22:00"}')
    await make_merchant("Closed", hours='{"wednesday": "closed"}')
    await make_merchant("Gone", is_active=False)

    found = await EligibilityService.list_eligible_merchants(session, at=local_at(2, 18, 0), tz=TZ)

    assert [m.id for m in found] == [open_now.id]
