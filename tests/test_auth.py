import pytest

from wheelbot.config import Settings
from wheelbot.database.models import Admin, AdminRole
from wheelbot.services.auth import AuthService


@pytest.mark.asyncio
async def test_resolve_roles(session, make_user) -> None:
    root = await make_user(telegram_id=111)
    admin = await make_user(telegram_id=222)
    plain = await make_user(telegram_id=333)
    session.add(Admin(user_id=admin.id, role=AdminRole.ADMIN))
    await session.flush()

    auth = AuthService(Settings(bot_token="t", root_admin_ids=(111,)))

    r = await auth.resolve(session, root)
    assert r.is_root and r.is_privileged and r.role == "root"

    a = await auth.resolve(session, admin)
    assert not a.is_root and a.is_privileged and a.role == "admin"

    p = await auth.resolve(session, plain)
    assert not p.is_privileged and p.role == "user"
