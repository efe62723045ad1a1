# wheelbot/services/auth.py
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wheelbot.config import Settings
from wheelbot.database.models import Admin, User


@dataclass(frozen=True, slots=True)
class AuthResult:
    is_root: bool
    is_admin: bool
    role: str  # "root" | "admin" | "user"

    @property
    def is_privileged(self) -> bool:
        """Privileged accounts bypass draw quotas."""
        return self.is_admin


class AuthService:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def resolve(self, session: AsyncSession, user: User) -> AuthResult:
        # Root admins come from env, always takes precedence.
        if user.telegram_id in self.settings.root_admin_ids:
            return AuthResult(is_root=True, is_admin=True, role="root")

        admin = await session.scalar(select(Admin).where(Admin.user_id == user.id))
        if admin is None:
            return AuthResult(is_root=False, is_admin=False, role="user")

        return AuthResult(is_root=False, is_admin=True, role=admin.role.value)
