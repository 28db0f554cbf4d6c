from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pushworker.domain.models import UserDeviceToken


async def list_enabled_tokens(session: AsyncSession, user_id: str) -> list[UserDeviceToken]:
    result = await session.execute(
        select(UserDeviceToken)
        .where(UserDeviceToken.app_user_id == user_id, UserDeviceToken.enabled.is_(True))
        .order_by(UserDeviceToken.created_at.asc(), UserDeviceToken.id.asc())
    )
    return list(result.scalars().all())


async def disable_token(session: AsyncSession, token: str) -> int:
    # Exact-match update is idempotent, so concurrent disables of one token are safe.
    result = await session.execute(
        update(UserDeviceToken).where(UserDeviceToken.token == token).values(enabled=False)
    )
    return int(result.rowcount or 0)
