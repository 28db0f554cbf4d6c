from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pushworker.core.config import PUSH_CHANNEL
from pushworker.domain.models import DELIVERY_STATUS_PENDING, NotificationDelivery


async def list_pending_push_deliveries(session: AsyncSession, *, limit: int) -> list[NotificationDelivery]:
    # Oldest first so a backlog drains in FIFO order across invocations.
    result = await session.execute(
        select(NotificationDelivery)
        .where(
            NotificationDelivery.channel == PUSH_CHANNEL,
            NotificationDelivery.status == DELIVERY_STATUS_PENDING,
        )
        .order_by(NotificationDelivery.created_at.asc(), NotificationDelivery.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def update_delivery(session: AsyncSession, delivery_id: str, values: dict[str, Any]) -> int:
    # Patch only the supplied columns; returns matched row count.
    result = await session.execute(
        update(NotificationDelivery).where(NotificationDelivery.id == delivery_id).values(**values)
    )
    return int(result.rowcount or 0)
