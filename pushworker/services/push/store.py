from __future__ import annotations

import logging
from typing import Any

import asyncpg
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pushworker.core.errors import StoreError
from pushworker.domain.models import DELIVERY_TERMINAL_STATUSES
from pushworker.domain.payloads import Delivery, DeviceToken
from pushworker.persistence.repos import deliveries as deliveries_repo
from pushworker.persistence.repos import device_tokens as device_tokens_repo


logger = logging.getLogger(__name__)

_UNSET: Any = object()

# asyncpg surfaces connect failures as raw OSError/asyncpg errors, outside SQLAlchemyError.
_STORE_FAILURES = (SQLAlchemyError, OSError, asyncpg.PostgresError, asyncpg.InterfaceError)


class StoreClient:
    """Typed reads and single-row patches against the delivery queue and device tokens.

    Every call opens its own session and commits on its own; rows never leave
    this class as ORM objects.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def fetch_pending_deliveries(self, limit: int = 50) -> list[Delivery]:
        try:
            async with self._session_factory() as session:
                rows = await deliveries_repo.list_pending_push_deliveries(session, limit=max(1, int(limit)))
        except _STORE_FAILURES as exc:
            raise StoreError(f"pending delivery fetch failed: {exc.__class__.__name__}") from exc
        return [
            Delivery(
                id=str(row.id),
                user_id=str(row.user_id),
                # Weakly typed on purpose; the classifier projects it into a variant.
                payload=dict(row.payload) if isinstance(row.payload, dict) else {},
            )
            for row in rows
        ]

    async def fetch_enabled_tokens(self, user_id: str) -> list[DeviceToken]:
        try:
            async with self._session_factory() as session:
                rows = await device_tokens_repo.list_enabled_tokens(session, user_id)
        except _STORE_FAILURES as exc:
            raise StoreError(f"device token fetch failed: {exc.__class__.__name__}") from exc
        return [DeviceToken(token=row.token, platform=str(row.platform or "")) for row in rows]

    async def patch_delivery_status(
        self,
        delivery_id: str,
        status: str,
        *,
        reason: str | None = _UNSET,
        debug: dict[str, Any] | None = _UNSET,
    ) -> None:
        if status not in DELIVERY_TERMINAL_STATUSES:
            raise ValueError(f"invalid terminal status: {status}")
        values: dict[str, Any] = {"status": status}
        if reason is not _UNSET:
            values["reason"] = reason
        if debug is not _UNSET:
            values["debug"] = debug
        try:
            async with self._session_factory() as session:
                matched = await deliveries_repo.update_delivery(session, delivery_id, values)
                await session.commit()
        except _STORE_FAILURES as exc:
            raise StoreError(f"delivery patch failed: {exc.__class__.__name__}") from exc
        if matched == 0:
            logger.warning("delivery_patch_no_rows delivery_id=%s", delivery_id)

    async def disable_token(self, token: str) -> None:
        try:
            async with self._session_factory() as session:
                await device_tokens_repo.disable_token(session, token)
                await session.commit()
        except _STORE_FAILURES as exc:
            raise StoreError(f"device token disable failed: {exc.__class__.__name__}") from exc
