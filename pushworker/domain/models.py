from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on Postgres, plain JSON elsewhere (sqlite in tests).
JsonColumn = JSON().with_variant(JSONB(), "postgresql")

DELIVERY_STATUS_PENDING = "PENDING"
DELIVERY_STATUS_SENT = "SENT"
DELIVERY_STATUS_FAILED = "FAILED"
DELIVERY_STATUS_SKIPPED = "SKIPPED"
DELIVERY_TERMINAL_STATUSES = {DELIVERY_STATUS_SENT, DELIVERY_STATUS_FAILED, DELIVERY_STATUS_SKIPPED}


class Base(DeclarativeBase):
    pass


class NotificationDelivery(Base):
    __tablename__ = "notification_deliveries"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: uuid4().hex)
    user_id: Mapped[str] = mapped_column(String, index=True)
    channel: Mapped[str] = mapped_column(String)
    # Created PENDING by upstream producers; this worker only writes terminal statuses.
    status: Mapped[str] = mapped_column(String, default=DELIVERY_STATUS_PENDING)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JsonColumn, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    debug: Mapped[dict[str, Any] | None] = mapped_column(JsonColumn, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_notification_deliveries_channel_status_created", "channel", "status", "created_at"),
    )


class UserDeviceToken(Base):
    __tablename__ = "user_device_tokens"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: uuid4().hex)
    app_user_id: Mapped[str] = mapped_column(String, index=True)
    token: Mapped[str] = mapped_column(String, unique=True)
    platform: Mapped[str] = mapped_column(String)
    # Unregistered tokens are disabled, never deleted.
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
