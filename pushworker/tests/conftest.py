from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pushworker.core.config import PUSH_CHANNEL, Settings
from pushworker.domain.models import (
    DELIVERY_STATUS_PENDING,
    Base,
    NotificationDelivery,
    UserDeviceToken,
)
from pushworker.services import telemetry


_BASE_TIME = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    # One key per session; RSA generation is slow enough to matter across many tests.
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def escaped_private_key_pem(rsa_private_key) -> str:
    # Mirror how the key arrives through env vars: PKCS#8 PEM with literal "\n" separators.
    pem = rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    return pem.replace("\n", "\\n")


@pytest.fixture
def make_settings(escaped_private_key_pem) -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "database_url": "sqlite+aiosqlite:///:memory:",
            "fcm_project_id": "demo-project",
            "fcm_client_email": "push-sender@demo-project.iam.gserviceaccount.com",
            "fcm_private_key": escaped_private_key_pem,
            "android_channel_id": "plan_invites_v6",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture(autouse=True)
def reset_counters() -> None:
    # Keep in-process counters isolated so assertions never see other tests' traffic.
    telemetry.reset_telemetry()
    yield
    telemetry.reset_telemetry()


@pytest.fixture
async def session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'push.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def seed(session_factory) -> Callable[..., Any]:
    async def _seed(*, deliveries: list[dict[str, Any]] = (), tokens: list[dict[str, Any]] = ()) -> None:
        async with session_factory() as session:
            for index, row in enumerate(deliveries):
                values = {
                    "channel": PUSH_CHANNEL,
                    "status": DELIVERY_STATUS_PENDING,
                    "payload": {},
                    "created_at": _BASE_TIME + timedelta(minutes=index),
                }
                values.update(row)
                session.add(NotificationDelivery(**values))
            for index, row in enumerate(tokens):
                values = {
                    "platform": "android",
                    "enabled": True,
                    "created_at": _BASE_TIME + timedelta(minutes=index),
                }
                values.update(row)
                session.add(UserDeviceToken(**values))
            await session.commit()

    return _seed


@pytest.fixture
def load_delivery(session_factory) -> Callable[[str], Any]:
    async def _load(delivery_id: str) -> NotificationDelivery | None:
        async with session_factory() as session:
            return await session.get(NotificationDelivery, delivery_id)

    return _load
