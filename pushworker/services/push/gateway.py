from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any

import httpx

from pushworker.core.config import Settings
from pushworker.core.errors import GatewayError, ProviderConfigError, StoreError, TransportError
from pushworker.domain.payloads import DeviceToken
from pushworker.services.push.store import StoreClient
from pushworker.services.telemetry import increment_counter, record_external_call


logger = logging.getLogger(__name__)

_UNREGISTERED_MARKERS = ("unregistered", "registration-token-not-registered")


@dataclass(frozen=True)
class SendResult:
    ok: bool
    http_status: int | None
    error_text: str | None
    token_disabled: bool = False


def is_unregistered_error(text: str) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in _UNREGISTERED_MARKERS)


class GatewaySender:
    def __init__(self, settings: Settings, store: StoreClient, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._store = store
        self._client = client
        self._owns_client = False

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        self._client = httpx.AsyncClient(timeout=self._settings.push_gateway_timeout_s)
        self._owns_client = True
        return self._client

    def send_url(self) -> str:
        project_id = (self._settings.fcm_project_id or "").strip()
        if not project_id:
            raise ProviderConfigError("FCM_PROJECT_ID is required for push delivery")
        return self._settings.fcm_send_url_template.format(project_id=project_id)

    async def _post(self, access_token: str, message: dict[str, Any]) -> httpx.Response:
        client = self._get_client()
        start = time.monotonic()
        try:
            response = await client.post(
                self.send_url(),
                json=message,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            record_external_call(
                integration="fcm.send",
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        record_external_call(
            integration="fcm.send",
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=response.is_success,
        )
        if not response.is_success:
            error_text = response.text
            raise GatewayError(
                error_text or f"FCM responded with status {response.status_code}",
                status_code=response.status_code,
                token_unregistered=is_unregistered_error(error_text),
            )
        return response

    async def send(self, access_token: str, device_token: DeviceToken, message: dict[str, Any]) -> SendResult:
        """Send one message.

        Transport and gateway failures are reported in the result. Only a missing
        project id raises, as ``ProviderConfigError`` from ``send_url()``.
        """
        try:
            response = await self._post(access_token, message)
        except TransportError as exc:
            increment_counter("push_send_transport_errors_total")
            logger.warning("fcm_send_transport_error platform=%s error=%s", device_token.platform, exc)
            return SendResult(ok=False, http_status=None, error_text=str(exc))
        except GatewayError as exc:
            increment_counter("push_send_failures_total")
            logger.warning(
                "fcm_send_failed platform=%s status=%s unregistered=%s",
                device_token.platform,
                exc.status_code,
                exc.token_unregistered,
            )
            disabled = False
            if exc.token_unregistered:
                disabled = await self._disable(device_token)
            return SendResult(ok=False, http_status=exc.status_code, error_text=str(exc), token_disabled=disabled)
        increment_counter("push_send_success_total")
        return SendResult(ok=True, http_status=response.status_code, error_text=None)

    async def _disable(self, device_token: DeviceToken) -> bool:
        try:
            await self._store.disable_token(device_token.token)
        except StoreError:
            logger.exception("device_token_disable_failed platform=%s", device_token.platform)
            return False
        increment_counter("push_tokens_disabled_total")
        logger.info("device_token_disabled platform=%s", device_token.platform)
        return True

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False
