from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import time
from typing import Any

import httpx

from pushworker.core.config import Settings
from pushworker.core.errors import AuthError, NoTokensError, StoreError
from pushworker.domain.models import DELIVERY_STATUS_FAILED, DELIVERY_STATUS_SENT, DELIVERY_STATUS_SKIPPED
from pushworker.domain.payloads import Delivery, DeviceToken
from pushworker.domain.trace import AttemptTrace, DeliveryTrace
from pushworker.persistence.db import build_sessionmaker, create_engine_from_settings
from pushworker.services.push.builder import build_message
from pushworker.services.push.classifier import Classification, classify
from pushworker.services.push.credentials import ServiceAccountSigner
from pushworker.services.push.gateway import GatewaySender, SendResult
from pushworker.services.push.store import StoreClient
from pushworker.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

REASON_NO_DEVICE_TOKENS = "no device tokens"
REASON_TOKEN_LOOKUP_FAILED = "device token lookup failed"
REASON_BUDGET_EXCEEDED = "invocation budget exceeded"
REASON_SEND_FAILED = "FCM send failed"


@dataclass(frozen=True)
class WorkerRunResult:
    ok: bool
    processed: int = 0
    error: str | None = None

    def as_response(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "processed": self.processed}
        return {"ok": False, "error": self.error}


@dataclass(frozen=True)
class DeliveryOutcome:
    status: str
    reason: str | None
    debug: DeliveryTrace


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def safe_short(text: Any, max_len: int) -> str:
    value = "" if text is None else str(text)
    if len(value) <= max_len:
        return value
    return value[:max_len] + "…"


class PushDeliveryWorker:
    """Drain one batch of pending push deliveries.

    Deliveries run sequentially in fetch order and every fetched delivery
    leaves ``run_once`` with a terminal status. Only the pending fetch and the
    access-token exchange can fail the whole invocation.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        store: StoreClient,
        signer: ServiceAccountSigner,
        sender: GatewaySender,
    ) -> None:
        self._settings = settings
        self._store = store
        self._signer = signer
        self._sender = sender

    def _clock(self) -> float:
        return time.monotonic()

    def _short(self, text: Any) -> str:
        return safe_short(text, max(1, int(self._settings.push_reason_max_len)))

    async def run_once(self) -> WorkerRunResult:
        started = self._clock()
        budget_s = float(self._settings.push_invocation_budget_s)
        try:
            deliveries = await self._store.fetch_pending_deliveries(limit=self._settings.push_batch_limit)
        except StoreError as exc:
            logger.error("push_pending_fetch_failed error=%s", exc)
            return WorkerRunResult(ok=False, error=str(exc))
        if not deliveries:
            return WorkerRunResult(ok=True, processed=0)

        try:
            # Fail fast on missing gateway config before any delivery is touched.
            self._sender.send_url()
            access_token = await self._signer.get_access_token()
        except AuthError as exc:
            logger.error("push_access_token_failed error=%s", exc)
            return WorkerRunResult(ok=False, error=str(exc))

        processed = 0
        for delivery in deliveries:
            if budget_s > 0 and self._clock() - started >= budget_s:
                outcome = self._budget_exceeded_outcome(delivery)
            else:
                outcome = await self._process_guarded(delivery, access_token)
            await self._write_outcome(delivery, outcome)
            increment_counter(f"push_deliveries_{outcome.status.lower()}_total")
            processed += 1
        logger.info(
            "push_batch_complete fetched=%s processed=%s elapsed_ms=%.1f",
            len(deliveries),
            processed,
            (self._clock() - started) * 1000.0,
        )
        return WorkerRunResult(ok=True, processed=processed)

    async def _process_guarded(self, delivery: Delivery, access_token: str) -> DeliveryOutcome:
        try:
            return await self.process_delivery(delivery, access_token)
        except Exception as exc:  # noqa: BLE001 - one bad delivery must not strand the rest of the batch.
            logger.exception("push_delivery_failed delivery_id=%s", delivery.id)
            return DeliveryOutcome(
                status=DELIVERY_STATUS_FAILED,
                reason=self._short(str(exc) or exc.__class__.__name__),
                debug=self._stage_trace(delivery, stage="process", error=exc.__class__.__name__),
            )

    async def process_delivery(self, delivery: Delivery, access_token: str) -> DeliveryOutcome:
        classification = classify(delivery.payload, default_title=self._settings.push_default_title)
        try:
            tokens = await self._store.fetch_enabled_tokens(delivery.user_id)
            if not tokens:
                raise NoTokensError(REASON_NO_DEVICE_TOKENS)
        except NoTokensError:
            trace = self._stage_trace(delivery, stage="tokens", error=REASON_NO_DEVICE_TOKENS)
            trace["classification"] = classification.as_trace()
            return DeliveryOutcome(status=DELIVERY_STATUS_SKIPPED, reason=REASON_NO_DEVICE_TOKENS, debug=trace)
        except StoreError as exc:
            logger.warning("push_token_lookup_failed delivery_id=%s error=%s", delivery.id, exc)
            trace = self._stage_trace(delivery, stage="tokens", error=str(exc))
            trace["classification"] = classification.as_trace()
            return DeliveryOutcome(status=DELIVERY_STATUS_FAILED, reason=REASON_TOKEN_LOOKUP_FAILED, debug=trace)

        any_ok = False
        last_error = ""
        attempts: list[AttemptTrace] = []
        for device_token in tokens:
            result = await self._send_one(classification, device_token, access_token)
            attempts.append(
                {
                    "platform": device_token.platform,
                    "include_notification": classification.include_notification,
                    "ok": result.ok,
                    "http_status": result.http_status,
                    "error_short": None if result.ok else self._short(result.error_text or REASON_SEND_FAILED),
                }
            )
            if result.ok:
                any_ok = True
            else:
                last_error = result.error_text or REASON_SEND_FAILED

        trace: DeliveryTrace = {
            "at": _utc_now().isoformat(),
            "delivery_id": delivery.id,
            "user_id": delivery.user_id,
            "classification": classification.as_trace(),
            "attempts": attempts,
        }
        if any_ok:
            return DeliveryOutcome(status=DELIVERY_STATUS_SENT, reason=None, debug=trace)
        return DeliveryOutcome(
            status=DELIVERY_STATUS_FAILED,
            reason=self._short(last_error or REASON_SEND_FAILED),
            debug=trace,
        )

    async def _send_one(
        self,
        classification: Classification,
        device_token: DeviceToken,
        access_token: str,
    ) -> SendResult:
        message = build_message(
            classification,
            device_token,
            android_channel_id=self._settings.android_channel_id,
        )
        return await self._sender.send(access_token, device_token, message)

    def _stage_trace(self, delivery: Delivery, *, stage: str, error: str) -> DeliveryTrace:
        return {
            "at": _utc_now().isoformat(),
            "delivery_id": delivery.id,
            "user_id": delivery.user_id,
            "stage": stage,
            "error": self._short(error),
            "attempts": [],
        }

    def _budget_exceeded_outcome(self, delivery: Delivery) -> DeliveryOutcome:
        logger.warning("push_budget_exceeded delivery_id=%s", delivery.id)
        return DeliveryOutcome(
            status=DELIVERY_STATUS_FAILED,
            reason=REASON_BUDGET_EXCEEDED,
            debug=self._stage_trace(delivery, stage="budget", error=REASON_BUDGET_EXCEEDED),
        )

    async def _write_outcome(self, delivery: Delivery, outcome: DeliveryOutcome) -> None:
        try:
            await self._store.patch_delivery_status(
                delivery.id,
                outcome.status,
                reason=outcome.reason,
                debug=dict(outcome.debug),
            )
        except StoreError:
            logger.exception("push_delivery_patch_failed delivery_id=%s status=%s", delivery.id, outcome.status)
        else:
            return
        # Second, smaller write without the trace; if this fails too the row stays PENDING.
        try:
            await self._store.patch_delivery_status(delivery.id, outcome.status, reason=outcome.reason)
        except StoreError:
            logger.exception("push_delivery_status_write_failed delivery_id=%s", delivery.id)


async def run_push_worker(settings: Settings) -> WorkerRunResult:
    # Wire one invocation from explicit settings and release every resource afterwards.
    try:
        engine = create_engine_from_settings(settings)
    except Exception as exc:  # noqa: BLE001 - a malformed DATABASE_URL is a fatal result, not a crash.
        logger.exception("push_engine_setup_failed")
        return WorkerRunResult(ok=False, error=f"store setup failed: {exc.__class__.__name__}")
    store = StoreClient(build_sessionmaker(engine))
    try:
        async with httpx.AsyncClient(timeout=settings.push_gateway_timeout_s) as client:
            worker = PushDeliveryWorker(
                settings,
                store=store,
                signer=ServiceAccountSigner(settings, client=client),
                sender=GatewaySender(settings, store, client=client),
            )
            return await worker.run_once()
    finally:
        await engine.dispose()


async def run_push_delivery_loop(settings: Settings) -> None:
    # Long-running mode: one signer for the process so the cached token is reused until near expiry.
    interval = max(1, int(settings.push_worker_poll_interval_s))
    engine = create_engine_from_settings(settings)
    store = StoreClient(build_sessionmaker(engine))
    try:
        async with httpx.AsyncClient(timeout=settings.push_gateway_timeout_s) as client:
            worker = PushDeliveryWorker(
                settings,
                store=store,
                signer=ServiceAccountSigner(settings, client=client),
                sender=GatewaySender(settings, store, client=client),
            )
            while True:
                try:
                    result = await worker.run_once()
                    if not result.ok:
                        logger.error("push_delivery_cycle_failed error=%s", result.error)
                except Exception:  # noqa: BLE001 - keep loop alive while surfacing errors in logs.
                    logger.exception("push delivery cycle failed")
                await asyncio.sleep(interval)
    finally:
        await engine.dispose()
