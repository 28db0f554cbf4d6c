from __future__ import annotations

import hmac
import logging
import time
from typing import Awaitable, Callable
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pushworker.core.config import Settings, get_settings
from pushworker.core.logging import configure_logging
from pushworker.services.push.worker import WorkerRunResult, run_push_worker
from pushworker.services.telemetry import counters_snapshot, external_call_stats


logger = logging.getLogger(__name__)

WorkerRunner = Callable[[Settings], Awaitable[WorkerRunResult]]


class HealthResponse(BaseModel):
    status: str


class RunResponse(BaseModel):
    ok: bool
    processed: int | None = None
    error: str | None = None


def _authorized(request: Request, settings: Settings) -> bool:
    secret = settings.push_worker_invoke_secret
    if secret is None or not secret.get_secret_value():
        return True
    header = request.headers.get("Authorization", "")
    scheme, _, provided = header.partition(" ")
    if scheme.lower() != "bearer" or not provided:
        return False
    return hmac.compare_digest(provided.strip(), secret.get_secret_value())


def create_app(settings: Settings | None = None, *, runner: WorkerRunner | None = None) -> FastAPI:
    settings = settings or get_settings()
    runner = runner or run_push_worker
    configure_logging(settings.log_level)
    app = FastAPI(title="Push delivery worker")

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        start = time.monotonic()
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time-Ms"] = f"{(time.monotonic() - start) * 1000.0:.1f}"
        return response

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/push-worker/stats")
    async def stats() -> dict:
        return {"counters": counters_snapshot(), "external_calls": external_call_stats(3600)}

    @app.post("/push-worker/run", response_model=RunResponse)
    async def run(request: Request) -> JSONResponse:
        # Trigger one batch; per-delivery outcomes are only visible in the store.
        if not _authorized(request, settings):
            return JSONResponse(status_code=401, content={"ok": False, "error": "unauthorized"})
        try:
            result = await runner(settings)
        except Exception as exc:  # noqa: BLE001 - callers always get the JSON fatal shape.
            logger.exception("push_worker_run_failed")
            result = WorkerRunResult(ok=False, error=str(exc) or exc.__class__.__name__)
        status_code = 200 if result.ok else 500
        return JSONResponse(status_code=status_code, content=result.as_response())

    return app
