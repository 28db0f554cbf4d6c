from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from pushworker.core.config import get_settings
from pushworker.core.logging import configure_logging
from pushworker.services.push.worker import run_push_worker


logger = logging.getLogger(__name__)


def cron_minutes(poll_interval_s: int) -> set[int]:
    # arq cron resolves to minutes; sub-minute cadences still fire once a minute.
    step = max(1, int(poll_interval_s) // 60)
    return set(range(0, 60, step))


async def deliver_pending_pushes(ctx) -> dict:
    # One scheduled invocation drains at most one batch; the next tick picks up any backlog.
    result = await run_push_worker(ctx["settings"])
    if not result.ok:
        logger.error("push_worker_invocation_failed error=%s", result.error)
    return result.as_response()


async def _startup(ctx) -> None:
    configure_logging()
    ctx["settings"] = get_settings()


class WorkerSettings:
    # Keep worker settings as class attributes for ARQ CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.push_queue_name
    max_tries = 1
    functions = [deliver_pending_pushes]
    cron_jobs = [
        cron(
            deliver_pending_pushes,
            minute=cron_minutes(settings.push_worker_poll_interval_s),
            second={0},
            # Outer bound slightly above the in-process invocation budget.
            timeout=int(settings.push_invocation_budget_s) + 5,
            unique=True,
        )
    ]
    on_startup = _startup
