from __future__ import annotations

import asyncio
import os
from datetime import UTC, datetime

import uvicorn

from ams_actions.core.logging import configure_logging, get_logger
from ams_actions.core.settings import get_settings
from ams_actions.core.supabase_rest import upsert_system_status
from ams_actions.push.fcm import PushSender
from ams_actions.realtime.emitter import Emitter, build_emitter
from ams_actions.worker.action_processor import ActionProcessor
from ams_actions.worker.audit_logger import AuditLogger
from ams_actions.worker.dispatcher import NotificationDispatcher
from ams_actions.worker.recipients import RecipientResolver
from ams_actions.worker.retry import sanitize_error

logger = get_logger("worker.supervisor")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _worker_holder() -> str:
    alloc = os.getenv("HOSTNAME") or "worker"
    return f"{alloc}:{os.getpid()}"


def build_action_processor(emitter: Emitter | None = None) -> ActionProcessor:
    settings = get_settings()
    dispatcher = NotificationDispatcher(
        emitter=emitter if emitter is not None else build_emitter(),
        push_sender=PushSender(),
    )
    return ActionProcessor(
        resolver=RecipientResolver(),
        dispatcher=dispatcher,
        audit_logger=AuditLogger(),
        lease_holder=_worker_holder(),
        batch_limit=settings.WORKER_BATCH_LIMIT,
        concurrency=settings.WORKER_CONCURRENCY,
        lease_seconds=settings.ACTION_JOB_LEASE_SECONDS,
        max_attempts=settings.ACTION_JOB_MAX_ATTEMPTS,
    )


async def run_worker_tick(
    action_processor: ActionProcessor,
    *,
    heartbeat_enabled: bool,
) -> dict[str, object]:
    tick_started_at = _now_iso()
    errors = 0
    actions_processed = 0

    try:
        actions_processed = await action_processor.run_once()
    except Exception as exc:
        errors += 1
        logger.error(
            "worker.tick_process_actions_error",
            extra={"component": "worker", "error": sanitize_error(exc, default_message="worker error")},
        )

    payload: dict[str, object] = {
        "mode": "worker",
        "holder": action_processor.lease_holder,
        "tick_started_at": tick_started_at,
        "tick_finished_at": _now_iso(),
        "actions_processed": actions_processed,
        "errors": errors,
    }

    if heartbeat_enabled:
        try:
            await upsert_system_status("worker", payload)
        except Exception as exc:
            logger.error(
                "worker.heartbeat_error",
                extra={
                    "component": "worker",
                    "error": sanitize_error(exc, default_message="worker heartbeat error"),
                },
            )

    return payload


async def run_worker_supervisor_loop(
    emitter: Emitter | None = None,
    stop_event: asyncio.Event | None = None,
) -> None:
    settings = get_settings()
    if not (settings.SUPABASE_SERVICE_ROLE_KEY or "").strip():
        raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY must be configured for worker mode")

    action_processor = build_action_processor(emitter)
    logger.info(
        "worker.started",
        extra={"component": "worker", "holder": action_processor.lease_holder},
    )

    while stop_event is None or not stop_event.is_set():
        payload = await run_worker_tick(action_processor, heartbeat_enabled=True)
        if int(payload.get("actions_processed") or 0) == 0:
            await asyncio.sleep(max(1, settings.WORKER_POLL_INTERVAL_SECONDS))


def main() -> None:
    configure_logging()
    settings = get_settings()
    mode = settings.AMS_MODE.strip().lower()

    if mode == "worker":
        asyncio.run(run_worker_supervisor_loop())
        return

    host = os.getenv("API_HOST", settings.API_HOST)
    port = int(os.getenv("PORT", str(settings.API_PORT)))
    uvicorn.run("ams_actions.main:app", host=host, port=port)


if __name__ == "__main__":
    main()
