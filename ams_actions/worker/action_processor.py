from __future__ import annotations

import asyncio
import contextlib
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from ams_actions.actions.descriptor import ActionDescriptor
from ams_actions.core.logging import get_logger, reset_job_id, set_job_id
from ams_actions.core.supabase_rest import (
    mark_action_job_dead_letter,
    mark_action_job_done,
    mark_action_job_for_retry,
    renew_action_job_lease,
    rpc_lease_action_jobs,
)
from ams_actions.worker.audit_logger import AuditLogger
from ams_actions.worker.dispatcher import DispatchReport, NotificationDispatcher
from ams_actions.worker.recipients import RecipientResolver
from ams_actions.worker.retry import retry_at_iso, sanitize_error

ACTION_BATCH_LIMIT = 10
MAX_ACTION_ATTEMPTS = 5
logger = get_logger("worker.actions")


class NotificationPersistenceError(RuntimeError):
    pass


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _safe_int(value: object | None) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


def descriptor_from_job(job: dict[str, Any]) -> ActionDescriptor:
    payload = job.get("payload")
    if not isinstance(payload, dict):
        payload = {}
    if not payload.get("idempotency_key") and job.get("idempotency_key"):
        payload = {**payload, "idempotency_key": job.get("idempotency_key")}
    return ActionDescriptor.model_validate(payload)


class ActionProcessor:
    def __init__(
        self,
        *,
        resolver: RecipientResolver,
        dispatcher: NotificationDispatcher,
        audit_logger: AuditLogger,
        lease_holder: str,
        batch_limit: int = ACTION_BATCH_LIMIT,
        concurrency: int = 1,
        lease_seconds: int = 120,
        max_attempts: int = MAX_ACTION_ATTEMPTS,
        lease_renew_interval: float | None = None,
    ) -> None:
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.audit_logger = audit_logger
        self.lease_holder = lease_holder
        self.batch_limit = max(1, batch_limit)
        self.concurrency = max(1, concurrency)
        self.lease_seconds = max(1, lease_seconds)
        self.max_attempts = max(1, max_attempts)
        # Three renewals per lease window by default.
        self.lease_renew_interval = lease_renew_interval or self.lease_seconds / 3

    async def run_once(self) -> int:
        jobs = await rpc_lease_action_jobs(self.lease_holder, self.batch_limit, self.lease_seconds)
        if not jobs:
            return 0

        if self.concurrency == 1:
            acknowledged = 0
            for job in jobs:
                if await self.process_job(job):
                    acknowledged += 1
            return acknowledged

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _guarded(job: dict[str, Any]) -> bool:
            async with semaphore:
                return await self.process_job(job)

        results = await asyncio.gather(*(_guarded(job) for job in jobs))
        return sum(1 for acknowledged in results if acknowledged)

    async def process_job(self, job: dict[str, Any]) -> bool:
        job_id = str(job.get("id") or "").strip()
        if not job_id:
            return False
        # The lease RPC has already counted this delivery.
        attempts = max(1, _safe_int(job.get("attempts")))

        token = set_job_id(job_id)
        renewal = asyncio.create_task(self._keep_lease(job_id))
        try:
            return await self._process_leased_job(job_id, attempts, job)
        finally:
            renewal.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await renewal
            reset_job_id(token)

    async def _keep_lease(self, job_id: str) -> None:
        while True:
            await asyncio.sleep(self.lease_renew_interval)
            try:
                held = await renew_action_job_lease(job_id, self.lease_holder, self.lease_seconds)
            except Exception as exc:
                logger.warning(
                    "action_job.lease_renew_failed",
                    extra={
                        "component": "worker",
                        "error": sanitize_error(exc, default_message="action job lease renewal failed"),
                    },
                )
                continue
            if not held:
                logger.warning("action_job.lease_lost", extra={"component": "worker"})
                return

    async def _process_leased_job(self, job_id: str, attempts: int, job: dict[str, Any]) -> bool:
        try:
            descriptor = descriptor_from_job(job)
        except ValidationError as exc:
            error_text = sanitize_error(exc, default_message="invalid action payload")
            await self._dead_letter(job_id, attempts, error_text)
            return False

        try:
            if descriptor.has_recipient_criteria:
                recipients = await self.resolver.resolve(descriptor)
                report = await self.dispatcher.dispatch(descriptor, recipients)
            else:
                recipients = set()
                report = DispatchReport()
                logger.info(
                    "action_job.log_only",
                    extra={"component": "worker", "type": descriptor.notification_type.value},
                )
            await self.audit_logger.write_log(descriptor)
            if report.failed:
                raise NotificationPersistenceError(
                    f"{report.failed} of {len(recipients)} notifications were not persisted"
                )
        except Exception as exc:
            await self._return_to_queue(job_id, attempts, exc)
            return False

        try:
            await mark_action_job_done(job_id, attempts)
        except Exception as exc:
            # The lease will lapse and the job is redelivered; rows are keyed by idempotency_key.
            logger.error(
                "action_job.ack_failed",
                extra={
                    "component": "worker",
                    "error": sanitize_error(exc, default_message="action job ack failed"),
                },
            )
            return False

        logger.info(
            "action_job.completed",
            extra={
                "component": "worker",
                "type": descriptor.notification_type.value,
                "recipients": len(recipients),
                "delivered": report.delivered,
                "attempts": attempts,
            },
        )
        return True

    async def _return_to_queue(self, job_id: str, attempts: int, exc: Exception) -> None:
        error_text = sanitize_error(exc, default_message="action job failed")
        if attempts >= self.max_attempts:
            await self._dead_letter(job_id, attempts, error_text)
            return

        run_after = retry_at_iso(attempts)
        try:
            await mark_action_job_for_retry(job_id, attempts, run_after, error_text)
        except Exception as mark_exc:
            logger.error(
                "action_job.retry_mark_failed",
                extra={
                    "component": "worker",
                    "error": sanitize_error(mark_exc, default_message="action job retry mark failed"),
                },
            )
            return
        logger.warning(
            "action_job.retry_scheduled",
            extra={
                "component": "worker",
                "attempts": attempts,
                "run_after": run_after,
                "error": error_text,
            },
        )

    async def _dead_letter(self, job_id: str, attempts: int, error_text: str) -> None:
        try:
            await mark_action_job_dead_letter(job_id, attempts, error_text, _now_iso())
        except Exception as mark_exc:
            logger.error(
                "action_job.dead_letter_mark_failed",
                extra={
                    "component": "worker",
                    "error": sanitize_error(mark_exc, default_message="action job dead-letter mark failed"),
                },
            )
            return
        logger.error(
            "action_job.dead_letter",
            extra={"component": "worker", "attempts": attempts, "error": error_text},
        )
