from __future__ import annotations

from typing import Any

from ams_actions.actions.descriptor import ActionDescriptor
from ams_actions.core.logging import get_logger
from ams_actions.core.supabase_rest import insert_log_service

logger = get_logger("worker.audit_logger")


class AuditLogger:
    """Writes the single "actor did X" row for a processed action.

    The row records the raw default message, never the per-recipient variants,
    and says nothing about who was notified.
    """

    async def write_log(self, descriptor: ActionDescriptor) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "idempotency_key": descriptor.idempotency_key,
            "actor_id": None if descriptor.hide_in_log else descriptor.actor_id,
            "primary_recipient_id": descriptor.primary_recipient_id,
            "type": descriptor.notification_type.value,
            "message": descriptor.message,
            "role_tag": descriptor.role_tag,
        }
        row = await insert_log_service(payload)
        if row is None:
            logger.info(
                "audit_log.already_written",
                extra={"component": "worker", "idempotency_key": descriptor.idempotency_key},
            )
            return payload

        logger.info(
            "audit_log.written",
            extra={"component": "worker", "log_id": row.get("id"), "type": payload["type"]},
        )
        return row
