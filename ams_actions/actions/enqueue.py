from __future__ import annotations

import uuid
from collections.abc import Iterable

from fastapi import HTTPException
from pydantic import ValidationError

from ams_actions.actions.descriptor import ActionDescriptor
from ams_actions.core.logging import get_logger
from ams_actions.core.supabase_rest import insert_action_job_service
from ams_actions.notifications.types import NotificationType
from ams_actions.worker.retry import sanitize_error

logger = get_logger("actions.enqueue")


class InvalidActionError(ValueError):
    pass


class ActionQueueUnavailableError(RuntimeError):
    pass


async def enqueue_action(descriptor: ActionDescriptor) -> str:
    """Durably queue ``descriptor`` and return the action job id.

    The caller's own business write is already committed at this point and is
    never rolled back here; a failure only means the fan-out was not queued.
    """
    if not descriptor.idempotency_key:
        descriptor = descriptor.model_copy(update={"idempotency_key": str(uuid.uuid4())})

    try:
        row = await insert_action_job_service(
            {
                "idempotency_key": descriptor.idempotency_key,
                "payload": descriptor.to_job_payload(),
                "status": "queued",
                "attempts": 0,
            }
        )
    except HTTPException as exc:
        logger.error(
            "action_queue.enqueue_failed",
            extra={
                "component": "api",
                "type": descriptor.notification_type.value,
                "error": sanitize_error(exc, default_message="enqueue failed"),
            },
        )
        raise ActionQueueUnavailableError("Action queue is unavailable.") from exc

    job_id = str(row.get("id") or "")
    logger.info(
        "action_queue.enqueued",
        extra={
            "component": "api",
            "job_id": job_id,
            "type": descriptor.notification_type.value,
            "idempotency_key": descriptor.idempotency_key,
        },
    )
    return job_id


async def track_action(
    *,
    actor_id: str,
    notification_type: NotificationType | str,
    message: str,
    primary_recipient_id: str | None = None,
    extra_recipient_ids: Iterable[str] = (),
    notify_all_admins: bool = False,
    notify_all_active_users: bool = False,
    team_ids: Iterable[str] = (),
    department_ids: Iterable[str] = (),
    admin_message: str | None = None,
    hide_in_log: bool = False,
    hide_in_notification: bool = False,
    role_tag: str | None = None,
) -> str:
    """Record that ``actor_id`` did something and queue the resulting notifications.

    Example, from a leave approval handler::

        await track_action(
            actor_id=approver_id,
            notification_type=NotificationType.LEAVE,
            message="approved your leave request.",
            primary_recipient_id=leave["user_id"],
        )
    """
    try:
        descriptor = ActionDescriptor(
            actor_id=actor_id,
            notification_type=notification_type,
            message=message,
            primary_recipient_id=primary_recipient_id,
            extra_recipient_ids=list(extra_recipient_ids),
            notify_all_admins=notify_all_admins,
            notify_all_active_users=notify_all_active_users,
            team_ids=list(team_ids),
            department_ids=list(department_ids),
            admin_message=admin_message,
            hide_in_log=hide_in_log,
            hide_in_notification=hide_in_notification,
            role_tag=role_tag,
        )
    except ValidationError as exc:
        raise InvalidActionError(str(exc)) from exc

    return await enqueue_action(descriptor)
