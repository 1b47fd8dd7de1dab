from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from ams_actions.actions.descriptor import ActionDescriptor
from ams_actions.core.logging import get_logger
from ams_actions.core.supabase_rest import (
    insert_notification_service,
    select_user_display_service,
    select_user_role_service,
)
from ams_actions.notifications.types import NEW_NOTIFICATION_EVENT, is_admin_role
from ams_actions.push.fcm import display_name
from ams_actions.realtime.emitter import Emitter
from ams_actions.worker.retry import sanitize_error

logger = get_logger("worker.dispatcher")


class PushChannel(Protocol):
    async def send(
        self,
        *,
        recipient_id: str,
        notification: dict[str, Any],
        actor_display_name: str,
    ) -> bool: ...


@dataclass
class DispatchReport:
    delivered: int = 0
    failed: int = 0


def select_message(role: str | None, descriptor: ActionDescriptor) -> str:
    if is_admin_role(role) and descriptor.admin_message:
        return descriptor.admin_message
    return descriptor.message


class NotificationDispatcher:
    def __init__(self, *, emitter: Emitter, push_sender: PushChannel) -> None:
        self.emitter = emitter
        self.push_sender = push_sender

    async def dispatch(self, descriptor: ActionDescriptor, recipients: Iterable[str]) -> DispatchReport:
        report = DispatchReport()
        actor = None if descriptor.hide_in_notification else await self._actor_display(descriptor.actor_id)
        actor_display_name = display_name(actor)

        for recipient_id in sorted(set(recipients)):
            try:
                role = await select_user_role_service(recipient_id)
                row = await insert_notification_service(
                    {
                        "idempotency_key": descriptor.idempotency_key,
                        "recipient_id": recipient_id,
                        "actor_id": None if descriptor.hide_in_notification else descriptor.actor_id,
                        "type": descriptor.notification_type.value,
                        "message": select_message(role, descriptor),
                        "read": False,
                        "role_tag": descriptor.role_tag,
                    }
                )
            except Exception as exc:
                report.failed += 1
                logger.error(
                    "dispatch.persist_failed",
                    extra={
                        "component": "worker",
                        "recipient_id": recipient_id,
                        "error": sanitize_error(exc, default_message="notification insert failed"),
                    },
                )
                continue

            report.delivered += 1
            if row is None:
                # Redelivered descriptor: this recipient was already told.
                logger.info(
                    "dispatch.already_delivered",
                    extra={
                        "component": "worker",
                        "recipient_id": recipient_id,
                        "idempotency_key": descriptor.idempotency_key,
                    },
                )
                continue

            await self._emit(recipient_id, {**row, "actor": actor})
            await self._push(recipient_id, row, actor_display_name)

        logger.info(
            "dispatch.finished",
            extra={
                "component": "worker",
                "type": descriptor.notification_type.value,
                "delivered": report.delivered,
                "failed": report.failed,
            },
        )
        return report

    async def _actor_display(self, actor_id: str) -> dict[str, Any] | None:
        try:
            return await select_user_display_service(actor_id)
        except Exception as exc:
            logger.warning(
                "dispatch.actor_lookup_failed",
                extra={
                    "component": "worker",
                    "actor_id": actor_id,
                    "error": sanitize_error(exc, default_message="actor lookup failed"),
                },
            )
            return None

    async def _emit(self, recipient_id: str, payload: dict[str, Any]) -> None:
        try:
            await self.emitter.emit(recipient_id, NEW_NOTIFICATION_EVENT, payload)
        except Exception as exc:
            logger.warning(
                "dispatch.emit_failed",
                extra={
                    "component": "worker",
                    "recipient_id": recipient_id,
                    "error": sanitize_error(exc, default_message="realtime emit failed"),
                },
            )

    async def _push(self, recipient_id: str, row: dict[str, Any], actor_display_name: str) -> None:
        try:
            await self.push_sender.send(
                recipient_id=recipient_id,
                notification=row,
                actor_display_name=actor_display_name,
            )
        except Exception as exc:
            logger.warning(
                "dispatch.push_failed",
                extra={
                    "component": "worker",
                    "recipient_id": recipient_id,
                    "error": sanitize_error(exc, default_message="push delivery failed"),
                },
            )
