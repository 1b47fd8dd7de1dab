import asyncio

import pytest

from ams_actions.actions.descriptor import ActionDescriptor
from ams_actions.realtime.emitter import NullEmitter
from ams_actions.worker import audit_logger as audit_logger_module
from ams_actions.worker import dispatcher as dispatcher_module
from ams_actions.worker.audit_logger import AuditLogger
from ams_actions.worker.dispatcher import NotificationDispatcher

ACTOR_ID = "11111111-1111-1111-1111-111111111111"
U2 = "22222222-2222-2222-2222-222222222222"


class SilentPush:
    async def send(self, **kwargs) -> bool:
        return False


def _descriptor(**fields) -> ActionDescriptor:
    return ActionDescriptor(
        actor_id=ACTOR_ID,
        notification_type="account",
        message="updated your account.",
        admin_message="updated an account.",
        primary_recipient_id=U2,
        idempotency_key="idem-9",
        **fields,
    )


def test_write_log_records_raw_message(monkeypatch) -> None:
    inserted: list[dict[str, object]] = []

    async def fake_insert(payload: dict[str, object]):
        inserted.append(payload)
        return {**payload, "id": "log-1", "created_at": "2026-03-01T09:00:00Z"}

    monkeypatch.setattr(audit_logger_module, "insert_log_service", fake_insert)

    row = asyncio.run(AuditLogger().write_log(_descriptor(role_tag="hr")))

    assert row["id"] == "log-1"
    assert inserted == [
        {
            "idempotency_key": "idem-9",
            "actor_id": ACTOR_ID,
            "primary_recipient_id": U2,
            "type": "account",
            "message": "updated your account.",
            "role_tag": "hr",
        }
    ]


def test_write_log_tolerates_existing_row(monkeypatch) -> None:
    async def fake_insert(payload: dict[str, object]):
        return None

    monkeypatch.setattr(audit_logger_module, "insert_log_service", fake_insert)

    row = asyncio.run(AuditLogger().write_log(_descriptor()))

    assert row["idempotency_key"] == "idem-9"
    assert row["actor_id"] == ACTOR_ID


@pytest.mark.parametrize("hide_in_log", [False, True])
@pytest.mark.parametrize("hide_in_notification", [False, True])
def test_hide_flags_are_independent(monkeypatch, hide_in_log: bool, hide_in_notification: bool) -> None:
    logs: list[dict[str, object]] = []
    notifications: list[dict[str, object]] = []

    async def fake_insert_log(payload: dict[str, object]):
        logs.append(payload)
        return {**payload, "id": "log-1"}

    async def fake_insert_notification(payload: dict[str, object]):
        notifications.append(payload)
        return {**payload, "id": "notification-1"}

    async def fake_role(user_id: str) -> str:
        return "employee"

    async def fake_display(user_id: str):
        return {"id": user_id, "first_name": "Rana"}

    monkeypatch.setattr(audit_logger_module, "insert_log_service", fake_insert_log)
    monkeypatch.setattr(dispatcher_module, "insert_notification_service", fake_insert_notification)
    monkeypatch.setattr(dispatcher_module, "select_user_role_service", fake_role)
    monkeypatch.setattr(dispatcher_module, "select_user_display_service", fake_display)

    descriptor = _descriptor(hide_in_log=hide_in_log, hide_in_notification=hide_in_notification)
    dispatcher = NotificationDispatcher(emitter=NullEmitter(), push_sender=SilentPush())
    asyncio.run(dispatcher.dispatch(descriptor, [U2]))
    asyncio.run(AuditLogger().write_log(descriptor))

    assert len(notifications) == 1
    assert len(logs) == 1
    assert notifications[0]["actor_id"] == (None if hide_in_notification else ACTOR_ID)
    assert logs[0]["actor_id"] == (None if hide_in_log else ACTOR_ID)
