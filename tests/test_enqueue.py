import asyncio
from uuid import UUID

import pytest
from fastapi import HTTPException

from ams_actions.actions import enqueue
from ams_actions.actions.descriptor import ActionDescriptor
from ams_actions.actions.enqueue import ActionQueueUnavailableError, InvalidActionError, track_action

ACTOR_ID = "11111111-1111-1111-1111-111111111111"
U2 = "22222222-2222-2222-2222-222222222222"
T1 = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaa1"


def test_track_action_queues_descriptor(monkeypatch) -> None:
    inserted: list[dict[str, object]] = []

    async def fake_insert(payload: dict[str, object]):
        inserted.append(payload)
        return {"id": "job-1", **payload}

    monkeypatch.setattr(enqueue, "insert_action_job_service", fake_insert)

    job_id = asyncio.run(
        track_action(
            actor_id=ACTOR_ID,
            notification_type="leave",
            message="approved your leave request.",
            primary_recipient_id=U2,
            team_ids=(T1,),
            hide_in_log=True,
        )
    )

    assert job_id == "job-1"
    assert len(inserted) == 1
    row = inserted[0]
    assert row["status"] == "queued"
    assert row["attempts"] == 0
    UUID(str(row["idempotency_key"]))
    payload = row["payload"]
    assert payload["idempotency_key"] == row["idempotency_key"]
    assert payload["actor_id"] == ACTOR_ID
    assert payload["notification_type"] == "leave"
    assert payload["primary_recipient_id"] == U2
    assert payload["team_ids"] == [T1]
    assert payload["extra_recipient_ids"] == []
    assert payload["notify_all_admins"] is False
    assert payload["hide_in_log"] is True
    assert payload["hide_in_notification"] is False


def test_enqueue_keeps_caller_idempotency_key(monkeypatch) -> None:
    inserted: list[dict[str, object]] = []

    async def fake_insert(payload: dict[str, object]):
        inserted.append(payload)
        return {"id": "job-2"}

    monkeypatch.setattr(enqueue, "insert_action_job_service", fake_insert)
    descriptor = ActionDescriptor(
        actor_id=ACTOR_ID, notification_type="ticket", message="closed a ticket.", idempotency_key="ticket-42-closed"
    )

    assert asyncio.run(enqueue.enqueue_action(descriptor)) == "job-2"
    assert inserted[0]["idempotency_key"] == "ticket-42-closed"


def test_track_action_rejects_invalid_descriptor(monkeypatch) -> None:
    async def fake_insert(payload: dict[str, object]):
        raise AssertionError("invalid actions must not be queued")

    monkeypatch.setattr(enqueue, "insert_action_job_service", fake_insert)

    with pytest.raises(InvalidActionError):
        asyncio.run(track_action(actor_id="", notification_type="leave", message="did something"))
    with pytest.raises(InvalidActionError):
        asyncio.run(track_action(actor_id=ACTOR_ID, notification_type="unknown", message="did something"))


def test_track_action_surfaces_unavailable_queue(monkeypatch) -> None:
    async def fake_insert(payload: dict[str, object]):
        raise HTTPException(status_code=502, detail="Failed to enqueue action job in Supabase.")

    monkeypatch.setattr(enqueue, "insert_action_job_service", fake_insert)

    with pytest.raises(ActionQueueUnavailableError):
        asyncio.run(track_action(actor_id=ACTOR_ID, notification_type="config", message="changed settings."))
