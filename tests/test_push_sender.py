import asyncio

from ams_actions.push import fcm
from ams_actions.push.fcm import PushSender, build_push_message, display_name

U2 = "22222222-2222-2222-2222-222222222222"
U3 = "33333333-3333-3333-3333-333333333333"
FAKE_APP = object()


def _notification(**fields) -> dict[str, object]:
    notification: dict[str, object] = {
        "id": "notification-1",
        "recipient_id": U2,
        "type": "leave_request",
        "message": "applied for leave",
    }
    notification.update(fields)
    return notification


def _patch_push(monkeypatch, profile: dict[str, object] | None) -> list[tuple[object, object]]:
    sent: list[tuple[object, object]] = []

    async def fake_profile(user_id: str):
        assert user_id == U2
        return profile

    async def fake_run_in_threadpool(func, message, **kwargs):
        assert func is fcm.messaging.send
        sent.append((message, kwargs.get("app")))
        return "projects/ams/messages/1"

    monkeypatch.setattr(fcm, "get_firebase_app", lambda: FAKE_APP)
    monkeypatch.setattr(fcm, "select_user_push_profile_service", fake_profile)
    monkeypatch.setattr(fcm, "run_in_threadpool", fake_run_in_threadpool)
    return sent


def test_display_name() -> None:
    assert display_name({"first_name": " Rana "}) == "Rana"
    assert display_name({"first_name": ""}) == "Someone"
    assert display_name(None) == "Someone"


def test_build_push_message_carries_platform_options() -> None:
    message = build_push_message(
        token="device-token",
        title="Leave Request",
        body="Rana applied for leave",
        data={"type": "leave_request", "notification_id": "notification-1"},
    )

    assert message.token == "device-token"
    assert message.notification.title == "Leave Request"
    assert message.notification.body == "Rana applied for leave"
    assert message.data["type"] == "leave_request"
    assert message.data["title"] == "Leave Request"
    assert message.data["body"] == "Rana applied for leave"
    assert message.data["click_action"] == "FLUTTER_NOTIFICATION_CLICK"
    assert message.android.priority == "high"
    assert message.android.notification.channel_id == "high_importance_channel"
    assert message.apns.headers["apns-priority"] == "10"
    assert message.apns.payload.aps.badge == 1
    assert message.webpush.notification.icon == "/icon.png"


def test_send_pushes_to_active_user_with_token(monkeypatch) -> None:
    sent = _patch_push(monkeypatch, {"id": U2, "fcm_token": "device-token", "is_active": True})

    accepted = asyncio.run(
        PushSender().send(recipient_id=U2, notification=_notification(), actor_display_name="Rana")
    )

    assert accepted is True
    assert len(sent) == 1
    message, app = sent[0]
    assert app is FAKE_APP
    assert message.token == "device-token"
    assert message.notification.title == "Leave Request"
    assert message.notification.body == "Rana applied for leave"
    assert message.data["notification_id"] == "notification-1"


def test_send_skips_inactive_missing_or_tokenless_users(monkeypatch) -> None:
    for profile in (
        None,
        {"id": U2, "fcm_token": "device-token", "is_active": False},
        {"id": U2, "fcm_token": None, "is_active": True},
        {"id": U2, "fcm_token": "  ", "is_active": True},
    ):
        sent = _patch_push(monkeypatch, profile)
        accepted = asyncio.run(
            PushSender().send(recipient_id=U2, notification=_notification(), actor_display_name="Rana")
        )
        assert accepted is False
        assert sent == []


def test_send_swallows_provider_errors(monkeypatch) -> None:
    _patch_push(monkeypatch, {"id": U2, "fcm_token": "device-token", "is_active": True})

    async def failing_run_in_threadpool(func, message, **kwargs):
        raise RuntimeError("Requested entity was not found.")

    monkeypatch.setattr(fcm, "run_in_threadpool", failing_run_in_threadpool)

    accepted = asyncio.run(
        PushSender().send(recipient_id=U2, notification=_notification(), actor_display_name="Rana")
    )

    assert accepted is False


def test_send_is_noop_when_push_not_configured(monkeypatch) -> None:
    async def fail_profile(user_id: str):
        raise AssertionError("profile lookup should be skipped")

    monkeypatch.setattr(fcm, "get_firebase_app", lambda: None)
    monkeypatch.setattr(fcm, "select_user_push_profile_service", fail_profile)

    accepted = asyncio.run(
        PushSender().send(recipient_id=U2, notification=_notification(), actor_display_name="Rana")
    )

    assert accepted is False


def test_send_test_to_all_counts_results(monkeypatch) -> None:
    async def fake_targets():
        return [
            {"id": U2, "fcm_token": "token-2"},
            {"id": U3, "fcm_token": "token-3"},
        ]

    async def fake_run_in_threadpool(func, message, **kwargs):
        if message.token == "token-3":
            raise RuntimeError("unregistered")
        return "projects/ams/messages/2"

    monkeypatch.setattr(fcm, "get_firebase_app", lambda: FAKE_APP)
    monkeypatch.setattr(fcm, "select_active_push_targets_service", fake_targets)
    monkeypatch.setattr(fcm, "run_in_threadpool", fake_run_in_threadpool)

    result = asyncio.run(PushSender().send_test_to_all())

    assert result.sent == 1
    assert result.failed == 1
    assert result.total == 2


def test_get_firebase_app_disabled_without_credentials(monkeypatch) -> None:
    class _Settings:
        firebase_enabled = False

    monkeypatch.setattr(fcm, "get_settings", lambda: _Settings())
    monkeypatch.setattr(fcm, "_firebase_app", None)

    assert fcm.get_firebase_app() is None
