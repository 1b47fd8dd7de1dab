"""Best-effort mobile push through Firebase Cloud Messaging.

Push is a side channel: the persisted notification row is the durable record,
so every failure here is logged and swallowed.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any

import firebase_admin
from fastapi.concurrency import run_in_threadpool
from firebase_admin import credentials, messaging

from ams_actions.core.logging import get_logger
from ams_actions.core.settings import get_settings
from ams_actions.core.supabase_rest import (
    select_active_push_targets_service,
    select_user_push_profile_service,
)
from ams_actions.notifications.types import notification_title
from ams_actions.worker.retry import sanitize_error

logger = get_logger("push.fcm")

TEST_PUSH_TITLE = "Test Notification"
TEST_PUSH_BODY = "This is a test notification from the system"

_firebase_app: firebase_admin.App | None = None


def _service_account_info() -> dict[str, Any] | None:
    settings = get_settings()
    encoded = (settings.FIREBASE_SERVICE_ACCOUNT_BASE64 or "").strip()
    if encoded:
        info = json.loads(base64.b64decode(encoded).decode("utf-8"))
        if not isinstance(info, dict) or not info.get("client_email") or not info.get("private_key"):
            raise ValueError("Invalid Firebase service account JSON (missing keys)")
        return info

    # Private keys pasted into env files usually carry escaped newlines.
    private_key = (settings.FIREBASE_PRIVATE_KEY or "").replace("\\n", "\n")
    if not (settings.FIREBASE_PROJECT_ID and settings.FIREBASE_CLIENT_EMAIL and private_key.strip()):
        return None
    return {
        "type": "service_account",
        "project_id": settings.FIREBASE_PROJECT_ID,
        "client_email": settings.FIREBASE_CLIENT_EMAIL,
        "private_key": private_key,
        "token_uri": "https://oauth2.googleapis.com/token",
    }


def get_firebase_app() -> firebase_admin.App | None:
    """Get or initialize the Firebase Admin app; None when push is not configured."""
    global _firebase_app

    settings = get_settings()
    if not settings.firebase_enabled:
        return None

    if _firebase_app is None:
        try:
            info = _service_account_info()
            if info is None:
                return None
            _firebase_app = firebase_admin.initialize_app(credentials.Certificate(info), name="ams-push")
            logger.info(
                "push.firebase_initialized",
                extra={"component": "push", "project_id": info.get("project_id")},
            )
        except Exception as exc:
            logger.error(
                "push.firebase_init_failed",
                extra={"component": "push", "error": sanitize_error(exc, default_message="firebase init failed")},
            )
            return None

    return _firebase_app


def display_name(actor: dict[str, Any] | None) -> str:
    if not isinstance(actor, dict):
        return "Someone"
    first_name = str(actor.get("first_name") or "").strip()
    return first_name or "Someone"


def build_push_message(
    *,
    token: str,
    title: str,
    body: str,
    data: dict[str, str],
) -> messaging.Message:
    settings = get_settings()
    click_action = settings.PUSH_CLICK_ACTION
    return messaging.Message(
        token=token,
        notification=messaging.Notification(title=title, body=body),
        data={**data, "click_action": click_action, "title": title, "body": body},
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(
                sound="default",
                channel_id=settings.PUSH_ANDROID_CHANNEL_ID,
                priority="high",
                click_action=click_action,
            ),
        ),
        apns=messaging.APNSConfig(
            headers={"apns-priority": "10", "apns-push-type": "alert"},
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    alert=messaging.ApsAlert(title=title, body=body),
                    sound="default",
                    badge=1,
                    content_available=True,
                    mutable_content=True,
                ),
            ),
        ),
        webpush=messaging.WebpushConfig(
            notification=messaging.WebpushNotification(title=title, body=body, icon=settings.PUSH_WEB_ICON),
        ),
    )


@dataclass(frozen=True)
class PushBroadcastResult:
    sent: int
    failed: int
    total: int


class PushSender:
    async def send(
        self,
        *,
        recipient_id: str,
        notification: dict[str, Any],
        actor_display_name: str,
    ) -> bool:
        """Push one persisted notification; returns True only when FCM accepted it."""
        app = get_firebase_app()
        if app is None:
            return False

        try:
            profile = await select_user_push_profile_service(recipient_id)
            if not isinstance(profile, dict):
                logger.info("push.user_not_found", extra={"component": "push", "user_id": recipient_id})
                return False
            if not bool(profile.get("is_active")):
                logger.info("push.user_inactive", extra={"component": "push", "user_id": recipient_id})
                return False
            token = str(profile.get("fcm_token") or "").strip()
            if not token:
                logger.info("push.no_token", extra={"component": "push", "user_id": recipient_id})
                return False

            notification_type = str(notification.get("type") or "")
            message = build_push_message(
                token=token,
                title=notification_title(notification_type),
                body=f"{actor_display_name} {notification.get('message') or ''}".strip(),
                data={
                    "type": notification_type,
                    "notification_id": str(notification.get("id") or ""),
                },
            )
            message_id = await run_in_threadpool(messaging.send, message, app=app)
        except Exception as exc:
            logger.warning(
                "push.send_failed",
                extra={
                    "component": "push",
                    "user_id": recipient_id,
                    "error": sanitize_error(exc, default_message="push delivery failed"),
                },
            )
            return False

        logger.info(
            "push.sent",
            extra={"component": "push", "user_id": recipient_id, "message_id": message_id},
        )
        return True

    async def send_test_to_all(self) -> PushBroadcastResult:
        app = get_firebase_app()
        if app is None:
            return PushBroadcastResult(sent=0, failed=0, total=0)

        targets = await select_active_push_targets_service()
        sent = 0
        failed = 0
        for target in targets:
            token = str(target.get("fcm_token") or "").strip()
            if not token:
                continue
            message = build_push_message(
                token=token,
                title=TEST_PUSH_TITLE,
                body=TEST_PUSH_BODY,
                data={"type": "test"},
            )
            try:
                await run_in_threadpool(messaging.send, message, app=app)
                sent += 1
            except Exception as exc:
                failed += 1
                logger.warning(
                    "push.test_send_failed",
                    extra={
                        "component": "push",
                        "user_id": str(target.get("id") or ""),
                        "error": sanitize_error(exc, default_message="push delivery failed"),
                    },
                )

        logger.info(
            "push.test_broadcast_finished",
            extra={"component": "push", "sent": sent, "failed": failed, "total": len(targets)},
        )
        return PushBroadcastResult(sent=sent, failed=failed, total=len(targets))
