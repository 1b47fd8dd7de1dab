from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from ams_actions.api.v1.pagination import limit_query, page_meta, page_offset, page_query
from ams_actions.api.v1.schemas.notifications import (
    NotificationOut,
    NotificationPageOut,
    NotificationsReadIn,
    NotificationsReadOut,
    PushTestOut,
    UnreadNotificationsOut,
)
from ams_actions.auth.roles import UserContext, current_admin, current_user
from ams_actions.core.logging import get_logger
from ams_actions.core.supabase_rest import (
    count_unread_notifications,
    list_user_notifications,
    mark_all_notifications_read,
    mark_notifications_read,
    select_notification_owners_service,
)
from ams_actions.push.fcm import PushSender

router = APIRouter()
current_user_dependency = Depends(current_user)
current_admin_dependency = Depends(current_admin)
logger = get_logger("api.notifications")


def _valid_notification_ids(values: list[str]) -> list[str]:
    valid: list[str] = []
    for value in values:
        try:
            valid.append(str(UUID(str(value).strip())))
        except ValueError:
            continue
    return sorted(set(valid))


@router.get("/notifications")
async def get_my_notifications(
    page: int = page_query,
    limit: int = limit_query,
    user: UserContext = current_user_dependency,
) -> NotificationPageOut:
    rows, total = await list_user_notifications(
        user.access_token,
        user_id=user.user_id,
        offset=page_offset(page, limit),
        limit=limit,
    )
    return NotificationPageOut(
        notifications=[NotificationOut.model_validate(row) for row in rows],
        **page_meta(total=total, page=page, limit=limit),
    )


@router.put("/notifications/read-all")
async def mark_all_my_notifications_read(
    user: UserContext = current_user_dependency,
) -> NotificationsReadOut:
    modified = await mark_all_notifications_read(user.access_token, user_id=user.user_id)
    return NotificationsReadOut(ok=True, modified_count=modified)


@router.put("/notifications/read")
async def mark_my_notifications_read(
    body: NotificationsReadIn,
    user: UserContext = current_user_dependency,
) -> NotificationsReadOut:
    if not body.notification_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No notification IDs provided")

    notification_ids = _valid_notification_ids(body.notification_ids)
    if not notification_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid notification IDs provided")

    rows = await select_notification_owners_service(notification_ids)
    if any(str(row.get("recipient_id") or "") != user.user_id for row in rows):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized: Some notifications don't belong to you",
        )

    modified = await mark_notifications_read(
        user.access_token,
        user_id=user.user_id,
        notification_ids=notification_ids,
    )
    return NotificationsReadOut(ok=True, modified_count=modified)


@router.get("/notifications/has-unread")
async def get_my_unread_state(
    user: UserContext = current_user_dependency,
) -> UnreadNotificationsOut:
    count = await count_unread_notifications(user.access_token, user_id=user.user_id)
    return UnreadNotificationsOut(has_unread=count > 0, unread_count=count)


@router.post("/notifications/test-all")
async def send_test_push_to_all_users(
    admin: UserContext = current_admin_dependency,
) -> PushTestOut:
    result = await PushSender().send_test_to_all()
    logger.info(
        "notifications.test_push_requested",
        extra={"component": "api", "user_id": admin.user_id, "sent": result.sent, "failed": result.failed},
    )
    if result.total == 0:
        return PushTestOut(
            ok=False,
            message="No users with push tokens found",
            sent_count=0,
            failed_count=0,
            total_users=0,
        )
    return PushTestOut(
        ok=True,
        message=f"Test notifications sent to {result.sent} users",
        sent_count=result.sent,
        failed_count=result.failed,
        total_users=result.total,
    )
