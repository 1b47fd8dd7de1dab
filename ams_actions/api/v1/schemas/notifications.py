from datetime import datetime

from pydantic import BaseModel, Field

from ams_actions.notifications.types import NotificationType


class ActorOut(BaseModel):
    id: str
    first_name: str | None = None
    last_name: str | None = None
    profile_picture: str | None = None


class NotificationOut(BaseModel):
    id: str
    recipient_id: str
    actor_id: str | None = None
    actor: ActorOut | None = None
    type: NotificationType
    message: str
    read: bool = False
    created_at: datetime
    role_tag: str | None = None


class NotificationPageOut(BaseModel):
    notifications: list[NotificationOut]
    total: int
    current_page: int
    total_pages: int
    has_more_pages: bool


class NotificationsReadIn(BaseModel):
    notification_ids: list[str] = Field(default_factory=list, max_length=500)


class NotificationsReadOut(BaseModel):
    ok: bool = True
    modified_count: int


class UnreadNotificationsOut(BaseModel):
    has_unread: bool
    unread_count: int


class PushTestOut(BaseModel):
    ok: bool
    message: str
    sent_count: int
    failed_count: int
    total_users: int
