from datetime import datetime

from pydantic import BaseModel

from ams_actions.notifications.types import NotificationType


class LogEntryOut(BaseModel):
    id: str
    actor_id: str | None = None
    primary_recipient_id: str | None = None
    type: NotificationType
    message: str
    created_at: datetime
    role_tag: str | None = None


class LogPageOut(BaseModel):
    logs: list[LogEntryOut]
    total: int
    current_page: int
    total_pages: int
    has_more_pages: bool
