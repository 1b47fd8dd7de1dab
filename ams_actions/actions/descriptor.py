from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from ams_actions.notifications.types import NotificationType


def _clean_id(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _canonical_id(value: Any) -> str | None:
    """UUIDs in lower-case hyphenated form; anything else only trimmed."""
    cleaned = _clean_id(value)
    if cleaned is None:
        return None
    try:
        return str(UUID(cleaned))
    except ValueError:
        return cleaned


def _ordered_unique_ids(values: Any) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        cleaned = _canonical_id(value)
        if cleaned is None or cleaned in seen:
            continue
        seen.add(cleaned)
        ordered.append(cleaned)
    return ordered


class ActionDescriptor(BaseModel):
    """One business event and the notification fan-out it should produce.

    Only ``actor_id``, ``notification_type`` and ``message`` are required. A
    descriptor without any recipient criteria is valid: processing it writes the
    audit log entry and notifies nobody.
    """

    actor_id: str = Field(min_length=1)
    notification_type: NotificationType
    message: str = Field(min_length=1, max_length=1000)
    primary_recipient_id: str | None = None
    extra_recipient_ids: list[str] = Field(default_factory=list)
    notify_all_admins: bool = False
    notify_all_active_users: bool = False
    team_ids: list[str] = Field(default_factory=list)
    department_ids: list[str] = Field(default_factory=list)
    admin_message: str | None = Field(default=None, max_length=1000)
    hide_in_log: bool = False
    hide_in_notification: bool = False
    role_tag: str | None = None
    idempotency_key: str | None = None

    @field_validator("actor_id", mode="before")
    @classmethod
    def _normalize_actor(cls, value: Any) -> Any:
        cleaned = _canonical_id(value)
        return cleaned if cleaned is not None else ""

    @field_validator("primary_recipient_id", mode="before")
    @classmethod
    def _normalize_primary_recipient(cls, value: Any) -> str | None:
        return _canonical_id(value)

    @field_validator("idempotency_key", mode="before")
    @classmethod
    def _normalize_idempotency_key(cls, value: Any) -> str | None:
        return _clean_id(value)

    @field_validator("extra_recipient_ids", "team_ids", "department_ids", mode="before")
    @classmethod
    def _normalize_id_lists(cls, value: Any) -> list[str]:
        return _ordered_unique_ids(value)

    @field_validator("message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("message must not be blank")
        return stripped

    @field_validator("admin_message", "role_tag", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def has_recipient_criteria(self) -> bool:
        return bool(
            self.primary_recipient_id
            or self.extra_recipient_ids
            or self.notify_all_admins
            or self.notify_all_active_users
            or self.team_ids
            or self.department_ids
        )

    def to_job_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
