from __future__ import annotations

from uuid import UUID

from ams_actions.actions.descriptor import ActionDescriptor
from ams_actions.core.logging import get_logger
from ams_actions.core.supabase_rest import (
    select_active_user_ids_service,
    select_admin_user_ids_service,
    select_department_team_ids_service,
    select_team_member_ids_service,
)

logger = get_logger("worker.recipients")


def _as_uuid_strings(values: list[str]) -> list[str]:
    valid: list[str] = []
    for value in values:
        try:
            valid.append(str(UUID(value.strip())))
        except (AttributeError, ValueError):
            continue
    return valid


class RecipientResolver:
    """Expands a descriptor's selection criteria into a set of user ids.

    Only the bulk expansions (all admins, all active users) leave out the actor;
    an actor named as primary or extra recipient is kept. Team and department ids
    that are malformed or no longer exist contribute nothing.
    """

    async def resolve(self, descriptor: ActionDescriptor) -> set[str]:
        recipients: set[str] = set()
        actor_id = descriptor.actor_id

        if descriptor.primary_recipient_id:
            recipients.add(descriptor.primary_recipient_id)

        recipients.update(descriptor.extra_recipient_ids)

        if descriptor.notify_all_admins:
            admin_ids = await select_admin_user_ids_service(exclude_user_id=actor_id)
            recipients.update(user_id for user_id in admin_ids if user_id != actor_id)

        if descriptor.notify_all_active_users:
            active_ids = await select_active_user_ids_service(exclude_user_id=actor_id)
            recipients.update(user_id for user_id in active_ids if user_id != actor_id)

        team_ids = _as_uuid_strings(descriptor.team_ids)
        if team_ids:
            recipients.update(await select_team_member_ids_service(team_ids))

        department_ids = _as_uuid_strings(descriptor.department_ids)
        if department_ids:
            department_team_ids = _as_uuid_strings(await select_department_team_ids_service(department_ids))
            if department_team_ids:
                recipients.update(await select_team_member_ids_service(department_team_ids))

        skipped = (len(descriptor.team_ids) - len(team_ids)) + (
            len(descriptor.department_ids) - len(department_ids)
        )
        if skipped:
            logger.info(
                "recipients.malformed_group_ids_skipped",
                extra={"component": "worker", "skipped": skipped},
            )

        return recipients
