from __future__ import annotations

from fastapi import APIRouter, Depends

from ams_actions.api.v1.pagination import limit_query, page_meta, page_offset, page_query
from ams_actions.api.v1.schemas.logs import LogEntryOut, LogPageOut
from ams_actions.auth.roles import UserContext, current_admin
from ams_actions.core.supabase_rest import list_actor_logs

router = APIRouter()
current_admin_dependency = Depends(current_admin)


@router.get("/logs")
async def get_my_actions(
    page: int = page_query,
    limit: int = limit_query,
    admin: UserContext = current_admin_dependency,
) -> LogPageOut:
    rows, total = await list_actor_logs(
        admin.access_token,
        actor_id=admin.user_id,
        offset=page_offset(page, limit),
        limit=limit,
    )
    return LogPageOut(
        logs=[LogEntryOut.model_validate(row) for row in rows],
        **page_meta(total=total, page=page, limit=limit),
    )
