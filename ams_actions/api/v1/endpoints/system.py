from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from ams_actions.api.v1.schemas.system import SystemHealthOut, SystemStatusListOut, SystemStatusRowOut
from ams_actions.auth.roles import UserContext, current_admin
from ams_actions.core.settings import get_settings
from ams_actions.core.supabase_jwt import VerifiedSupabaseAuth, verify_supabase_auth
from ams_actions.core.supabase_rest import select_system_status

router = APIRouter()
supabase_auth_dependency = Depends(verify_supabase_auth)
current_admin_dependency = Depends(current_admin)


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


@router.get("/system/status")
async def system_status(
    admin: UserContext = current_admin_dependency,
) -> SystemStatusListOut:
    rows = await select_system_status(admin.access_token)
    return SystemStatusListOut(status=[SystemStatusRowOut.model_validate(row) for row in rows])


@router.get("/system/health")
async def system_health(
    auth: VerifiedSupabaseAuth = supabase_auth_dependency,
) -> SystemHealthOut:
    settings = get_settings()
    stale_after_seconds = int(settings.WORKER_STALE_AFTER_SECONDS)
    rows = await select_system_status(auth.access_token)

    worker_last_seen_at: datetime | None = None
    for row in rows:
        if str(row.get("id") or "") == "worker":
            worker_last_seen_at = _parse_timestamp(row.get("updated_at"))
            break

    if worker_last_seen_at is None:
        worker_state = "unknown"
    elif (datetime.now(UTC) - worker_last_seen_at).total_seconds() > stale_after_seconds:
        worker_state = "stale"
    else:
        worker_state = "ok"

    return SystemHealthOut(
        api="ok",
        worker=worker_state,
        worker_last_seen_at=worker_last_seen_at,
        stale_after_seconds=stale_after_seconds,
    )
