from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from fastapi import HTTPException, status

from ams_actions.core.settings import get_settings

USER_DISPLAY_COLUMNS = "id,first_name,last_name,profile_picture"
NOTIFICATION_COLUMNS = "id,idempotency_key,recipient_id,actor_id,type,message,read,created_at,role_tag"
LOG_COLUMNS = "id,idempotency_key,actor_id,primary_recipient_id,type,message,created_at,role_tag"
ACTION_JOB_COLUMNS = (
    "id,idempotency_key,payload,status,attempts,run_after,leased_until,lease_holder,last_error,created_at"
)


def supabase_rest_headers(access_token: str) -> dict[str, str]:
    settings = get_settings()
    return {
        "Authorization": f"Bearer {access_token}",
        "apikey": settings.SUPABASE_ANON_KEY,
        "Accept": "application/json",
    }


def supabase_service_role_headers() -> dict[str, str]:
    settings = get_settings()
    service_role_key = settings.SUPABASE_SERVICE_ROLE_KEY
    if not service_role_key or not service_role_key.strip():
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Service role access is not configured.",
        )
    return {
        "Authorization": f"Bearer {service_role_key}",
        "apikey": service_role_key,
        "Accept": "application/json",
    }


def _rest_url(table: str) -> str:
    settings = get_settings()
    return f"{settings.SUPABASE_URL.rstrip('/')}/rest/v1/{table}"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _validated_list_payload(payload: Any, error_message: str) -> list[dict[str, Any]]:
    if not isinstance(payload, list):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=error_message,
        )

    for item in payload:
        if not isinstance(item, dict):
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=error_message,
            )

    return payload


def _in_filter(values: list[str]) -> str:
    normalized = [value.strip() for value in values if value.strip()]
    return f"in.({','.join(normalized)})"


def _content_range_total(response: httpx.Response) -> int:
    # PostgREST answers count=exact with e.g. "0-9/42" or "*/0".
    content_range = response.headers.get("Content-Range") or ""
    _, _, total = content_range.partition("/")
    try:
        return max(0, int(total))
    except ValueError:
        return 0


def _string_ids(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    ids: list[str] = []
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            ids.append(text)
    return ids


async def _service_role_select(
    table: str,
    params: dict[str, str],
    *,
    error_detail: str,
    invalid_detail: str,
) -> list[dict[str, Any]]:
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(_rest_url(table), params=params, headers=supabase_service_role_headers())
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_detail) from exc

    return _validated_list_payload(response.json(), invalid_detail)


async def _service_role_patch(
    table: str,
    row_id: str,
    payload: dict[str, Any],
    *,
    error_detail: str,
) -> None:
    params = {"id": f"eq.{row_id}"}
    headers = supabase_service_role_headers()
    headers["Prefer"] = "return=minimal"

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.patch(_rest_url(table), params=params, json=payload, headers=headers)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_detail) from exc


async def _service_role_upsert(
    table: str,
    payload: dict[str, Any],
    *,
    conflict_column: str,
    error_detail: str,
) -> None:
    headers = supabase_service_role_headers()
    headers["Prefer"] = "resolution=merge-duplicates,return=minimal"

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                _rest_url(table),
                params={"on_conflict": conflict_column},
                json=payload,
                headers=headers,
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_detail) from exc


async def _service_role_insert_once(
    table: str,
    payload: dict[str, Any],
    *,
    conflict_columns: str,
    columns: str,
    error_detail: str,
    invalid_detail: str,
) -> dict[str, Any] | None:
    """Insert a row unless one with the same conflict key exists.

    Returns the inserted row, or None when the row was already present.
    """
    headers = supabase_service_role_headers()
    headers["Prefer"] = "resolution=ignore-duplicates,return=representation"

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                _rest_url(table),
                params={"on_conflict": conflict_columns, "select": columns},
                json=payload,
                headers=headers,
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_detail) from exc

    rows = _validated_list_payload(response.json(), invalid_detail)
    return rows[0] if rows else None


# Users, teams and departments


async def select_user_role(access_token: str, user_id: str) -> str | None:
    params = {"select": "role", "id": f"eq.{user_id}", "limit": "1"}

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(_rest_url("users"), params=params, headers=supabase_rest_headers(access_token))
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to fetch user role from Supabase.",
        ) from exc

    rows = _validated_list_payload(response.json(), "Invalid user role response from Supabase.")
    role = rows[0].get("role") if rows else None
    return role if isinstance(role, str) else None


async def select_user_role_service(user_id: str) -> str | None:
    rows = await _service_role_select(
        "users",
        {"select": "role", "id": f"eq.{user_id}", "limit": "1"},
        error_detail="Failed to fetch user role from Supabase.",
        invalid_detail="Invalid user role response from Supabase.",
    )
    role = rows[0].get("role") if rows else None
    return role if isinstance(role, str) else None


async def select_admin_user_ids_service(exclude_user_id: str | None = None) -> list[str]:
    params = {"select": "id", "role": "eq.admin"}
    if exclude_user_id:
        params["id"] = f"neq.{exclude_user_id}"
    rows = await _service_role_select(
        "users",
        params,
        error_detail="Failed to fetch admin users from Supabase.",
        invalid_detail="Invalid admin users response from Supabase.",
    )
    return _string_ids([row.get("id") for row in rows])


async def select_active_user_ids_service(exclude_user_id: str | None = None) -> list[str]:
    params = {"select": "id", "is_active": "is.true"}
    if exclude_user_id:
        params["id"] = f"neq.{exclude_user_id}"
    rows = await _service_role_select(
        "users",
        params,
        error_detail="Failed to fetch active users from Supabase.",
        invalid_detail="Invalid active users response from Supabase.",
    )
    return _string_ids([row.get("id") for row in rows])


async def select_user_display_service(user_id: str) -> dict[str, Any] | None:
    rows = await _service_role_select(
        "users",
        {"select": USER_DISPLAY_COLUMNS, "id": f"eq.{user_id}", "limit": "1"},
        error_detail="Failed to fetch user profile from Supabase.",
        invalid_detail="Invalid user profile response from Supabase.",
    )
    return rows[0] if rows else None


async def select_user_push_profile_service(user_id: str) -> dict[str, Any] | None:
    rows = await _service_role_select(
        "users",
        {"select": "id,fcm_token,is_active", "id": f"eq.{user_id}", "limit": "1"},
        error_detail="Failed to fetch user push profile from Supabase.",
        invalid_detail="Invalid user push profile response from Supabase.",
    )
    return rows[0] if rows else None


async def select_active_push_targets_service() -> list[dict[str, Any]]:
    return await _service_role_select(
        "users",
        {
            "select": "id,first_name,last_name,fcm_token",
            "is_active": "is.true",
            "fcm_token": "not.is.null",
            "order": "id.asc",
        },
        error_detail="Failed to fetch push targets from Supabase.",
        invalid_detail="Invalid push targets response from Supabase.",
    )


async def select_team_member_ids_service(team_ids: list[str]) -> list[str]:
    if not team_ids:
        return []
    rows = await _service_role_select(
        "teams",
        {"select": "id,members", "id": _in_filter(team_ids)},
        error_detail="Failed to fetch team members from Supabase.",
        invalid_detail="Invalid team members response from Supabase.",
    )
    member_ids: list[str] = []
    for row in rows:
        member_ids.extend(_string_ids(row.get("members")))
    return member_ids


async def select_department_team_ids_service(department_ids: list[str]) -> list[str]:
    if not department_ids:
        return []
    rows = await _service_role_select(
        "departments",
        {"select": "id,teams", "id": _in_filter(department_ids)},
        error_detail="Failed to fetch department teams from Supabase.",
        invalid_detail="Invalid department teams response from Supabase.",
    )
    team_ids: list[str] = []
    for row in rows:
        team_ids.extend(_string_ids(row.get("teams")))
    return team_ids


# Notifications


async def insert_notification_service(payload: dict[str, Any]) -> dict[str, Any] | None:
    return await _service_role_insert_once(
        "notifications",
        payload,
        conflict_columns="idempotency_key,recipient_id",
        columns=NOTIFICATION_COLUMNS,
        error_detail="Failed to insert notification in Supabase.",
        invalid_detail="Invalid notification insert response from Supabase.",
    )


async def list_user_notifications(
    access_token: str,
    *,
    user_id: str,
    offset: int,
    limit: int,
) -> tuple[list[dict[str, Any]], int]:
    params = {
        "select": f"{NOTIFICATION_COLUMNS},actor:users!notifications_actor_id_fkey({USER_DISPLAY_COLUMNS})",
        "recipient_id": f"eq.{user_id}",
        "order": "read.asc,created_at.desc",
        "offset": str(max(0, offset)),
        "limit": str(max(1, limit)),
    }
    headers = supabase_rest_headers(access_token)
    headers["Prefer"] = "count=exact"

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(_rest_url("notifications"), params=params, headers=headers)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to fetch notifications from Supabase.",
        ) from exc

    rows = _validated_list_payload(response.json(), "Invalid notifications response from Supabase.")
    return rows, _content_range_total(response)


async def select_notification_owners_service(notification_ids: list[str]) -> list[dict[str, Any]]:
    """Owner of each notification, read past row-level security for ownership checks."""
    if not notification_ids:
        return []
    return await _service_role_select(
        "notifications",
        {"select": "id,recipient_id", "id": _in_filter(notification_ids)},
        error_detail="Failed to fetch notifications from Supabase.",
        invalid_detail="Invalid notifications response from Supabase.",
    )


async def _mark_notifications_read(access_token: str, params: dict[str, str]) -> int:
    headers = supabase_rest_headers(access_token)
    headers["Prefer"] = "return=representation"
    params = {**params, "read": "is.false", "select": "id"}

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.patch(
                _rest_url("notifications"),
                params=params,
                json={"read": True},
                headers=headers,
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to mark notifications as read in Supabase.",
        ) from exc

    rows = _validated_list_payload(response.json(), "Invalid notification update response from Supabase.")
    return len(rows)


async def mark_all_notifications_read(access_token: str, *, user_id: str) -> int:
    return await _mark_notifications_read(access_token, {"recipient_id": f"eq.{user_id}"})


async def mark_notifications_read(access_token: str, *, user_id: str, notification_ids: list[str]) -> int:
    if not notification_ids:
        return 0
    return await _mark_notifications_read(
        access_token,
        {"recipient_id": f"eq.{user_id}", "id": _in_filter(notification_ids)},
    )


async def count_unread_notifications(access_token: str, *, user_id: str) -> int:
    params = {
        "select": "id",
        "recipient_id": f"eq.{user_id}",
        "read": "is.false",
        "limit": "0",
    }
    headers = supabase_rest_headers(access_token)
    headers["Prefer"] = "count=exact"

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(_rest_url("notifications"), params=params, headers=headers)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to count unread notifications in Supabase.",
        ) from exc

    return _content_range_total(response)


# Logs


async def insert_log_service(payload: dict[str, Any]) -> dict[str, Any] | None:
    return await _service_role_insert_once(
        "logs",
        payload,
        conflict_columns="idempotency_key",
        columns=LOG_COLUMNS,
        error_detail="Failed to insert log entry in Supabase.",
        invalid_detail="Invalid log insert response from Supabase.",
    )


async def list_actor_logs(
    access_token: str,
    *,
    actor_id: str,
    offset: int,
    limit: int,
) -> tuple[list[dict[str, Any]], int]:
    params = {
        "select": LOG_COLUMNS,
        "actor_id": f"eq.{actor_id}",
        "order": "created_at.desc",
        "offset": str(max(0, offset)),
        "limit": str(max(1, limit)),
    }
    headers = supabase_rest_headers(access_token)
    headers["Prefer"] = "count=exact"

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(_rest_url("logs"), params=params, headers=headers)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to fetch logs from Supabase.",
        ) from exc

    rows = _validated_list_payload(response.json(), "Invalid logs response from Supabase.")
    return rows, _content_range_total(response)


# Action job queue


async def insert_action_job_service(payload: dict[str, Any]) -> dict[str, Any]:
    headers = supabase_service_role_headers()
    headers["Prefer"] = "return=representation"

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                _rest_url("action_jobs"),
                params={"select": ACTION_JOB_COLUMNS},
                json=payload,
                headers=headers,
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to enqueue action job in Supabase.",
        ) from exc

    rows = _validated_list_payload(response.json(), "Invalid action job insert response from Supabase.")
    if not rows:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Invalid action job insert response from Supabase.",
        )
    return rows[0]


async def rpc_lease_action_jobs(holder: str, limit: int, lease_seconds: int) -> list[dict[str, Any]]:
    """Claim due jobs for ``holder``.

    The RPC selects ``queued`` jobs whose ``run_after`` has passed plus ``running``
    jobs whose lease expired, oldest first, with ``FOR UPDATE SKIP LOCKED``; it
    sets ``status='running'``, bumps ``attempts`` and stamps the lease.
    """
    settings = get_settings()
    url = f"{settings.SUPABASE_URL.rstrip('/')}/rest/v1/rpc/lease_action_jobs"
    payload = {
        "p_holder": holder,
        "p_limit": max(1, limit),
        "p_lease_seconds": max(1, lease_seconds),
    }

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(url, json=payload, headers=supabase_service_role_headers())
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to lease action jobs from Supabase.",
        ) from exc

    return _validated_list_payload(response.json(), "Invalid action job lease response from Supabase.")


async def mark_action_job_done(job_id: str, attempts: int) -> None:
    await _service_role_patch(
        "action_jobs",
        job_id,
        {
            "status": "done",
            "attempts": attempts,
            "leased_until": None,
            "lease_holder": None,
            "last_error": None,
            "completed_at": _now_iso(),
        },
        error_detail="Failed to acknowledge action job.",
    )


async def mark_action_job_for_retry(
    job_id: str,
    attempts: int,
    run_after: str,
    last_error: str,
) -> None:
    await _service_role_patch(
        "action_jobs",
        job_id,
        {
            "status": "queued",
            "attempts": attempts,
            "run_after": run_after,
            "leased_until": None,
            "lease_holder": None,
            "last_error": last_error,
        },
        error_detail="Failed to schedule action job retry.",
    )


async def mark_action_job_dead_letter(
    job_id: str,
    attempts: int,
    last_error: str,
    failed_at: str,
) -> None:
    await _service_role_patch(
        "action_jobs",
        job_id,
        {
            "status": "failed",
            "attempts": attempts,
            "leased_until": None,
            "lease_holder": None,
            "last_error": last_error,
            "completed_at": failed_at,
        },
        error_detail="Failed to mark action job as failed.",
    )


async def renew_action_job_lease(job_id: str, holder: str, lease_seconds: int) -> bool:
    """Push ``leased_until`` forward while ``holder`` still owns the running job.

    Returns False when the lease was already lost to another worker.
    """
    params = {
        "id": f"eq.{job_id}",
        "lease_holder": f"eq.{holder}",
        "status": "eq.running",
        "select": "id",
    }
    leased_until = (datetime.now(UTC) + timedelta(seconds=max(1, lease_seconds))).isoformat().replace("+00:00", "Z")
    headers = supabase_service_role_headers()
    headers["Prefer"] = "return=representation"

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.patch(
                _rest_url("action_jobs"),
                params=params,
                json={"leased_until": leased_until},
                headers=headers,
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to renew action job lease.",
        ) from exc

    rows = _validated_list_payload(response.json(), "Invalid action job response from Supabase.")
    return bool(rows)


# Worker heartbeat


async def upsert_system_status(status_id: str, payload: dict[str, Any]) -> None:
    await _service_role_upsert(
        "system_status",
        {
            "id": status_id,
            "updated_at": _now_iso(),
            "payload": payload,
        },
        conflict_column="id",
        error_detail="Failed to upsert system status.",
    )


async def select_system_status(access_token: str) -> list[dict[str, Any]]:
    params = {
        "select": "id,updated_at,payload",
        "order": "id.asc",
    }

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(
                _rest_url("system_status"),
                params=params,
                headers=supabase_rest_headers(access_token),
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to fetch system status from Supabase.",
        ) from exc

    return _validated_list_payload(response.json(), "Invalid system status response from Supabase.")
