from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status

from ams_actions.core.supabase_jwt import VerifiedSupabaseAuth, verify_supabase_auth
from ams_actions.core.supabase_rest import select_user_role
from ams_actions.notifications.types import UserRole

supabase_auth_dependency = Depends(verify_supabase_auth)


@dataclass(frozen=True)
class UserContext:
    user_id: str
    access_token: str
    role: str | None = None


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def claims_user_id(auth: VerifiedSupabaseAuth) -> str:
    sub = auth.claims.get("sub")
    if not isinstance(sub, str) or not sub.strip():
        raise _unauthorized()
    return sub.strip()


async def current_user(auth: VerifiedSupabaseAuth = supabase_auth_dependency) -> UserContext:
    return UserContext(user_id=claims_user_id(auth), access_token=auth.access_token)


async def enforce_admin(auth: VerifiedSupabaseAuth) -> UserContext:
    user_id = claims_user_id(auth)
    role = await select_user_role(auth.access_token, user_id)
    if role != UserRole.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized access")
    return UserContext(user_id=user_id, access_token=auth.access_token, role=role)


async def current_admin(auth: VerifiedSupabaseAuth = supabase_auth_dependency) -> UserContext:
    return await enforce_admin(auth)
