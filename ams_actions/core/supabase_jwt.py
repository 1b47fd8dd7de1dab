from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import jwt
from fastapi import Header, HTTPException, status
from jwt import PyJWKClient
from jwt.exceptions import InvalidTokenError, PyJWKClientError

from ams_actions.core.settings import get_settings

# Supabase signs end-user sessions with this role; anon and service_role keys are not users.
_USER_SESSION_ROLE = "authenticated"


@dataclass(frozen=True)
class VerifiedSupabaseAuth:
    access_token: str
    claims: dict[str, Any]


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


@lru_cache(maxsize=4)
def _jwks_client(jwks_url: str) -> PyJWKClient:
    return PyJWKClient(jwks_url, cache_keys=True)


def _extract_bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise _unauthorized()

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized()

    return token.strip()


def decode_supabase_token(token: str) -> dict[str, Any]:
    """Verify a Supabase session JWT against the project JWKS and return its claims."""
    settings = get_settings()

    try:
        signing_key = _jwks_client(settings.SUPABASE_JWKS_URL).get_signing_key_from_jwt(token).key
        decoded = jwt.decode(
            token,
            signing_key,
            algorithms=["RS256", "ES256"],
            issuer=settings.SUPABASE_ISSUER,
            options={"verify_aud": False, "require": ["sub", "exp"]},
        )
    except (InvalidTokenError, PyJWKClientError, ValueError):
        raise _unauthorized() from None

    if not isinstance(decoded, dict) or decoded.get("role") != _USER_SESSION_ROLE:
        raise _unauthorized()
    return decoded


def verify_supabase_auth(authorization: str | None = Header(default=None)) -> VerifiedSupabaseAuth:
    token = _extract_bearer_token(authorization)
    return VerifiedSupabaseAuth(access_token=token, claims=decode_supabase_token(token))


def verify_websocket_token(token: str | None) -> VerifiedSupabaseAuth:
    # Browsers cannot set headers on a websocket handshake, so the token rides in the query string.
    if not token or not token.strip():
        raise _unauthorized()
    return VerifiedSupabaseAuth(access_token=token.strip(), claims=decode_supabase_token(token.strip()))
