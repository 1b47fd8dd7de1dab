import pytest
from fastapi import HTTPException

from ams_actions.core import supabase_jwt
from ams_actions.core.supabase_jwt import _extract_bearer_token, verify_websocket_token


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer ", "token-only"])
def test_bearer_header_is_required(header: str | None) -> None:
    with pytest.raises(HTTPException) as exc_info:
        _extract_bearer_token(header)

    assert exc_info.value.status_code == 401


def test_bearer_header_token_is_extracted() -> None:
    assert _extract_bearer_token("Bearer  token-123 ") == "token-123"


def test_websocket_token_is_verified(monkeypatch) -> None:
    seen: list[str] = []

    def fake_decode(token: str):
        seen.append(token)
        return {"sub": "user-1", "role": "authenticated"}

    monkeypatch.setattr(supabase_jwt, "decode_supabase_token", fake_decode)

    auth = verify_websocket_token(" token-123 ")

    assert auth.access_token == "token-123"
    assert auth.claims["sub"] == "user-1"
    assert seen == ["token-123"]

    with pytest.raises(HTTPException):
        verify_websocket_token(None)
