import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from ams_actions.api.v1.endpoints import realtime
from ams_actions.main import app


def test_healthz_echoes_request_id() -> None:
    client = TestClient(app)
    response = client.get("/healthz", headers={"X-Request-ID": "req-42"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"] == "req-42"


def test_healthz_generates_request_id() -> None:
    client = TestClient(app)
    response = client.get("/healthz")

    assert response.headers["X-Request-ID"]


def test_notification_socket_rejects_missing_token() -> None:
    client = TestClient(app)

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/api/v1/ws/notifications"):
            pass

    assert exc_info.value.code == 1008


def test_notification_socket_verifies_token_off_the_event_loop(monkeypatch) -> None:
    offloaded: list[tuple[object, tuple[object, ...]]] = []

    async def fake_run_in_threadpool(func, *args):
        offloaded.append((func, args))
        raise HTTPException(status_code=401, detail="Unauthorized")

    monkeypatch.setattr(realtime, "run_in_threadpool", fake_run_in_threadpool)
    client = TestClient(app)

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/api/v1/ws/notifications?token=expired-token"):
            pass

    assert exc_info.value.code == 1008
    assert offloaded == [(realtime.verify_websocket_token, ("expired-token",))]
