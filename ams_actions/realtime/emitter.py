from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any, Protocol

import httpx
from fastapi import WebSocket

from ams_actions.core.logging import get_logger
from ams_actions.core.settings import get_settings
from ams_actions.core.supabase_rest import supabase_service_role_headers
from ams_actions.worker.retry import sanitize_error

logger = get_logger("realtime.emitter")


def user_topic(user_id: str) -> str:
    return f"notifications:{user_id}"


class Emitter(Protocol):
    async def emit(self, recipient_id: str, event: str, payload: dict[str, Any]) -> None: ...


class NullEmitter:
    async def emit(self, recipient_id: str, event: str, payload: dict[str, Any]) -> None:
        return None


class ConnectionRegistry:
    """Live websocket connections of this process, keyed by user id."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.setdefault(user_id, set()).add(websocket)
        logger.info(
            "realtime.connected",
            extra={"component": "realtime", "user_id": user_id, "connections": self.connection_count(user_id)},
        )

    async def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._connections.get(user_id)
            if sockets is None:
                return
            sockets.discard(websocket)
            if not sockets:
                self._connections.pop(user_id, None)

    def connection_count(self, user_id: str) -> int:
        return len(self._connections.get(user_id, ()))

    async def emit(self, recipient_id: str, event: str, payload: dict[str, Any]) -> None:
        sockets = list(self._connections.get(recipient_id, ()))
        if not sockets:
            return

        message = {"event": event, "data": payload}
        for websocket in sockets:
            try:
                await websocket.send_json(message)
            except Exception as exc:
                logger.info(
                    "realtime.connection_dropped",
                    extra={
                        "component": "realtime",
                        "user_id": recipient_id,
                        "error": sanitize_error(exc, default_message="websocket send failed"),
                    },
                )
                await self.disconnect(recipient_id, websocket)


class SupabaseBroadcastEmitter:
    """Publishes to the recipient's Supabase Realtime topic.

    Used by standalone workers, which hold no client connections themselves.
    Clients subscribe to ``notifications:{user_id}``.
    """

    def __init__(self, *, timeout_seconds: float = 5.0) -> None:
        self.timeout_seconds = timeout_seconds

    async def emit(self, recipient_id: str, event: str, payload: dict[str, Any]) -> None:
        settings = get_settings()
        url = f"{settings.SUPABASE_URL.rstrip('/')}/realtime/v1/api/broadcast"
        headers = supabase_service_role_headers()
        body = {
            "messages": [
                {
                    "topic": user_topic(recipient_id),
                    "event": event,
                    "payload": payload,
                    "private": True,
                }
            ]
        }
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(url, json=body, headers=headers)
            response.raise_for_status()


class FanoutEmitter:
    def __init__(self, emitters: Iterable[Emitter]) -> None:
        self.emitters = list(emitters)

    async def emit(self, recipient_id: str, event: str, payload: dict[str, Any]) -> None:
        for emitter in self.emitters:
            try:
                await emitter.emit(recipient_id, event, payload)
            except Exception as exc:
                logger.warning(
                    "realtime.emit_failed",
                    extra={
                        "component": "realtime",
                        "emitter": type(emitter).__name__,
                        "user_id": recipient_id,
                        "error": sanitize_error(exc, default_message="realtime emit failed"),
                    },
                )


def build_emitter(registry: ConnectionRegistry | None = None) -> Emitter:
    settings = get_settings()
    emitters: list[Emitter] = []
    if registry is not None:
        emitters.append(registry)
    if settings.REALTIME_BROADCAST_ENABLED and (settings.SUPABASE_SERVICE_ROLE_KEY or "").strip():
        emitters.append(SupabaseBroadcastEmitter())
    if not emitters:
        return NullEmitter()
    if len(emitters) == 1:
        return emitters[0]
    return FanoutEmitter(emitters)
