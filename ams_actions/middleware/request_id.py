import uuid
from time import perf_counter

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ams_actions.core.logging import get_logger, reset_request_id, set_request_id

logger = get_logger("api.request")
_MAX_REQUEST_ID_LENGTH = 128
_QUIET_PATHS = frozenset({"/healthz", "/api/v1/system/health"})


def _incoming_request_id(request: Request) -> str:
    candidate = (request.headers.get("X-Request-ID") or "").strip()
    if candidate and len(candidate) <= _MAX_REQUEST_ID_LENGTH:
        return candidate
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every request and its log lines with an X-Request-ID."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = _incoming_request_id(request)
        request.state.request_id = request_id
        request_id_token = set_request_id(request_id)
        started = perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        except Exception:
            logger.exception(
                "request.error",
                extra={"component": "api", "method": request.method, "path": request.url.path},
            )
            raise
        finally:
            status_code = response.status_code if response is not None else 500
            if request.url.path not in _QUIET_PATHS or status_code >= 500:
                logger.info(
                    "request.end",
                    extra={
                        "component": "api",
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": status_code,
                        "duration_ms": int((perf_counter() - started) * 1000),
                    },
                )
            if response is not None:
                response.headers["X-Request-ID"] = request_id
            reset_request_id(request_id_token)
