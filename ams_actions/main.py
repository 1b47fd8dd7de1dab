import asyncio
import contextlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ams_actions.api.v1.router import router as v1_router
from ams_actions.core.logging import configure_logging, get_logger
from ams_actions.core.settings import get_settings
from ams_actions.middleware.request_id import RequestIDMiddleware
from ams_actions.realtime.emitter import ConnectionRegistry, build_emitter

configure_logging()
settings = get_settings()
logger = get_logger("api.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    registry: ConnectionRegistry = app.state.connection_registry

    worker_task: asyncio.Task[None] | None = None
    stop_event = asyncio.Event()
    if get_settings().AMS_MODE.strip().lower() == "all":
        from ams_actions.__main__ import run_worker_supervisor_loop

        worker_task = asyncio.create_task(
            run_worker_supervisor_loop(emitter=build_emitter(registry), stop_event=stop_event)
        )
        logger.info("api.embedded_worker_started", extra={"component": "api"})

    try:
        yield
    finally:
        if worker_task is not None:
            stop_event.set()
            worker_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker_task


app = FastAPI(title="AMS Actions API", version=settings.APP_VERSION, lifespan=lifespan)
app.state.connection_registry = ConnectionRegistry()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(RequestIDMiddleware)

app.include_router(v1_router, prefix="/api/v1")


@app.get("/healthz")
def root_healthz() -> dict[str, str]:
    return {"status": "ok"}
