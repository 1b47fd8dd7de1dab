from fastapi import APIRouter

from ams_actions.api.v1.endpoints import logs, notifications, realtime, system

router = APIRouter()
router.include_router(notifications.router)
router.include_router(logs.router)
router.include_router(realtime.router)
router.include_router(system.router)
