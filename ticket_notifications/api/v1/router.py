from fastapi import APIRouter

from ticket_notifications.api.v1.endpoints import notifications, queue

router = APIRouter()
router.include_router(notifications.router)
router.include_router(queue.router)
