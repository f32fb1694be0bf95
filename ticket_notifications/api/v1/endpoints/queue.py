from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ticket_notifications.api.v1.errors import queue_http_error, store_http_error
from ticket_notifications.api.v1.schemas.queue import (
    QueueProcessData,
    QueueProcessOut,
    QueuePurgeData,
    QueuePurgeOut,
    QueueStatusData,
    QueueStatusOut,
    RetryFailedData,
    RetryFailedOut,
)
from ticket_notifications.dependencies import get_notification_service, get_queue_processor
from ticket_notifications.queue.client import InvalidQueueTypeError, QueueError, QueueType, parse_queue_type
from ticket_notifications.services.notification import NotificationService
from ticket_notifications.store.records import RecordStoreError
from ticket_notifications.worker.queue_processor import QueueProcessor

router = APIRouter(prefix="/queue")
queue_processor_dependency = Depends(get_queue_processor)
notification_service_dependency = Depends(get_notification_service)


def _queue_type(value: str) -> QueueType:
    try:
        return parse_queue_type(value)
    except InvalidQueueTypeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/process")
async def process_queue(
    type: str = Query(...),
    processor: QueueProcessor = queue_processor_dependency,
) -> QueueProcessOut:
    queue_type = _queue_type(type)
    try:
        result = await processor.process_queue(queue_type)
    except QueueError as exc:
        raise queue_http_error(exc, detail="Failed to process queue") from exc
    return QueueProcessOut(
        message="Queue processed.",
        data=QueueProcessData(
            queue_type=queue_type.value,
            processed_at=datetime.now(UTC),
            received=result.received,
            processed=result.processed,
            failed=result.failed,
            dead_lettered=result.dead_lettered,
        ),
    )


@router.get("/status")
async def queue_status(
    processor: QueueProcessor = queue_processor_dependency,
) -> QueueStatusOut:
    statuses = await processor.queue_status_all()
    return QueueStatusOut(
        data=QueueStatusData(
            event_queue=statuses[QueueType.EVENTS.value],
            reservation_queue=statuses[QueueType.RESERVATIONS.value],
            reminder_queue=statuses[QueueType.REMINDERS.value],
            timestamp=datetime.now(UTC),
        )
    )


@router.post("/purge")
async def purge_queue(
    type: str = Query(...),
    confirm: bool = Query(default=False),
    processor: QueueProcessor = queue_processor_dependency,
) -> QueuePurgeOut:
    queue_type = _queue_type(type)
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Purging permanently removes every message in the queue; repeat with confirm=true.",
        )
    try:
        purged = await processor.purge_queue(queue_type)
    except QueueError as exc:
        raise queue_http_error(exc, detail="Failed to purge queue") from exc
    return QueuePurgeOut(
        message="Queue purged.",
        data=QueuePurgeData(queue_type=queue_type.value, purged=purged, purged_at=datetime.now(UTC)),
    )


@router.post("/retry-failed")
async def retry_failed_notifications(
    limit: int = Query(default=50, ge=1, le=100),
    service: NotificationService = notification_service_dependency,
) -> RetryFailedOut:
    try:
        retried = await service.retry_failed_notifications(limit=limit)
    except RecordStoreError as exc:
        raise store_http_error(exc) from exc
    return RetryFailedOut(
        message="Failed notifications retried.",
        data=RetryFailedData(retry_count=retried, retried_at=datetime.now(UTC)),
    )
