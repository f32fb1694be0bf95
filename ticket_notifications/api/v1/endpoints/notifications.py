from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ticket_notifications.api.v1.errors import queue_http_error, store_http_error
from ticket_notifications.api.v1.schemas.notifications import (
    BulkNotificationsData,
    BulkNotificationsOut,
    MessageOut,
    NotificationListData,
    NotificationListFilters,
    NotificationListOut,
    NotificationOut,
    RoutedNotificationData,
    RoutedNotificationOut,
)
from ticket_notifications.core.logging import get_logger
from ticket_notifications.dependencies import get_notification_service, get_record_store
from ticket_notifications.models.notification import (
    BulkNotificationRequest,
    CreateNotificationRequest,
    EventNotification,
    InvalidStatusTransitionError,
    Notification,
    NotificationType,
    ReservationNotification,
    TimestampUpdateError,
    UpdateNotificationRequest,
)
from ticket_notifications.queue.client import QueueError
from ticket_notifications.services.notification import NotificationService, RoutingResult
from ticket_notifications.store.records import (
    NOTIFICATIONS,
    RecordStore,
    RecordStoreError,
    get_notification,
    list_notifications,
    save_notification,
)
from ticket_notifications.worker.retry import sanitize_error

LIST_DEFAULT_LIMIT = 50
LIST_MAX_LIMIT = 100

router = APIRouter()
logger = get_logger("api.notifications")
notification_service_dependency = Depends(get_notification_service)
record_store_dependency = Depends(get_record_store)


def _require_fields(**fields: str) -> None:
    missing = [name for name, value in fields.items() if not value.strip()]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Required fields are empty: {', '.join(missing)}.",
        )


async def _persist(store: RecordStore, notification: Notification) -> None:
    # The send already happened; a failed write is logged, not surfaced.
    try:
        await save_notification(store, notification)
    except RecordStoreError as exc:
        logger.error(
            "notifications.persist_failed",
            extra={
                "component": "api",
                "notification_id": str(notification.id),
                "error": sanitize_error(exc, default_message="record store write failed"),
            },
        )


def _routed(
    result: RoutingResult,
    event: EventNotification,
    *,
    default_type: NotificationType,
    message: str,
) -> RoutedNotificationOut:
    return RoutedNotificationOut(
        message=message,
        data=RoutedNotificationData(
            event_id=event.event_id,
            event_name=event.event_name,
            recipient=event.recipient,
            type=event.type or default_type,
            reservation_id=event.reservation_id if isinstance(event, ReservationNotification) else None,
            queue=result.queue.value,
            message_id=result.message_id,
            notification_id=result.notification_id,
            immediate_email_sent=result.immediate_email.delivered if result.immediate_email else None,
        ),
    )


@router.post("/notifications/send", status_code=status.HTTP_201_CREATED)
async def send_notification(
    payload: CreateNotificationRequest,
    service: NotificationService = notification_service_dependency,
    store: RecordStore = record_store_dependency,
) -> NotificationOut:
    _require_fields(recipient=payload.recipient, subject=payload.subject, content=payload.content)
    notification = await service.send_notification(payload)
    await _persist(store, notification)
    return NotificationOut(data=notification, message="Notification processed.")


@router.post("/notifications/bulk", status_code=status.HTTP_201_CREATED)
async def send_bulk_notifications(
    payload: BulkNotificationRequest,
    service: NotificationService = notification_service_dependency,
    store: RecordStore = record_store_dependency,
) -> BulkNotificationsOut:
    if not payload.notifications:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one notification is required.",
        )
    notifications = await service.send_bulk_notifications(payload)
    for notification in notifications:
        await _persist(store, notification)
    return BulkNotificationsOut(
        data=BulkNotificationsData(
            notifications=notifications,
            total_sent=len(notifications),
            total_requested=len(payload.notifications),
        ),
        message="Bulk notifications processed.",
    )


@router.get("/notifications/{notification_id}")
async def get_notification_by_id(
    notification_id: UUID,
    store: RecordStore = record_store_dependency,
) -> NotificationOut:
    try:
        notification = await get_notification(store, notification_id)
    except RecordStoreError as exc:
        raise store_http_error(exc) from exc
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found.")
    return NotificationOut(data=notification)


@router.get("/notifications")
async def list_notifications_endpoint(
    recipient: str | None = Query(default=None),
    type: NotificationType | None = Query(default=None),
    limit: int = Query(default=LIST_DEFAULT_LIMIT, ge=1, le=LIST_MAX_LIMIT),
    store: RecordStore = record_store_dependency,
) -> NotificationListOut:
    try:
        notifications = await list_notifications(store, recipient=recipient, type=type, limit=limit)
    except RecordStoreError as exc:
        raise store_http_error(exc) from exc
    return NotificationListOut(
        data=NotificationListData(
            notifications=notifications,
            count=len(notifications),
            limit=limit,
            filters=NotificationListFilters(recipient=recipient, type=type),
        )
    )


@router.put("/notifications/{notification_id}")
async def update_notification(
    notification_id: UUID,
    payload: UpdateNotificationRequest,
    store: RecordStore = record_store_dependency,
) -> NotificationOut:
    if payload.is_empty():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one of status, sent_at or read_at is required.",
        )

    try:
        notification = await get_notification(store, notification_id)
    except RecordStoreError as exc:
        raise store_http_error(exc) from exc
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found.")

    try:
        changes = notification.apply_update(payload)
    except (InvalidStatusTransitionError, TimestampUpdateError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    if changes:
        try:
            await store.update(NOTIFICATIONS, str(notification_id), changes)
        except RecordStoreError as exc:
            raise store_http_error(exc) from exc
    return NotificationOut(data=notification, message="Notification updated.")


@router.delete("/notifications/{notification_id}")
async def delete_notification(
    notification_id: UUID,
    store: RecordStore = record_store_dependency,
) -> MessageOut:
    try:
        await store.delete(NOTIFICATIONS, str(notification_id))
    except RecordStoreError as exc:
        raise store_http_error(exc) from exc
    return MessageOut(message="Notification deleted.")


@router.post("/notifications/events")
async def notify_event_created(
    payload: EventNotification,
    service: NotificationService = notification_service_dependency,
) -> RoutedNotificationOut:
    _require_fields(event_id=payload.event_id, event_name=payload.event_name, recipient=payload.recipient)
    try:
        result = await service.notify_event_created(payload)
    except QueueError as exc:
        raise queue_http_error(exc, detail="Failed to queue event notification") from exc
    return _routed(result, payload, default_type=NotificationType.EVENT_CREATED, message="Event notification queued.")


@router.post("/notifications/events/{event_id}/reminder")
async def send_event_reminder(
    event_id: str,
    payload: EventNotification,
    service: NotificationService = notification_service_dependency,
) -> RoutedNotificationOut:
    event = payload.model_copy(update={"event_id": event_id})
    _require_fields(event_id=event.event_id, event_name=event.event_name, recipient=event.recipient)
    try:
        result = await service.send_event_reminder(event)
    except QueueError as exc:
        raise queue_http_error(exc, detail="Failed to queue event reminder") from exc
    return _routed(result, event, default_type=NotificationType.EVENT_REMINDER, message="Event reminder queued.")


@router.post("/notifications/events/{event_id}/cancelled")
async def notify_event_cancelled(
    event_id: str,
    payload: EventNotification,
    service: NotificationService = notification_service_dependency,
) -> RoutedNotificationOut:
    event = payload.model_copy(update={"event_id": event_id})
    _require_fields(event_id=event.event_id, event_name=event.event_name, recipient=event.recipient)
    try:
        result = await service.notify_event_cancelled(event)
    except QueueError as exc:
        raise queue_http_error(exc, detail="Failed to queue event cancellation") from exc
    return _routed(
        result,
        event,
        default_type=NotificationType.EVENT_CANCELLED,
        message="Event cancellation queued.",
    )


@router.post("/notifications/reservations")
async def notify_reservation_created(
    payload: ReservationNotification,
    service: NotificationService = notification_service_dependency,
) -> RoutedNotificationOut:
    _require_fields(
        reservation_id=payload.reservation_id,
        event_id=payload.event_id,
        recipient=payload.recipient,
    )
    try:
        result = await service.notify_reservation_created(payload)
    except QueueError as exc:
        raise queue_http_error(exc, detail="Failed to queue reservation notification") from exc
    return _routed(
        result,
        payload,
        default_type=NotificationType.RESERVATION_CREATED,
        message="Reservation notification queued.",
    )


@router.post("/notifications/reservations/{reservation_id}/confirmed")
async def notify_reservation_confirmed(
    reservation_id: str,
    payload: ReservationNotification,
    service: NotificationService = notification_service_dependency,
) -> RoutedNotificationOut:
    reservation = payload.model_copy(update={"reservation_id": reservation_id})
    _require_fields(
        reservation_id=reservation.reservation_id,
        event_id=reservation.event_id,
        recipient=reservation.recipient,
    )
    try:
        result = await service.notify_reservation_confirmed(reservation)
    except QueueError as exc:
        raise queue_http_error(exc, detail="Failed to queue reservation confirmation") from exc
    return _routed(
        result,
        reservation,
        default_type=NotificationType.RESERVATION_CONFIRMED,
        message="Reservation confirmation queued.",
    )


@router.post("/notifications/reservations/{reservation_id}/cancelled")
async def notify_reservation_cancelled(
    reservation_id: str,
    payload: ReservationNotification,
    service: NotificationService = notification_service_dependency,
) -> RoutedNotificationOut:
    reservation = payload.model_copy(update={"reservation_id": reservation_id})
    _require_fields(
        reservation_id=reservation.reservation_id,
        event_id=reservation.event_id,
        recipient=reservation.recipient,
    )
    try:
        result = await service.notify_reservation_cancelled(reservation)
    except QueueError as exc:
        raise queue_http_error(exc, detail="Failed to queue reservation cancellation") from exc
    return _routed(
        result,
        reservation,
        default_type=NotificationType.RESERVATION_CANCELLED,
        message="Reservation cancellation queued.",
    )
