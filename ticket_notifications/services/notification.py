"""Notification orchestration: lifecycle, routing policy and delivery.

Routing per domain event (the enqueue is the guaranteed action; the
immediate email is best-effort and never changes the result):

    event_created          events queue        email if priority high/urgent
    event_cancelled        events queue        email always
    event_reminder         reminders queue     no email
    reservation_created    reservations queue  email always
    reservation_confirmed  reservations queue  no email
    reservation_cancelled  reservations queue  email always

The enqueue happens first; a queue error surfaces before any email goes
out. The immediate email reuses the queued message's notification id and,
once sent, is stored under it so the consumer records it without sending
twice.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from uuid import UUID, uuid4

from fastapi.concurrency import run_in_threadpool

from ticket_notifications.core.logging import get_logger
from ticket_notifications.models.notification import (
    IMMEDIATE_PRIORITIES,
    BulkNotificationRequest,
    CreateNotificationRequest,
    EventNotification,
    Notification,
    NotificationData,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
    ReservationNotification,
)
from ticket_notifications.notifications import content
from ticket_notifications.notifications.emailer import EmailSendError, EmailTransport
from ticket_notifications.queue.client import QueueClients, QueueType
from ticket_notifications.queue.messages import (
    EVENT_CANCELLED_TEMPLATE,
    EVENT_CREATED_TEMPLATE,
    EVENT_REMINDER_TEMPLATE,
    RESERVATION_CANCELLED_TEMPLATE,
    RESERVATION_CONFIRMED_TEMPLATE,
    RESERVATION_CREATED_TEMPLATE,
    EventNotificationMessage,
    QueuePayload,
    ReminderMessage,
    ReservationNotificationMessage,
)
from ticket_notifications.store.records import (
    NOTIFICATIONS,
    RecordStore,
    RecordStoreError,
    list_notifications,
    save_notification,
)
from ticket_notifications.worker.retry import sanitize_error

logger = get_logger("services.notification")

# Content follows the route (template), not the caller-supplied type.
_EVENT_EMAILS = {
    EVENT_CREATED_TEMPLATE: content.event_created_email,
    EVENT_CANCELLED_TEMPLATE: content.event_cancelled_email,
    EVENT_REMINDER_TEMPLATE: content.event_reminder_email,
}
_RESERVATION_EMAILS = {
    RESERVATION_CREATED_TEMPLATE: content.reservation_created_email,
    RESERVATION_CONFIRMED_TEMPLATE: content.reservation_confirmed_email,
    RESERVATION_CANCELLED_TEMPLATE: content.reservation_cancelled_email,
}


def _event_email(
    template_id: str,
    notification_type: NotificationType,
    event: QueuePayload,
) -> dict[str, str]:
    build = _EVENT_EMAILS.get(template_id, content.event_created_email)
    if template_id == EVENT_CREATED_TEMPLATE and notification_type == NotificationType.EVENT_UPDATED:
        build = content.event_updated_email
    return build(event.event_name, event.location, event.event_date)


@dataclass(frozen=True)
class ImmediateEmailOutcome:
    notification: Notification
    delivered: bool
    error: str | None = None


@dataclass(frozen=True)
class RoutingResult:
    queue: QueueType
    message_id: str
    notification_id: UUID
    immediate_email: ImmediateEmailOutcome | None = None


class NotificationService:
    def __init__(
        self,
        *,
        email: EmailTransport,
        queues: QueueClients,
        store: RecordStore,
        sender: str,
        bulk_max_concurrency: int = 1,
    ) -> None:
        self.email = email
        self.queues = queues
        self.store = store
        self.sender = sender
        self.bulk_max_concurrency = max(1, bulk_max_concurrency)

    async def send_notification(self, request: CreateNotificationRequest) -> Notification:
        """Create a notification and try to email it right away.

        Delivery failures end up as ``status == failed`` on the returned
        object; nothing is raised and nothing is persisted here.
        """
        notification = Notification.create(
            type=request.type,
            recipient=request.recipient,
            subject=request.subject,
            content=request.content,
            priority=request.priority,
            template_id=request.template_id,
            data=request.data,
        )
        return await self.deliver(notification)

    async def deliver(self, notification: Notification) -> Notification:
        notification.transition(NotificationStatus.SENDING)
        try:
            await self._send_email(notification)
        except Exception as exc:
            notification.transition(NotificationStatus.FAILED)
            logger.warning(
                "notifications.delivery_failed",
                extra={
                    "component": "orchestrator",
                    "notification_id": str(notification.id),
                    "type": notification.type.value,
                    "error": sanitize_error(exc, default_message="email delivery failed"),
                },
            )
            return notification

        notification.transition(NotificationStatus.SENT)
        return notification

    async def send_bulk_notifications(self, batch: BulkNotificationRequest) -> list[Notification]:
        requests = [_with_batch_overrides(item, batch) for item in batch.notifications]
        errors: list[str] = []

        async def send_one(request: CreateNotificationRequest) -> Notification | None:
            try:
                return await self.send_notification(request)
            except Exception as exc:
                errors.append(
                    f"error sending notification to {request.recipient}: "
                    f"{sanitize_error(exc, default_message='unexpected error')}"
                )
                return None

        if self.bulk_max_concurrency == 1 or len(requests) <= 1:
            results = [await send_one(request) for request in requests]
        else:
            semaphore = asyncio.Semaphore(self.bulk_max_concurrency)

            async def bounded(request: CreateNotificationRequest) -> Notification | None:
                async with semaphore:
                    return await send_one(request)

            results = list(await asyncio.gather(*(bounded(request) for request in requests)))

        notifications = [notification for notification in results if notification is not None]
        for notification in notifications:
            if notification.status == NotificationStatus.FAILED:
                errors.append(f"delivery to {notification.recipient} failed ({notification.id})")

        if errors:
            logger.warning(
                "notifications.bulk_partial_failure",
                extra={
                    "component": "orchestrator",
                    "requested": len(requests),
                    "produced": len(notifications),
                    "failures": len(errors),
                    "errors": errors,
                },
            )
        return notifications

    async def notify_event_created(self, event: EventNotification) -> RoutingResult:
        notification_type = event.type or NotificationType.EVENT_CREATED
        priority = event.priority or NotificationPriority.NORMAL
        notification_id = uuid4()

        payload = EventNotificationMessage.from_event(
            event,
            type=notification_type,
            template_id=EVENT_CREATED_TEMPLATE,
            notification_id=str(notification_id),
        )
        message_id = await self._enqueue(QueueType.EVENTS, payload)

        immediate = None
        if priority in IMMEDIATE_PRIORITIES:
            immediate = await self._send_immediate_email(self.notification_for_message(payload))
        return RoutingResult(QueueType.EVENTS, message_id, notification_id, immediate)

    async def notify_event_cancelled(self, event: EventNotification) -> RoutingResult:
        notification_type = event.type or NotificationType.EVENT_CANCELLED
        notification_id = uuid4()

        payload = EventNotificationMessage.from_event(
            event,
            type=notification_type,
            template_id=EVENT_CANCELLED_TEMPLATE,
            notification_id=str(notification_id),
        )
        message_id = await self._enqueue(QueueType.EVENTS, payload)

        immediate = await self._send_immediate_email(self.notification_for_message(payload))
        return RoutingResult(QueueType.EVENTS, message_id, notification_id, immediate)

    async def send_event_reminder(self, event: EventNotification) -> RoutingResult:
        notification_id = uuid4()
        payload = ReminderMessage.from_event(event, notification_id=str(notification_id))
        message_id = await self._enqueue(QueueType.REMINDERS, payload)
        return RoutingResult(QueueType.REMINDERS, message_id, notification_id)

    async def notify_reservation_created(self, reservation: ReservationNotification) -> RoutingResult:
        return await self._notify_reservation(
            reservation,
            default_type=NotificationType.RESERVATION_CREATED,
            template_id=RESERVATION_CREATED_TEMPLATE,
            immediate_email=True,
        )

    async def notify_reservation_confirmed(self, reservation: ReservationNotification) -> RoutingResult:
        return await self._notify_reservation(
            reservation,
            default_type=NotificationType.RESERVATION_CONFIRMED,
            template_id=RESERVATION_CONFIRMED_TEMPLATE,
            immediate_email=False,
        )

    async def notify_reservation_cancelled(self, reservation: ReservationNotification) -> RoutingResult:
        return await self._notify_reservation(
            reservation,
            default_type=NotificationType.RESERVATION_CANCELLED,
            template_id=RESERVATION_CANCELLED_TEMPLATE,
            immediate_email=True,
        )

    async def _notify_reservation(
        self,
        reservation: ReservationNotification,
        *,
        default_type: NotificationType,
        template_id: str,
        immediate_email: bool,
    ) -> RoutingResult:
        notification_type = reservation.type or default_type
        notification_id = uuid4()

        payload = ReservationNotificationMessage.from_reservation(
            reservation,
            type=notification_type,
            template_id=template_id,
            notification_id=str(notification_id),
        )
        message_id = await self._enqueue(QueueType.RESERVATIONS, payload)

        immediate = None
        if immediate_email:
            immediate = await self._send_immediate_email(self.notification_for_message(payload))
        return RoutingResult(QueueType.RESERVATIONS, message_id, notification_id, immediate)

    def notification_for_message(self, payload: QueuePayload) -> Notification:
        """Rebuild the notification a queued message stands for."""
        data: NotificationData = {
            "event_id": payload.event_id,
            "event_name": payload.event_name,
            "event_date": payload.event_date,
            "location": payload.location,
        }
        if isinstance(payload, ReservationNotificationMessage):
            notification_type = payload.type
            priority = payload.priority
            data["reservation_id"] = payload.reservation_id
            build = _RESERVATION_EMAILS.get(payload.template_id, content.reservation_created_email)
            message = build(payload.event_name, payload.location, payload.event_date, payload.reservation_id)
        elif isinstance(payload, EventNotificationMessage):
            notification_type = payload.type
            priority = payload.priority
            message = _event_email(payload.template_id, notification_type, payload)
        else:
            notification_type = NotificationType.EVENT_REMINDER
            priority = NotificationPriority.NORMAL
            message = content.event_reminder_email(payload.event_name, payload.location, payload.event_date)

        notification = Notification.create(
            type=notification_type,
            recipient=payload.recipient,
            subject=message["subject"],
            content=message["text"],
            priority=priority,
            template_id=payload.template_id,
            data=data,
            notification_id=UUID(payload.notification_id) if payload.notification_id else None,
        )
        return notification

    async def retry_failed_notifications(self, *, limit: int = 50) -> int:
        """Re-attempt delivery of stored ``failed`` notifications.

        Each success is persisted as ``failed -> sent``; each item is isolated.
        """
        failed = await list_notifications(self.store, status=NotificationStatus.FAILED.value, limit=limit)
        retried = 0
        for notification in failed:
            had_sent_at = notification.sent_at is not None
            await self.deliver(notification)
            if notification.status != NotificationStatus.SENT:
                continue

            changes: dict[str, str] = {"status": notification.status.value}
            if not had_sent_at and notification.sent_at is not None:
                changes["sent_at"] = notification.sent_at.isoformat()
            try:
                await self.store.update(NOTIFICATIONS, str(notification.id), changes)
            except RecordStoreError as exc:
                logger.warning(
                    "notifications.retry_persist_failed",
                    extra={
                        "component": "orchestrator",
                        "notification_id": str(notification.id),
                        "error": sanitize_error(exc, default_message="record store update failed"),
                    },
                )
                continue
            retried += 1

        logger.info(
            "notifications.retry_completed",
            extra={"component": "orchestrator", "candidates": len(failed), "retried": retried},
        )
        return retried

    async def _enqueue(self, queue_type: QueueType, payload: QueuePayload) -> str:
        client = self.queues.for_type(queue_type)
        message_id = await client.send(payload.to_body(), payload.attributes())
        logger.info(
            "notifications.enqueued",
            extra={
                "component": "orchestrator",
                "queue": queue_type.value,
                "message_id": message_id,
                "notification_id": payload.notification_id,
                "message_type": payload.kind,
            },
        )
        return message_id

    async def _send_immediate_email(self, notification: Notification) -> ImmediateEmailOutcome:
        """Best-effort email alongside an enqueue. Failures are logged and reported, never raised."""
        notification.transition(NotificationStatus.SENDING)
        try:
            await self._send_email(notification)
        except Exception as exc:
            notification.transition(NotificationStatus.FAILED)
            error = sanitize_error(exc, default_message="immediate email failed")
            logger.warning(
                "notifications.immediate_email_failed",
                extra={
                    "component": "orchestrator",
                    "notification_id": str(notification.id),
                    "type": notification.type.value,
                    "error": error,
                },
            )
            return ImmediateEmailOutcome(notification=notification, delivered=False, error=error)

        notification.transition(NotificationStatus.SENT)
        try:
            await save_notification(self.store, notification)
        except RecordStoreError as exc:
            logger.warning(
                "notifications.immediate_persist_failed",
                extra={
                    "component": "orchestrator",
                    "notification_id": str(notification.id),
                    "error": sanitize_error(exc, default_message="record store save failed"),
                },
            )
        return ImmediateEmailOutcome(notification=notification, delivered=True)

    async def _send_email(self, notification: Notification) -> str:
        if not notification.recipient.strip():
            raise EmailSendError("Recipient address is empty.")
        return await run_in_threadpool(
            self.email.send,
            sender=self.sender,
            to=notification.recipient,
            subject=notification.subject,
            text=notification.content,
        )


def _with_batch_overrides(
    item: CreateNotificationRequest,
    batch: BulkNotificationRequest,
) -> CreateNotificationRequest:
    overrides: dict[str, object] = {}
    if batch.priority is not None:
        overrides["priority"] = batch.priority
    if batch.template_id is not None:
        overrides["template_id"] = batch.template_id
    return item.model_copy(update=overrides) if overrides else item

