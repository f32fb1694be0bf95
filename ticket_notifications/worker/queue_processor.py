from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pydantic import ValidationError

from ticket_notifications.core.logging import get_logger, log_context
from ticket_notifications.models.notification import Notification, NotificationStatus
from ticket_notifications.queue.client import (
    QueueClient,
    QueueClients,
    QueueMessage,
    QueueStats,
    QueueType,
    parse_queue_type,
)
from ticket_notifications.queue.messages import (
    EventNotificationMessage,
    QueuePayload,
    ReminderMessage,
    ReservationNotificationMessage,
)
from ticket_notifications.services.notification import NotificationService
from ticket_notifications.store.records import RecordStore, get_notification, save_notification
from ticket_notifications.worker.retry import dead_letter_queue_name, redelivery_exhausted, sanitize_error

QUEUE_BATCH_SIZE = 10
QUEUE_WAIT_SECONDS = 10

logger = get_logger("worker.queue_processor")

MessageHandler = Callable[[QueueMessage], Awaitable[Notification]]


class MessageDecodeError(ValueError):
    pass


class DeliveryFailedError(RuntimeError):
    def __init__(self, notification: Notification) -> None:
        super().__init__(f"Delivery of notification {notification.id} failed; leaving message for redelivery.")
        self.notification = notification


@dataclass
class QueueBatchResult:
    queue_type: QueueType
    received: int = 0
    processed: int = 0
    failed: int = 0
    dead_lettered: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            "queue_type": self.queue_type.value,
            "received": self.received,
            "processed": self.processed,
            "failed": self.failed,
            "dead_lettered": self.dead_lettered,
        }


class QueueProcessor:
    """Consumes one receive-batch per call; failed messages stay queued for redelivery."""

    def __init__(
        self,
        *,
        queues: QueueClients,
        service: NotificationService,
        store: RecordStore,
        batch_size: int = QUEUE_BATCH_SIZE,
        wait_seconds: int = QUEUE_WAIT_SECONDS,
        max_receive_count: int = 0,
        dead_letter_queue: Callable[[QueueClient], QueueClient] | None = None,
    ) -> None:
        self.queues = queues
        self.service = service
        self.store = store
        self.batch_size = max(1, batch_size)
        self.wait_seconds = max(0, wait_seconds)
        self.max_receive_count = max_receive_count
        self.dead_letter_queue = dead_letter_queue
        self._handlers: dict[QueueType, MessageHandler] = {
            QueueType.EVENTS: self._handle_event_message,
            QueueType.RESERVATIONS: self._handle_reservation_message,
            QueueType.REMINDERS: self._handle_reminder_message,
        }

    async def process_queue(self, queue_type: QueueType | str) -> QueueBatchResult:
        kind = parse_queue_type(queue_type)
        client = self.queues.for_type(kind)
        handler = self._handlers[kind]

        messages = await client.receive(self.batch_size, self.wait_seconds)
        result = QueueBatchResult(queue_type=kind, received=len(messages))
        logger.info(
            "queue.batch_received",
            extra={"component": "worker", "queue": kind.value, "count": len(messages)},
        )

        for message in messages:
            with log_context(queue=kind.value, message_id=message.message_id):
                try:
                    await handler(message)
                except MessageDecodeError as exc:
                    result.failed += 1
                    logger.error(
                        "queue.message_poison",
                        extra={
                            "component": "worker",
                            "receive_count": message.receive_count,
                            "error": str(exc),
                        },
                    )
                    if await self._dead_letter_if_exhausted(client, message):
                        result.dead_lettered += 1
                    continue
                except Exception as exc:
                    result.failed += 1
                    logger.warning(
                        "queue.message_failed",
                        extra={
                            "component": "worker",
                            "receive_count": message.receive_count,
                            "error": sanitize_error(exc, default_message="message handler failed"),
                        },
                    )
                    if await self._dead_letter_if_exhausted(client, message):
                        result.dead_lettered += 1
                    continue

                try:
                    await client.delete(message.receipt)
                except Exception as exc:
                    # Handler work is done; the message will come back and be handled again.
                    logger.error(
                        "queue.delete_failed",
                        extra={
                            "component": "worker",
                            "error": sanitize_error(exc, default_message="queue delete failed"),
                        },
                    )
                    continue
                result.processed += 1

        return result

    async def queue_status(self, queue_type: QueueType | str) -> QueueStats:
        kind = parse_queue_type(queue_type)
        return await self.queues.for_type(kind).attributes()

    async def queue_status_all(self) -> dict[str, dict[str, object]]:
        statuses: dict[str, dict[str, object]] = {}
        for kind in QueueType:
            try:
                stats = await self.queues.for_type(kind).attributes()
            except Exception as exc:
                error = sanitize_error(exc, default_message="queue status unavailable")
                logger.warning(
                    "queue.status_failed",
                    extra={"component": "worker", "queue": kind.value, "error": error},
                )
                statuses[kind.value] = {"error": error}
                continue
            statuses[kind.value] = dict(stats.as_dict())
        return statuses

    async def purge_queue(self, queue_type: QueueType | str) -> int:
        kind = parse_queue_type(queue_type)
        purged = await self.queues.for_type(kind).purge()
        logger.warning(
            "queue.purged",
            extra={"component": "worker", "queue": kind.value, "purged": purged},
        )
        return purged

    async def _handle_event_message(self, message: QueueMessage) -> Notification:
        return await self._deliver_and_record(_decode(EventNotificationMessage, message))

    async def _handle_reservation_message(self, message: QueueMessage) -> Notification:
        return await self._deliver_and_record(_decode(ReservationNotificationMessage, message))

    async def _handle_reminder_message(self, message: QueueMessage) -> Notification:
        return await self._deliver_and_record(_decode(ReminderMessage, message))

    async def _deliver_and_record(self, payload: QueuePayload) -> Notification:
        notification = self.service.notification_for_message(payload)

        existing = await get_notification(self.store, notification.id)
        if existing is not None:
            if existing.sent_at is not None:
                # Already emailed by the producer or a previous delivery.
                return existing
            notification = notification.model_copy(update={"created_at": existing.created_at})
        notification = await self.service.deliver(notification)

        await save_notification(self.store, notification)
        logger.info(
            "queue.notification_recorded",
            extra={
                "component": "worker",
                "notification_id": str(notification.id),
                "status": notification.status.value,
            },
        )
        if notification.status == NotificationStatus.FAILED:
            raise DeliveryFailedError(notification)
        return notification

    async def _dead_letter_if_exhausted(self, client: QueueClient, message: QueueMessage) -> bool:
        if self.dead_letter_queue is None:
            return False
        if not redelivery_exhausted(message.receive_count, self.max_receive_count):
            return False

        target = self.dead_letter_queue(client)
        try:
            await target.send(message.body, {**message.attributes, "SourceQueue": client.name})
            await client.delete(message.receipt)
        except Exception as exc:
            logger.error(
                "queue.dead_letter_failed",
                extra={
                    "component": "worker",
                    "dead_letter_queue": dead_letter_queue_name(client.name),
                    "error": sanitize_error(exc, default_message="dead-letter move failed"),
                },
            )
            return False

        logger.warning(
            "queue.message_dead_lettered",
            extra={
                "component": "worker",
                "dead_letter_queue": target.name,
                "receive_count": message.receive_count,
            },
        )
        return True


def _decode(model: type[QueuePayload], message: QueueMessage) -> QueuePayload:
    try:
        return model.from_body(message.body)
    except ValidationError as exc:
        raise MessageDecodeError(f"Malformed {model.kind} message: {exc.error_count()} invalid field(s)") from exc
