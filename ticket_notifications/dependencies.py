from __future__ import annotations

from functools import lru_cache

from ticket_notifications.core.settings import get_settings
from ticket_notifications.notifications.emailer import SmtpEmailTransport
from ticket_notifications.queue.client import PgmqQueueClient, QueueClient, QueueClients
from ticket_notifications.services.notification import NotificationService
from ticket_notifications.store.records import RecordStore, SupabaseRecordStore
from ticket_notifications.worker.queue_processor import QueueProcessor
from ticket_notifications.worker.retry import dead_letter_queue_name


@lru_cache
def get_record_store() -> RecordStore:
    return SupabaseRecordStore.from_settings(get_settings())


@lru_cache
def get_queue_clients() -> QueueClients:
    return QueueClients.from_settings(get_settings())


@lru_cache
def get_email_transport() -> SmtpEmailTransport:
    return SmtpEmailTransport.from_settings(get_settings())


@lru_cache
def get_notification_service() -> NotificationService:
    settings = get_settings()
    return NotificationService(
        email=get_email_transport(),
        queues=get_queue_clients(),
        store=get_record_store(),
        sender=settings.EMAIL_FROM,
        bulk_max_concurrency=settings.BULK_MAX_CONCURRENCY,
    )


def _dead_letter_queue(source: QueueClient) -> QueueClient:
    settings = get_settings()
    return PgmqQueueClient(
        name=dead_letter_queue_name(source.name),
        base_url=settings.SUPABASE_URL,
        service_key=settings.SUPABASE_SERVICE_ROLE_KEY,
        schema=settings.QUEUE_SCHEMA,
        visibility_timeout_seconds=settings.QUEUE_VISIBILITY_TIMEOUT_SECONDS,
        timeout_seconds=settings.STORE_TIMEOUT_SECONDS,
    )


@lru_cache
def get_queue_processor() -> QueueProcessor:
    settings = get_settings()
    return QueueProcessor(
        queues=get_queue_clients(),
        service=get_notification_service(),
        store=get_record_store(),
        batch_size=settings.QUEUE_BATCH_SIZE,
        wait_seconds=settings.QUEUE_WAIT_SECONDS,
        max_receive_count=settings.QUEUE_MAX_RECEIVE_COUNT,
        dead_letter_queue=_dead_letter_queue if settings.QUEUE_MAX_RECEIVE_COUNT > 0 else None,
    )
