"""In-memory stand-ins for the queue, email and record store clients."""

from __future__ import annotations

import copy
from typing import Any

from ticket_notifications.notifications.emailer import EmailSendError
from ticket_notifications.queue.client import QueueClients, QueueError, QueueMessage, QueueStats
from ticket_notifications.services.notification import NotificationService
from ticket_notifications.store.records import (
    RecordNotFoundError,
    StoreConnectionError,
    check_update_fields,
    now_iso,
)


class FakeQueue:
    def __init__(self, name: str) -> None:
        self.name = name
        self.sent: list[tuple[str, dict[str, str]]] = []
        self.pending: list[QueueMessage] = []
        self.deleted: list[str] = []
        self.receive_calls: list[tuple[int, int]] = []
        self.operations = 0
        self.fail_send = False
        self.fail_attributes = False
        self.fail_delete = False
        self.stats = QueueStats(approx_visible=0, approx_in_flight=0, approx_delayed=0)

    async def send(self, body: str, attributes: dict[str, str] | None = None) -> str:
        self.operations += 1
        if self.fail_send:
            raise QueueError(f"Failed to send message (queue '{self.name}')")
        self.sent.append((body, dict(attributes or {})))
        return f"{self.name}-{len(self.sent)}"

    async def receive(self, max_count: int, wait_seconds: int) -> list[QueueMessage]:
        self.operations += 1
        self.receive_calls.append((max_count, wait_seconds))
        batch, self.pending = self.pending[:max_count], self.pending[max_count:]
        return batch

    async def delete(self, receipt: str) -> None:
        self.operations += 1
        if self.fail_delete:
            raise QueueError(f"Failed to delete message (queue '{self.name}')")
        self.deleted.append(receipt)

    async def purge(self) -> int:
        self.operations += 1
        purged = len(self.pending)
        self.pending = []
        return purged

    async def attributes(self) -> QueueStats:
        self.operations += 1
        if self.fail_attributes:
            raise QueueError(f"Failed to read queue attributes (queue '{self.name}')")
        return self.stats

    def put_message(self, body: str, *, message_id: str, receive_count: int = 1) -> None:
        self.pending.append(
            QueueMessage(
                message_id=message_id,
                body=body,
                receipt=f"receipt-{message_id}",
                attributes={},
                receive_count=receive_count,
            )
        )


def fake_queues() -> QueueClients:
    return QueueClients(
        events=FakeQueue("event-notifications"),
        reservations=FakeQueue("reservation-notifications"),
        reminders=FakeQueue("reminder-notifications"),
    )


class FakeEmail:
    def __init__(self, *, fail_for: set[str] | None = None) -> None:
        self.fail_for = fail_for or set()
        self.sent: list[dict[str, str]] = []
        self.attempts = 0

    def send(self, *, sender: str, to: str, subject: str, text: str) -> str:
        self.attempts += 1
        if to in self.fail_for:
            raise EmailSendError("Failed to send notification email.")
        self.sent.append({"sender": sender, "to": to, "subject": subject, "text": text})
        return f"<msg-{len(self.sent)}@test>"


class InMemoryRecordStore:
    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.fail_put = False
        self.puts = 0

    async def put(self, collection: str, item: dict[str, Any]) -> None:
        if self.fail_put:
            raise StoreConnectionError("Could not reach the record store while trying to save record.")
        self.puts += 1
        self.collections.setdefault(collection, {})[str(item["id"])] = copy.deepcopy(item)

    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        row = self.collections.get(collection, {}).get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def scan(
        self,
        collection: str,
        filters: dict[str, str] | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        rows = [
            row
            for row in self.collections.get(collection, {}).values()
            if all(str(row.get(key)) == value for key, value in (filters or {}).items() if value)
        ]
        rows.sort(key=lambda row: row.get("created_at") or "", reverse=True)
        return copy.deepcopy(rows[:limit])

    async def update(self, collection: str, record_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        check_update_fields(collection, fields)
        row = self.collections.get(collection, {}).get(record_id)
        if row is None:
            raise RecordNotFoundError(collection, record_id)
        row.update(copy.deepcopy(fields))
        row["updated_at"] = now_iso()
        return copy.deepcopy(row)

    async def delete(self, collection: str, record_id: str) -> None:
        self.collections.get(collection, {}).pop(record_id, None)


def build_service(
    *,
    email: FakeEmail | None = None,
    queues: QueueClients | None = None,
    store: InMemoryRecordStore | None = None,
    bulk_max_concurrency: int = 1,
) -> NotificationService:
    return NotificationService(
        email=email or FakeEmail(),
        queues=queues or fake_queues(),
        store=store or InMemoryRecordStore(),
        sender="notifications@ticket-system.com",
        bulk_max_concurrency=bulk_max_concurrency,
    )
