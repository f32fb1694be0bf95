"""Message queue access over PostgREST RPC into pgmq.

Each logical queue (events, reservations, reminders) gets its own
:class:`PgmqQueueClient`. A message is stored as a small envelope
``{"body": <str>, "attributes": {...}}`` so attributes survive pgmq
versions without header support. The pgmq ``msg_id`` doubles as the
receipt handed back to :meth:`PgmqQueueClient.delete`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

import httpx

from ticket_notifications.core.logging import get_logger
from ticket_notifications.core.settings import Settings

logger = get_logger("queue.client")


class QueueType(StrEnum):
    EVENTS = "events"
    RESERVATIONS = "reservations"
    REMINDERS = "reminders"


class QueueError(RuntimeError):
    pass


class InvalidQueueTypeError(ValueError):
    def __init__(self, value: object) -> None:
        super().__init__(
            f"Invalid queue type: {value!r}. Must be one of: events, reservations, reminders."
        )
        self.value = value


def parse_queue_type(value: object) -> QueueType:
    if isinstance(value, QueueType):
        return value
    try:
        return QueueType(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidQueueTypeError(value) from exc


@dataclass(frozen=True)
class QueueMessage:
    message_id: str
    body: str
    receipt: str
    attributes: dict[str, str] = field(default_factory=dict)
    receive_count: int = 1


@dataclass(frozen=True)
class QueueStats:
    approx_visible: int
    approx_in_flight: int
    approx_delayed: int

    def as_dict(self) -> dict[str, int]:
        return {
            "approx_visible": self.approx_visible,
            "approx_in_flight": self.approx_in_flight,
            "approx_delayed": self.approx_delayed,
        }


class QueueClient(Protocol):
    name: str

    async def send(self, body: str, attributes: dict[str, str] | None = None) -> str: ...

    async def receive(self, max_count: int, wait_seconds: int) -> list[QueueMessage]: ...

    async def delete(self, receipt: str) -> None: ...

    async def purge(self) -> int: ...

    async def attributes(self) -> QueueStats: ...


class PgmqQueueClient:
    def __init__(
        self,
        *,
        name: str,
        base_url: str,
        service_key: str,
        schema: str = "pgmq",
        visibility_timeout_seconds: int = 30,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.schema = schema
        self.visibility_timeout_seconds = max(1, visibility_timeout_seconds)
        self.timeout_seconds = timeout_seconds

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Accept": "application/json",
            "Content-Profile": self.schema,
            "Accept-Profile": self.schema,
        }

    async def _rpc(
        self,
        function: str,
        params: dict[str, Any],
        *,
        error_detail: str,
        extra_timeout: float = 0.0,
    ) -> Any:
        url = f"{self.base_url}/rest/v1/rpc/{function}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds + extra_timeout) as client:
                response = await client.post(url, json=params, headers=self._headers())
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise QueueError(f"{error_detail} (queue '{self.name}')") from exc

        if not response.content:
            return None
        return response.json()

    async def send(self, body: str, attributes: dict[str, str] | None = None) -> str:
        payload = await self._rpc(
            "send",
            {
                "queue_name": self.name,
                "msg": {"body": body, "attributes": dict(attributes or {})},
            },
            error_detail="Failed to send message",
        )
        message_id = payload[0] if isinstance(payload, list) and payload else payload
        if message_id is None:
            raise QueueError(f"Queue '{self.name}' did not return a message id")
        return str(message_id)

    async def receive(self, max_count: int, wait_seconds: int) -> list[QueueMessage]:
        wait = max(0, wait_seconds)
        rows = await self._rpc(
            "read_with_poll",
            {
                "queue_name": self.name,
                "vt": self.visibility_timeout_seconds,
                "qty": max(1, max_count),
                "max_poll_seconds": wait,
                "poll_interval_ms": 250,
            },
            error_detail="Failed to receive messages",
            extra_timeout=float(wait),
        )
        if not isinstance(rows, list):
            raise QueueError(f"Invalid receive response from queue '{self.name}'")
        return [_message_from_row(row) for row in rows if isinstance(row, dict)]

    async def delete(self, receipt: str) -> None:
        try:
            msg_id = int(receipt)
        except ValueError as exc:
            raise QueueError(f"Invalid receipt for queue '{self.name}'") from exc
        await self._rpc(
            "delete",
            {"queue_name": self.name, "msg_id": msg_id},
            error_detail="Failed to delete message",
        )

    async def purge(self) -> int:
        purged = await self._rpc(
            "purge_queue",
            {"queue_name": self.name},
            error_detail="Failed to purge queue",
        )
        return purged if isinstance(purged, int) else 0

    async def attributes(self) -> QueueStats:
        payload = await self._rpc(
            "metrics",
            {"queue_name": self.name},
            error_detail="Failed to read queue attributes",
        )
        row = payload[0] if isinstance(payload, list) and payload else payload
        if not isinstance(row, dict):
            raise QueueError(f"Invalid metrics response from queue '{self.name}'")

        total = _safe_int(row.get("queue_length"))
        visible = _safe_int(row.get("queue_visible_length", total))
        return QueueStats(
            approx_visible=visible,
            approx_in_flight=max(0, total - visible),
            # pgmq does not report delayed sends separately from in-flight ones.
            approx_delayed=0,
        )


@dataclass(frozen=True)
class QueueClients:
    events: QueueClient
    reservations: QueueClient
    reminders: QueueClient

    def for_type(self, queue_type: QueueType) -> QueueClient:
        if queue_type == QueueType.EVENTS:
            return self.events
        if queue_type == QueueType.RESERVATIONS:
            return self.reservations
        return self.reminders

    @classmethod
    def from_settings(cls, settings: Settings) -> QueueClients:
        def build(name: str) -> PgmqQueueClient:
            return PgmqQueueClient(
                name=name,
                base_url=settings.SUPABASE_URL,
                service_key=settings.SUPABASE_SERVICE_ROLE_KEY,
                schema=settings.QUEUE_SCHEMA,
                visibility_timeout_seconds=settings.QUEUE_VISIBILITY_TIMEOUT_SECONDS,
                timeout_seconds=settings.STORE_TIMEOUT_SECONDS,
            )

        return cls(
            events=build(settings.EVENTS_QUEUE_NAME),
            reservations=build(settings.RESERVATIONS_QUEUE_NAME),
            reminders=build(settings.REMINDERS_QUEUE_NAME),
        )


def _message_from_row(row: dict[str, Any]) -> QueueMessage:
    message_id = str(row.get("msg_id") or "")
    envelope = row.get("message")
    body = ""
    attributes: dict[str, str] = {}
    if isinstance(envelope, dict):
        raw_body = envelope.get("body")
        body = raw_body if isinstance(raw_body, str) else ""
        raw_attributes = envelope.get("attributes")
        if isinstance(raw_attributes, dict):
            attributes = {str(k): str(v) for k, v in raw_attributes.items()}
    elif isinstance(envelope, str):
        body = envelope
    return QueueMessage(
        message_id=message_id,
        body=body,
        receipt=message_id,
        attributes=attributes,
        receive_count=max(1, _safe_int(row.get("read_ct"))),
    )


def _safe_int(value: object | None) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0
