import asyncio
import json

import httpx
import pytest

from ticket_notifications.queue import client as queue_client
from ticket_notifications.queue.client import (
    InvalidQueueTypeError,
    PgmqQueueClient,
    QueueError,
    QueueType,
    parse_queue_type,
)

BASE_URL = "https://example.supabase.co"


def _use_transport(monkeypatch, handler) -> None:
    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(queue_client.httpx, "AsyncClient", client_factory)


def _queue() -> PgmqQueueClient:
    return PgmqQueueClient(name="event-notifications", base_url=BASE_URL, service_key="service-role-key")


def test_parse_queue_type_accepts_known_names_only() -> None:
    assert parse_queue_type("events") is QueueType.EVENTS
    assert parse_queue_type(" Reminders ") is QueueType.REMINDERS
    with pytest.raises(InvalidQueueTypeError):
        parse_queue_type("invalid")


def test_send_wraps_body_and_attributes(monkeypatch) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[42])

    _use_transport(monkeypatch, handler)

    message_id = asyncio.run(_queue().send('{"event_id": "evt-1"}', {"Type": "event_notification"}))

    assert message_id == "42"
    [request] = seen
    assert request.url.path == "/rest/v1/rpc/send"
    assert request.headers["Content-Profile"] == "pgmq"
    assert json.loads(request.content) == {
        "queue_name": "event-notifications",
        "msg": {"body": '{"event_id": "evt-1"}', "attributes": {"Type": "event_notification"}},
    }


def test_receive_unwraps_envelope(monkeypatch) -> None:
    rows = [
        {
            "msg_id": 7,
            "read_ct": 2,
            "message": {"body": '{"event_id": "evt-1"}', "attributes": {"Type": "event_notification"}},
        }
    ]
    _use_transport(monkeypatch, lambda request: httpx.Response(200, json=rows))

    [message] = asyncio.run(_queue().receive(10, 0))

    assert message.message_id == "7"
    assert message.receipt == "7"
    assert message.receive_count == 2
    assert message.body == '{"event_id": "evt-1"}'
    assert message.attributes == {"Type": "event_notification"}


def test_attributes_split_visible_and_in_flight(monkeypatch) -> None:
    metrics = [{"queue_name": "event-notifications", "queue_length": 5, "queue_visible_length": 3}]
    _use_transport(monkeypatch, lambda request: httpx.Response(200, json=metrics))

    stats = asyncio.run(_queue().attributes())

    assert stats.as_dict() == {"approx_visible": 3, "approx_in_flight": 2, "approx_delayed": 0}


def test_http_failure_becomes_queue_error(monkeypatch) -> None:
    _use_transport(monkeypatch, lambda request: httpx.Response(500, json={"message": "down"}))

    with pytest.raises(QueueError):
        asyncio.run(_queue().delete("7"))
