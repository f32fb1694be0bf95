import asyncio
import json

import httpx
import pytest

from ticket_notifications.models.notification import Notification, NotificationTemplate, NotificationType
from ticket_notifications.store import records
from ticket_notifications.store.records import (
    NOTIFICATION_TEMPLATES,
    NOTIFICATIONS,
    CollectionNotFoundError,
    RecordConflictError,
    RecordNotFoundError,
    RecordStoreError,
    StoreConnectionError,
    SupabaseRecordStore,
    UnknownFieldError,
    classify_store_error,
    get_template,
    save_template,
)
from tests.fakes import InMemoryRecordStore

BASE_URL = "https://example.supabase.co"
RECORD_ID = "0b7c2e4a-6f1d-4c5e-9a8b-3d2f1e0c9b8a"


def _status_error(status_code: int, payload: dict[str, object]) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", f"{BASE_URL}/rest/v1/notifications")
    response = httpx.Response(status_code, json=payload, request=request)
    return httpx.HTTPStatusError("request failed", request=request, response=response)


def _use_transport(monkeypatch, handler) -> None:
    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(records.httpx, "AsyncClient", client_factory)


def _store() -> SupabaseRecordStore:
    return SupabaseRecordStore(base_url=BASE_URL, service_key="service-role-key")


def test_missing_table_is_reported_as_collection_not_found() -> None:
    error = classify_store_error(
        _status_error(404, {"code": "PGRST205", "message": "Could not find the table 'public.notifications'"}),
        collection=NOTIFICATIONS,
        action="list records",
    )

    assert isinstance(error, CollectionNotFoundError)
    assert "schema migration" in str(error)


def test_unreachable_store_is_a_connection_error() -> None:
    request = httpx.Request("GET", f"{BASE_URL}/rest/v1/notifications")
    error = classify_store_error(
        httpx.ConnectError("connection refused", request=request),
        collection=NOTIFICATIONS,
        action="fetch record",
    )

    assert isinstance(error, StoreConnectionError)


def test_duplicate_key_is_a_conflict() -> None:
    error = classify_store_error(
        _status_error(409, {"code": "23505", "message": "duplicate key value"}),
        collection=NOTIFICATIONS,
        action="save record",
    )

    assert isinstance(error, RecordConflictError)


def test_other_failures_fall_back_to_generic_error() -> None:
    error = classify_store_error(
        _status_error(500, {"message": "boom"}),
        collection=NOTIFICATIONS,
        action="save record",
    )

    assert type(error) is RecordStoreError
    assert "boom" in str(error)


def test_put_upserts_on_id(monkeypatch) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    _use_transport(monkeypatch, handler)
    notification = Notification.create(
        type=NotificationType.WELCOME,
        recipient="ana@example.com",
        subject="Welcome",
        content="Hello",
    )

    asyncio.run(_store().put(NOTIFICATIONS, notification.to_record()))

    [request] = seen
    assert request.method == "POST"
    assert request.url.params["on_conflict"] == "id"
    assert "resolution=merge-duplicates" in request.headers["Prefer"]
    assert request.headers["apikey"] == "service-role-key"
    assert json.loads(request.content)["id"] == str(notification.id)


def test_scan_builds_exact_match_filters(monkeypatch) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    _use_transport(monkeypatch, handler)

    rows = asyncio.run(_store().scan(NOTIFICATIONS, {"recipient": "ana@example.com", "type": ""}, 20))

    assert rows == []
    params = seen[0].url.params
    assert params["recipient"] == "eq.ana@example.com"
    assert "type" not in params
    assert params["limit"] == "20"
    assert params["order"] == "created_at.desc"


def test_update_of_missing_record_raises_not_found(monkeypatch) -> None:
    _use_transport(monkeypatch, lambda request: httpx.Response(200, json=[]))

    with pytest.raises(RecordNotFoundError):
        asyncio.run(_store().update(NOTIFICATIONS, RECORD_ID, {"status": "read"}))


def test_update_rejects_unknown_fields_before_any_request(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request should be made")

    _use_transport(monkeypatch, handler)

    with pytest.raises(UnknownFieldError) as exc_info:
        asyncio.run(_store().update(NOTIFICATIONS, RECORD_ID, {"status": "read", "recipient": "x@example.com"}))

    assert exc_info.value.fields == {"recipient"}


def test_missing_table_surfaces_from_request(monkeypatch) -> None:
    missing = {"code": "42P01", "message": 'relation "notifications" does not exist'}
    _use_transport(monkeypatch, lambda request: httpx.Response(404, json=missing))

    with pytest.raises(CollectionNotFoundError):
        asyncio.run(_store().get(NOTIFICATIONS, RECORD_ID))


def test_repeated_put_and_update_are_idempotent() -> None:
    store = InMemoryRecordStore()
    notification = Notification.create(
        type=NotificationType.WELCOME,
        recipient="ana@example.com",
        subject="Welcome",
        content="Hello",
    )
    record = notification.to_record()

    asyncio.run(store.put(NOTIFICATIONS, record))
    asyncio.run(store.put(NOTIFICATIONS, record))
    first = asyncio.run(store.update(NOTIFICATIONS, str(notification.id), {"status": "sent"}))
    second = asyncio.run(store.update(NOTIFICATIONS, str(notification.id), {"status": "sent"}))

    assert len(store.collections[NOTIFICATIONS]) == 1
    assert {k: v for k, v in first.items() if k != "updated_at"} == {
        k: v for k, v in second.items() if k != "updated_at"
    }
    assert second["updated_at"] >= first["updated_at"]


def test_templates_round_trip_and_accept_partial_updates() -> None:
    store = InMemoryRecordStore()
    template = NotificationTemplate.create(
        name="event created",
        type=NotificationType.EVENT_CREATED,
        subject="New Event: {{event_name}}",
        content="{{event_name}} at {{location}}",
        variables=["event_name", "location"],
    )

    asyncio.run(save_template(store, template))
    asyncio.run(store.update(NOTIFICATION_TEMPLATES, str(template.id), {"is_active": False}))
    loaded = asyncio.run(get_template(store, template.id))

    assert loaded is not None
    assert loaded.variables == ["event_name", "location"]
    assert loaded.is_active is False
    with pytest.raises(UnknownFieldError):
        asyncio.run(store.update(NOTIFICATION_TEMPLATES, str(template.id), {"type": "welcome"}))
