from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

import httpx

from ticket_notifications.core.logging import get_logger
from ticket_notifications.core.settings import Settings
from ticket_notifications.models.notification import (
    Notification,
    NotificationTemplate,
    NotificationType,
)

NOTIFICATIONS = "notifications"
NOTIFICATION_TEMPLATES = "notification_templates"

# Fields a partial update may touch. Anything else is rejected rather than
# written through, so a typo cannot silently add a column to a record.
MUTABLE_FIELDS: dict[str, frozenset[str]] = {
    NOTIFICATIONS: frozenset({"status", "sent_at", "read_at"}),
    NOTIFICATION_TEMPLATES: frozenset({"name", "subject", "content", "variables", "is_active"}),
}

logger = get_logger("store.records")


class RecordStoreError(RuntimeError):
    pass


class CollectionNotFoundError(RecordStoreError):
    def __init__(self, collection: str) -> None:
        super().__init__(
            f"The '{collection}' collection does not exist. "
            "Check that the database is running and the schema migration has been applied."
        )
        self.collection = collection


class StoreConnectionError(RecordStoreError):
    pass


class RecordConflictError(RecordStoreError):
    pass


class RecordNotFoundError(RecordStoreError):
    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"Record '{record_id}' was not found in '{collection}'.")
        self.collection = collection
        self.record_id = record_id


class UnknownFieldError(RecordStoreError):
    def __init__(self, collection: str, fields: set[str]) -> None:
        names = ", ".join(sorted(fields))
        super().__init__(f"Fields not updatable on '{collection}': {names}")
        self.collection = collection
        self.fields = fields


class RecordStore(Protocol):
    async def put(self, collection: str, item: dict[str, Any]) -> None: ...

    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None: ...

    async def scan(
        self,
        collection: str,
        filters: dict[str, str] | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]: ...

    async def update(self, collection: str, record_id: str, fields: dict[str, Any]) -> dict[str, Any]: ...

    async def delete(self, collection: str, record_id: str) -> None: ...


def check_update_fields(collection: str, fields: dict[str, Any]) -> None:
    allowed = MUTABLE_FIELDS.get(collection)
    if allowed is None:
        raise CollectionNotFoundError(collection)
    unknown = set(fields) - allowed
    if unknown:
        raise UnknownFieldError(collection, unknown)


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _error_detail(response: httpx.Response) -> tuple[str | None, str | None]:
    try:
        payload = response.json()
    except ValueError:
        return None, None
    if not isinstance(payload, dict):
        return None, None
    code = payload.get("code")
    message = payload.get("message") or payload.get("detail")
    return (
        code if isinstance(code, str) else None,
        message if isinstance(message, str) else None,
    )


def classify_store_error(exc: httpx.HTTPError, *, collection: str, action: str) -> RecordStoreError:
    """Map a transport failure onto the store's actionable error categories."""
    if isinstance(exc, httpx.TransportError):
        return StoreConnectionError(
            f"Could not reach the record store while trying to {action}. "
            "Check that the database service is running and reachable."
        )
    if isinstance(exc, httpx.HTTPStatusError):
        code, message = _error_detail(exc.response)
        lowered = (message or "").lower()
        if code in {"PGRST205", "42P01"} or (
            exc.response.status_code == 404 and ("does not exist" in lowered or "could not find" in lowered)
        ):
            return CollectionNotFoundError(collection)
        if exc.response.status_code == 409 or code == "23505":
            return RecordConflictError(f"The record already exists in '{collection}'.")
        detail = message or f"HTTP {exc.response.status_code}"
        return RecordStoreError(f"Failed to {action} in '{collection}': {detail}")
    return RecordStoreError(f"Failed to {action} in '{collection}': {exc}")


class SupabaseRecordStore:
    """Record store backed by Supabase tables through PostgREST."""

    def __init__(self, *, base_url: str, service_key: str, timeout_seconds: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout_seconds = timeout_seconds

    def _url(self, collection: str) -> str:
        return f"{self.base_url}/rest/v1/{collection}"

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        collection: str,
        *,
        action: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.request(
                    method,
                    self._url(collection),
                    params=params,
                    json=json,
                    headers=self._headers(prefer),
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            error = classify_store_error(exc, collection=collection, action=action)
            logger.warning(
                "store.request_failed",
                extra={"component": "store", "collection": collection, "action": action, "error": str(error)},
            )
            raise error from exc
        return response

    async def put(self, collection: str, item: dict[str, Any]) -> None:
        if not item.get("id"):
            raise RecordStoreError(f"Cannot save a record without an id in '{collection}'.")
        await self._request(
            "POST",
            collection,
            action="save record",
            params={"on_conflict": "id"},
            json=item,
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        response = await self._request(
            "GET",
            collection,
            action="fetch record",
            params={"select": "*", "id": f"eq.{record_id}", "limit": "1"},
        )
        rows = _validated_rows(response.json(), collection)
        return rows[0] if rows else None

    async def scan(
        self,
        collection: str,
        filters: dict[str, str] | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        params = {"select": "*", "order": "created_at.desc", "limit": str(max(1, limit))}
        for key, value in (filters or {}).items():
            if value:
                params[key] = f"eq.{value}"
        response = await self._request("GET", collection, action="list records", params=params)
        return _validated_rows(response.json(), collection)

    async def update(self, collection: str, record_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        check_update_fields(collection, fields)
        payload = {**fields, "updated_at": now_iso()}
        response = await self._request(
            "PATCH",
            collection,
            action="update record",
            params={"id": f"eq.{record_id}"},
            json=payload,
            prefer="return=representation",
        )
        rows = _validated_rows(response.json(), collection)
        if not rows:
            raise RecordNotFoundError(collection, record_id)
        return rows[0]

    async def delete(self, collection: str, record_id: str) -> None:
        await self._request(
            "DELETE",
            collection,
            action="delete record",
            params={"id": f"eq.{record_id}"},
            prefer="return=minimal",
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> SupabaseRecordStore:
        return cls(
            base_url=settings.SUPABASE_URL,
            service_key=settings.SUPABASE_SERVICE_ROLE_KEY,
            timeout_seconds=settings.STORE_TIMEOUT_SECONDS,
        )


def _validated_rows(payload: Any, collection: str) -> list[dict[str, Any]]:
    if not isinstance(payload, list) or not all(isinstance(row, dict) for row in payload):
        raise RecordStoreError(f"Invalid response from record store for '{collection}'.")
    return payload


async def save_notification(store: RecordStore, notification: Notification) -> None:
    await store.put(NOTIFICATIONS, notification.to_record())


async def get_notification(store: RecordStore, notification_id: UUID | str) -> Notification | None:
    row = await store.get(NOTIFICATIONS, str(notification_id))
    return Notification.from_record(row) if row is not None else None


async def list_notifications(
    store: RecordStore,
    *,
    recipient: str | None = None,
    type: NotificationType | None = None,
    status: str | None = None,
    limit: int = 50,
) -> list[Notification]:
    filters: dict[str, str] = {}
    if recipient:
        filters["recipient"] = recipient
    if type:
        filters["type"] = type.value
    if status:
        filters["status"] = status
    rows = await store.scan(NOTIFICATIONS, filters, limit)
    return [Notification.from_record(row) for row in rows]


async def save_template(store: RecordStore, template: NotificationTemplate) -> None:
    await store.put(NOTIFICATION_TEMPLATES, template.to_record())


async def get_template(store: RecordStore, template_id: UUID | str) -> NotificationTemplate | None:
    row = await store.get(NOTIFICATION_TEMPLATES, str(template_id))
    return NotificationTemplate.from_record(row) if row is not None else None
