from fastapi import HTTPException, status

from ticket_notifications.queue.client import QueueError
from ticket_notifications.store.records import (
    CollectionNotFoundError,
    RecordConflictError,
    RecordNotFoundError,
    RecordStoreError,
    StoreConnectionError,
    UnknownFieldError,
)


def store_http_error(exc: RecordStoreError) -> HTTPException:
    if isinstance(exc, CollectionNotFoundError | StoreConnectionError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, RecordConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, RecordNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found.")
    if isinstance(exc, UnknownFieldError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Record store request failed.")


def queue_http_error(exc: QueueError, *, detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"{detail}: {exc}")
