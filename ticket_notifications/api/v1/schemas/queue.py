from datetime import datetime
from typing import Any

from pydantic import BaseModel


class QueueProcessData(BaseModel):
    queue_type: str
    processed_at: datetime
    received: int
    processed: int
    failed: int
    dead_lettered: int


class QueueProcessOut(BaseModel):
    success: bool = True
    message: str
    data: QueueProcessData


class QueueStatusData(BaseModel):
    event_queue: dict[str, Any]
    reservation_queue: dict[str, Any]
    reminder_queue: dict[str, Any]
    timestamp: datetime


class QueueStatusOut(BaseModel):
    success: bool = True
    data: QueueStatusData


class QueuePurgeData(BaseModel):
    queue_type: str
    purged: int
    purged_at: datetime


class QueuePurgeOut(BaseModel):
    success: bool = True
    message: str
    data: QueuePurgeData


class RetryFailedData(BaseModel):
    retry_count: int
    retried_at: datetime


class RetryFailedOut(BaseModel):
    success: bool = True
    message: str
    data: RetryFailedData
