from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator
from typing_extensions import TypeAliasType

# Template substitution values: scalars or nested mappings, nothing else.
DataValue = TypeAliasType(
    "DataValue",
    "str | bool | int | float | None | dict[str, DataValue]",
)
NotificationData = dict[str, DataValue]


class NotificationType(StrEnum):
    EVENT_CREATED = "event_created"
    EVENT_UPDATED = "event_updated"
    EVENT_CANCELLED = "event_cancelled"
    EVENT_REMINDER = "event_reminder"
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_CONFIRMED = "reservation_confirmed"
    RESERVATION_CANCELLED = "reservation_cancelled"
    TICKET_GENERATED = "ticket_generated"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_FAILED = "payment_failed"
    WELCOME = "welcome"
    PASSWORD_RESET = "password_reset"


class NotificationStatus(StrEnum):
    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    READ = "read"


class NotificationPriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


IMMEDIATE_PRIORITIES = frozenset({NotificationPriority.HIGH, NotificationPriority.URGENT})

_TRANSITIONS: dict[NotificationStatus, frozenset[NotificationStatus]] = {
    NotificationStatus.PENDING: frozenset(
        {NotificationStatus.SENDING, NotificationStatus.SENT, NotificationStatus.FAILED}
    ),
    NotificationStatus.SENDING: frozenset({NotificationStatus.SENT, NotificationStatus.FAILED}),
    NotificationStatus.SENT: frozenset(
        {NotificationStatus.DELIVERED, NotificationStatus.READ, NotificationStatus.FAILED}
    ),
    NotificationStatus.DELIVERED: frozenset({NotificationStatus.READ}),
    NotificationStatus.FAILED: frozenset({NotificationStatus.SENDING, NotificationStatus.SENT}),
    NotificationStatus.READ: frozenset(),
}
_SENT_AT_STATUSES = frozenset(
    {
        NotificationStatus.SENT,
        NotificationStatus.DELIVERED,
        NotificationStatus.READ,
        NotificationStatus.FAILED,
    }
)


class InvalidStatusTransitionError(ValueError):
    def __init__(self, current: NotificationStatus, target: NotificationStatus) -> None:
        super().__init__(f"Cannot move notification from '{current}' to '{target}'.")
        self.current = current
        self.target = target


class TimestampUpdateError(ValueError):
    pass


def utc_now() -> datetime:
    return datetime.now(UTC)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Notification(BaseModel):
    id: UUID
    type: NotificationType
    status: NotificationStatus = NotificationStatus.PENDING
    priority: NotificationPriority = NotificationPriority.NORMAL
    recipient: str
    subject: str
    content: str
    template_id: str | None = None
    data: NotificationData | None = None
    sent_at: datetime | None = None
    read_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    normalize_optional = field_validator("template_id", "sent_at", "read_at", mode="before")(
        _blank_to_none
    )

    @classmethod
    def create(
        cls,
        *,
        type: NotificationType,
        recipient: str,
        subject: str,
        content: str,
        priority: NotificationPriority | None = None,
        template_id: str | None = None,
        data: NotificationData | None = None,
        notification_id: UUID | None = None,
        now: datetime | None = None,
    ) -> Notification:
        created_at = now or utc_now()
        return cls(
            id=notification_id or uuid4(),
            type=type,
            status=NotificationStatus.PENDING,
            priority=priority or NotificationPriority.NORMAL,
            recipient=recipient,
            subject=subject,
            content=content,
            template_id=template_id,
            data=data,
            created_at=created_at,
            updated_at=created_at,
        )

    def can_transition(self, target: NotificationStatus) -> bool:
        return target in _TRANSITIONS[self.status]

    def transition(self, target: NotificationStatus, *, at: datetime | None = None) -> None:
        """Move to ``target``, stamping ``sent_at``/``read_at`` the first time only.

        Re-entering the current status is a no-op.
        """
        if target == self.status:
            return
        if not self.can_transition(target):
            raise InvalidStatusTransitionError(self.status, target)

        moment = at or utc_now()
        self.status = target
        if target == NotificationStatus.SENT and self.sent_at is None:
            self.sent_at = moment
        if target == NotificationStatus.READ and self.read_at is None:
            self.read_at = moment
        self.touch(moment)

    def touch(self, moment: datetime | None = None) -> None:
        moment = moment or utc_now()
        self.updated_at = max(moment, self.updated_at)

    def apply_update(self, update: UpdateNotificationRequest, *, now: datetime | None = None) -> dict[str, Any]:
        """Apply a client update through the lifecycle rules.

        Returns the stored fields that changed, ready for a record store update.
        """
        before = (self.status, self.sent_at, self.read_at)
        moment = now or utc_now()

        if update.sent_at is not None:
            if self.sent_at is not None and self.sent_at != update.sent_at:
                raise TimestampUpdateError("sent_at is already set and cannot be changed.")
        if update.read_at is not None:
            if self.read_at is not None and self.read_at != update.read_at:
                raise TimestampUpdateError("read_at is already set and cannot be changed.")

        if update.status is not None:
            self.transition(update.status, at=moment)
        if update.sent_at is not None and before[1] is None:
            if self.status not in _SENT_AT_STATUSES:
                raise TimestampUpdateError("sent_at can only be recorded once the notification was sent.")
            self.sent_at = update.sent_at
        if update.read_at is not None and before[2] is None:
            if self.status != NotificationStatus.READ:
                raise TimestampUpdateError("read_at can only be recorded for a read notification.")
            self.read_at = update.read_at

        changes: dict[str, Any] = {}
        if self.status != before[0]:
            changes["status"] = self.status.value
        if self.sent_at != before[1]:
            changes["sent_at"] = _iso(self.sent_at)
        if self.read_at != before[2]:
            changes["read_at"] = _iso(self.read_at)
        if changes:
            self.touch(moment)
        return changes

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> Notification:
        return cls.model_validate(row)


class NotificationTemplate(BaseModel):
    id: UUID
    name: str
    type: NotificationType
    subject: str
    content: str
    variables: list[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    @field_validator("variables", mode="before")
    @classmethod
    def _split_variables(cls, value: Any) -> Any:
        # Older rows stored the list comma-joined.
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if value is None:
            return []
        return value

    @classmethod
    def create(
        cls,
        *,
        name: str,
        type: NotificationType,
        subject: str,
        content: str,
        variables: list[str] | None = None,
        is_active: bool = True,
        now: datetime | None = None,
    ) -> NotificationTemplate:
        created_at = now or utc_now()
        return cls(
            id=uuid4(),
            name=name,
            type=type,
            subject=subject,
            content=content,
            variables=list(variables or []),
            is_active=is_active,
            created_at=created_at,
            updated_at=created_at,
        )

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> NotificationTemplate:
        return cls.model_validate(row)


class CreateNotificationRequest(BaseModel):
    type: NotificationType
    priority: NotificationPriority | None = None
    recipient: str
    subject: str
    content: str
    template_id: str | None = None
    data: NotificationData | None = None

    normalize_optional = field_validator("priority", "template_id", mode="before")(_blank_to_none)


class BulkNotificationRequest(BaseModel):
    notifications: list[CreateNotificationRequest]
    template_id: str | None = None
    priority: NotificationPriority | None = None

    normalize_optional = field_validator("priority", "template_id", mode="before")(_blank_to_none)


class UpdateNotificationRequest(BaseModel):
    status: NotificationStatus | None = None
    sent_at: datetime | None = None
    read_at: datetime | None = None

    def is_empty(self) -> bool:
        return self.status is None and self.sent_at is None and self.read_at is None


class EventNotification(BaseModel):
    event_id: str
    event_name: str
    event_date: datetime
    location: str
    recipient: str
    type: NotificationType | None = None
    priority: NotificationPriority | None = None

    normalize_optional = field_validator("type", "priority", mode="before")(_blank_to_none)


class ReservationNotification(EventNotification):
    reservation_id: str


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
