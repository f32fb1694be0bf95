from __future__ import annotations

from typing import ClassVar
from uuid import UUID

from pydantic import BaseModel, field_validator

from ticket_notifications.models.notification import (
    EventNotification,
    NotificationPriority,
    NotificationType,
    ReservationNotification,
)

EVENT_CREATED_TEMPLATE = "event_created_template"
EVENT_CANCELLED_TEMPLATE = "event_cancelled_template"
EVENT_REMINDER_TEMPLATE = "event_reminder_template"
RESERVATION_CREATED_TEMPLATE = "reservation_created_template"
RESERVATION_CONFIRMED_TEMPLATE = "reservation_confirmed_template"
RESERVATION_CANCELLED_TEMPLATE = "reservation_cancelled_template"


class QueuePayload(BaseModel):
    """Flat body of a queued message.

    ``notification_id`` is the id the consumer persists under, so redeliveries
    upsert one record. When the producer already emailed the recipient it
    stores that notification under the same id, and the consumer skips it.
    """

    kind: ClassVar[str]

    event_id: str
    event_name: str
    event_date: str
    location: str
    recipient: str
    template_id: str
    notification_id: str | None = None

    @field_validator("notification_id")
    @classmethod
    def check_notification_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return str(UUID(value))

    def to_body(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_body(cls, body: str):
        return cls.model_validate_json(body)

    def attributes(self) -> dict[str, str]:
        return {"Type": self.kind}


class EventNotificationMessage(QueuePayload):
    kind: ClassVar[str] = "event_notification"

    type: NotificationType
    priority: NotificationPriority

    @classmethod
    def from_event(
        cls,
        event: EventNotification,
        *,
        type: NotificationType,
        template_id: str,
        notification_id: str | None = None,
    ) -> EventNotificationMessage:
        return cls(
            event_id=event.event_id,
            event_name=event.event_name,
            event_date=event.event_date.isoformat(),
            location=event.location,
            recipient=event.recipient,
            type=type,
            priority=event.priority or NotificationPriority.NORMAL,
            template_id=template_id,
            notification_id=notification_id,
        )

    def attributes(self) -> dict[str, str]:
        return {"Type": self.kind, "EventID": self.event_id, "Priority": self.priority.value}


class ReservationNotificationMessage(QueuePayload):
    kind: ClassVar[str] = "reservation_notification"

    reservation_id: str
    type: NotificationType
    priority: NotificationPriority

    @classmethod
    def from_reservation(
        cls,
        reservation: ReservationNotification,
        *,
        type: NotificationType,
        template_id: str,
        notification_id: str | None = None,
    ) -> ReservationNotificationMessage:
        return cls(
            reservation_id=reservation.reservation_id,
            event_id=reservation.event_id,
            event_name=reservation.event_name,
            event_date=reservation.event_date.isoformat(),
            location=reservation.location,
            recipient=reservation.recipient,
            type=type,
            priority=reservation.priority or NotificationPriority.NORMAL,
            template_id=template_id,
            notification_id=notification_id,
        )

    def attributes(self) -> dict[str, str]:
        return {"Type": self.kind, "ReservationID": self.reservation_id, "Priority": self.priority.value}


class ReminderMessage(QueuePayload):
    kind: ClassVar[str] = "reminder"

    reminder_type: str

    @classmethod
    def from_event(cls, event: EventNotification, *, notification_id: str | None = None) -> ReminderMessage:
        return cls(
            event_id=event.event_id,
            event_name=event.event_name,
            event_date=event.event_date.isoformat(),
            location=event.location,
            recipient=event.recipient,
            reminder_type=NotificationType.EVENT_REMINDER.value,
            template_id=EVENT_REMINDER_TEMPLATE,
            notification_id=notification_id,
        )

    def attributes(self) -> dict[str, str]:
        return {"Type": self.kind, "EventID": self.event_id, "ReminderType": self.reminder_type}
