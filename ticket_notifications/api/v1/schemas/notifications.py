from uuid import UUID

from pydantic import BaseModel

from ticket_notifications.models.notification import Notification, NotificationType


class NotificationOut(BaseModel):
    success: bool = True
    data: Notification
    message: str | None = None


class BulkNotificationsData(BaseModel):
    notifications: list[Notification]
    total_sent: int
    total_requested: int


class BulkNotificationsOut(BaseModel):
    success: bool = True
    data: BulkNotificationsData
    message: str


class NotificationListFilters(BaseModel):
    recipient: str | None = None
    type: NotificationType | None = None


class NotificationListData(BaseModel):
    notifications: list[Notification]
    count: int
    limit: int
    filters: NotificationListFilters


class NotificationListOut(BaseModel):
    success: bool = True
    data: NotificationListData


class MessageOut(BaseModel):
    success: bool = True
    message: str


class RoutedNotificationData(BaseModel):
    event_id: str
    event_name: str
    recipient: str
    type: NotificationType
    reservation_id: str | None = None
    queue: str
    message_id: str
    notification_id: UUID
    immediate_email_sent: bool | None = None


class RoutedNotificationOut(BaseModel):
    success: bool = True
    message: str
    data: RoutedNotificationData
