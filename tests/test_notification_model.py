from datetime import UTC, datetime, timedelta

import pytest

from ticket_notifications.models.notification import (
    CreateNotificationRequest,
    InvalidStatusTransitionError,
    Notification,
    NotificationPriority,
    NotificationStatus,
    NotificationTemplate,
    NotificationType,
    TimestampUpdateError,
    UpdateNotificationRequest,
)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _notification(**overrides) -> Notification:
    fields = {
        "type": NotificationType.WELCOME,
        "recipient": "ana@example.com",
        "subject": "Welcome",
        "content": "Hello",
        "now": T0,
    }
    fields.update(overrides)
    return Notification.create(**fields)


def test_create_defaults_to_pending_normal_priority() -> None:
    notification = _notification()

    assert notification.status == NotificationStatus.PENDING
    assert notification.priority == NotificationPriority.NORMAL
    assert notification.sent_at is None
    assert notification.read_at is None
    assert notification.created_at == notification.updated_at == T0


def test_sent_at_is_stamped_once_and_kept_through_read() -> None:
    notification = _notification()
    notification.transition(NotificationStatus.SENDING, at=T0 + timedelta(seconds=1))
    notification.transition(NotificationStatus.SENT, at=T0 + timedelta(seconds=2))
    notification.transition(NotificationStatus.DELIVERED, at=T0 + timedelta(seconds=3))
    notification.transition(NotificationStatus.READ, at=T0 + timedelta(seconds=4))

    assert notification.sent_at == T0 + timedelta(seconds=2)
    assert notification.read_at == T0 + timedelta(seconds=4)
    assert notification.updated_at == T0 + timedelta(seconds=4)
    assert notification.created_at <= notification.updated_at


def test_retry_from_failed_keeps_original_sent_at() -> None:
    notification = _notification()
    notification.transition(NotificationStatus.SENT, at=T0 + timedelta(seconds=1))
    notification.transition(NotificationStatus.FAILED, at=T0 + timedelta(seconds=2))
    notification.transition(NotificationStatus.SENDING, at=T0 + timedelta(seconds=3))
    notification.transition(NotificationStatus.SENT, at=T0 + timedelta(seconds=4))

    assert notification.sent_at == T0 + timedelta(seconds=1)


@pytest.mark.parametrize(
    ("path", "target"),
    [
        ([], NotificationStatus.READ),
        ([], NotificationStatus.DELIVERED),
        ([NotificationStatus.SENDING], NotificationStatus.PENDING),
        ([NotificationStatus.SENT, NotificationStatus.READ], NotificationStatus.SENT),
        ([NotificationStatus.SENT, NotificationStatus.DELIVERED], NotificationStatus.FAILED),
    ],
)
def test_illegal_transitions_raise(path: list[NotificationStatus], target: NotificationStatus) -> None:
    notification = _notification()
    for step in path:
        notification.transition(step)

    with pytest.raises(InvalidStatusTransitionError):
        notification.transition(target)


def test_reentering_current_status_changes_nothing() -> None:
    notification = _notification()
    notification.transition(NotificationStatus.SENT, at=T0 + timedelta(seconds=1))
    notification.transition(NotificationStatus.SENT, at=T0 + timedelta(seconds=9))

    assert notification.sent_at == T0 + timedelta(seconds=1)
    assert notification.updated_at == T0 + timedelta(seconds=1)


def test_apply_update_returns_changed_fields() -> None:
    notification = _notification()
    notification.transition(NotificationStatus.SENT, at=T0 + timedelta(seconds=1))

    changes = notification.apply_update(
        UpdateNotificationRequest(status=NotificationStatus.READ),
        now=T0 + timedelta(seconds=5),
    )

    assert changes == {"status": "read", "read_at": (T0 + timedelta(seconds=5)).isoformat()}
    assert notification.read_at == T0 + timedelta(seconds=5)


def test_apply_update_accepts_client_read_timestamp() -> None:
    notification = _notification()
    notification.transition(NotificationStatus.SENT, at=T0 + timedelta(seconds=1))
    read_at = T0 + timedelta(minutes=3)

    changes = notification.apply_update(
        UpdateNotificationRequest(status=NotificationStatus.READ, read_at=read_at),
        now=T0 + timedelta(minutes=5),
    )

    assert notification.read_at == read_at
    assert changes["read_at"] == read_at.isoformat()


def test_apply_update_refuses_to_rewrite_sent_at() -> None:
    notification = _notification()
    notification.transition(NotificationStatus.SENT, at=T0 + timedelta(seconds=1))

    with pytest.raises(TimestampUpdateError):
        notification.apply_update(UpdateNotificationRequest(sent_at=T0 + timedelta(hours=1)))

    assert notification.sent_at == T0 + timedelta(seconds=1)


def test_apply_update_refuses_read_at_before_read() -> None:
    notification = _notification()

    with pytest.raises(TimestampUpdateError):
        notification.apply_update(UpdateNotificationRequest(read_at=T0))


def test_record_round_trip_keeps_nested_data() -> None:
    notification = _notification(
        data={"event": {"name": "Rock Night", "seats": 2, "vip": True}, "price": 10.5, "note": None},
        template_id="welcome_template",
    )

    restored = Notification.from_record(notification.to_record())

    assert restored == notification
    assert notification.to_record()["status"] == "pending"


def test_request_blank_priority_means_default() -> None:
    request = CreateNotificationRequest.model_validate(
        {
            "type": "welcome",
            "priority": "",
            "recipient": "ana@example.com",
            "subject": "Hi",
            "content": "Hello",
            "template_id": "  ",
        }
    )

    assert request.priority is None
    assert request.template_id is None


def test_template_variables_accept_comma_joined_rows() -> None:
    template = NotificationTemplate.from_record(
        {
            "id": "5b1f0f0e-2f4c-4c3a-9d1e-7d0c1b2a3f4e",
            "name": "event created",
            "type": "event_created",
            "subject": "New Event: {{event_name}}",
            "content": "{{event_name}} at {{location}}",
            "variables": "event_name, location",
            "is_active": True,
            "created_at": T0.isoformat(),
            "updated_at": T0.isoformat(),
        }
    )

    assert template.variables == ["event_name", "location"]
