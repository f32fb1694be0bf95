from __future__ import annotations

from datetime import datetime

_DATE_FORMAT = "%d/%m/%Y %H:%M"


def format_event_date(value: datetime | str) -> str:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value.strip() or "a date to be confirmed"
    return value.strftime(_DATE_FORMAT)


def event_created_email(event_name: str, location: str, event_date: datetime | str) -> dict[str, str]:
    return {
        "subject": f"New Event: {event_name}",
        "text": f"A new event has been created: {event_name} at {location} on {format_event_date(event_date)}.",
    }


def event_updated_email(event_name: str, location: str, event_date: datetime | str) -> dict[str, str]:
    return {
        "subject": f"Event Updated: {event_name}",
        "text": (
            f"The event '{event_name}' has been updated. "
            f"It now takes place at {location} on {format_event_date(event_date)}."
        ),
    }


def event_cancelled_email(event_name: str, location: str, event_date: datetime | str) -> dict[str, str]:
    return {
        "subject": f"Event Cancelled: {event_name}",
        "text": (
            f"The event '{event_name}' scheduled for {format_event_date(event_date)} "
            f"at {location} has been cancelled."
        ),
    }


def event_reminder_email(event_name: str, location: str, event_date: datetime | str) -> dict[str, str]:
    return {
        "subject": f"Reminder: {event_name}",
        "text": (
            f"This is a reminder that '{event_name}' takes place on "
            f"{format_event_date(event_date)} at {location}."
        ),
    }


def reservation_created_email(
    event_name: str,
    location: str,
    event_date: datetime | str,
    reservation_id: str,
) -> dict[str, str]:
    return {
        "subject": f"Reservation Received: {event_name}",
        "text": "\n".join(
            [
                f"Your reservation for '{event_name}' on {format_event_date(event_date)} at {location} "
                "has been received.",
                f"Reservation ID: {reservation_id}",
            ]
        ),
    }


def reservation_confirmed_email(
    event_name: str,
    location: str,
    event_date: datetime | str,
    reservation_id: str,
) -> dict[str, str]:
    return {
        "subject": f"Reservation Confirmed: {event_name}",
        "text": "\n".join(
            [
                f"Your reservation for '{event_name}' on {format_event_date(event_date)} at {location} "
                "has been confirmed.",
                f"Reservation ID: {reservation_id}",
            ]
        ),
    }


def reservation_cancelled_email(
    event_name: str,
    location: str,
    event_date: datetime | str,
    reservation_id: str,
) -> dict[str, str]:
    return {
        "subject": f"Reservation Cancelled: {event_name}",
        "text": "\n".join(
            [
                f"Your reservation for '{event_name}' on {format_event_date(event_date)} at {location} "
                "has been cancelled.",
                f"Reservation ID: {reservation_id}",
            ]
        ),
    }
