from __future__ import annotations

import enum
from collections.abc import Callable
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models.notification import Notification, NotificationStatus
from app.models.tutor_session import TutorSession
from app.utils.clock import Clock, SystemClock
from app.utils.tz import iso_utc, to_local, zone


class NotificationEvent(str, enum.Enum):
    SESSION_CREATED = "SESSION_CREATED"
    SESSION_REQUESTED = "SESSION_REQUESTED"
    SESSION_CONFIRMED = "SESSION_CONFIRMED"
    SESSION_REJECTED = "SESSION_REJECTED"
    SESSION_UPDATED = "SESSION_UPDATED"
    SESSION_CANCELLED = "SESSION_CANCELLED"
    APPOINTMENT_CREATED = "APPOINTMENT_CREATED"
    APPOINTMENT_CANCELLED = "APPOINTMENT_CANCELLED"


class Notifier(Protocol):
    def notify(self, user_id: str, event_type: str, payload: dict[str, Any]) -> None: ...


def session_payload(s: TutorSession, tz: ZoneInfo | None = None, **extra: Any) -> dict[str, Any]:
    starts_local = to_local(s.starts_at, tz or zone()).strftime("%d/%m/%Y %H:%M")
    payload = {
        "session_id": s.id,
        "tutor_id": s.tutor_id,
        "subject_id": s.subject_id,
        "title": s.title,
        "starts_at": iso_utc(s.starts_at),
        "ends_at": iso_utc(s.ends_at),
        "starts_local": starts_local,
        "status": s.status.value,
    }
    payload.update(extra)
    return payload


def _event_name(event_type: str) -> str:
    return event_type.value if isinstance(event_type, NotificationEvent) else event_type


class LogNotifier:
    """Only writes the event to the structured log."""

    def notify(self, user_id: str, event_type: str, payload: dict[str, Any]) -> None:
        get_logger().info(
            "notification.emitted",
            recipient_id=user_id,
            event_type=_event_name(event_type),
            payload=payload,
        )


class DatabaseNotifier:
    """
    Persists an UNREAD ``notifications`` row per call, in its own session,
    so a failure here never touches the transaction that triggered it.
    """

    def __init__(
        self, session_factory: Callable[[], Session], clock: Clock | None = None
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock or SystemClock()

    def notify(self, user_id: str, event_type: str, payload: dict[str, Any]) -> None:
        with self.session_factory() as db:
            db.add(
                Notification(
                    recipient_id=user_id,
                    event_type=_event_name(event_type),
                    payload=payload,
                    status=NotificationStatus.UNREAD,
                    created_at=self.clock.now(),
                )
            )
            db.commit()
