from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


NOTIFICATION_KINDS = {"emergency", "toast"}


@dataclass(frozen=True)
class Notification:
    kind: str
    title: str
    description: str = ""
    variant: str = "default"
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "title": self.title,
            "description": self.description,
            "variant": self.variant,
            "details": dict(self.details),
        }


class NotificationHub:
    """Outbox for side-effect notifications raised by turns and the voice dialog.

    A request handler drains it once the operation completes and hands the
    notifications to the client.
    """

    def __init__(self) -> None:
        self._outbox: list[Notification] = []

    def emit(self, notification: Notification) -> None:
        if notification.kind not in NOTIFICATION_KINDS:
            raise ValueError(f"Unknown notification kind: {notification.kind}")
        self._outbox.append(notification)

    def toast(self, title: str, description: str = "", *, variant: str = "default") -> None:
        self.emit(Notification(kind="toast", title=title, description=description, variant=variant))

    def drain(self) -> list[Notification]:
        pending = self._outbox
        self._outbox = []
        return pending
