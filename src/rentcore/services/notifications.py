"""Notification collaborator.

Notifications are fire-and-forget: a failing notifier is logged and never
affects the transition that triggered it.
"""

import logging
from typing import Any, Protocol

from rentcore.utils.logging import get_logger

logger = get_logger(__name__)


class Notifier(Protocol):
    def notify(self, event: str, payload: dict[str, Any]) -> None: ...

    def alert_admin(self, message: str, details: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Notifier that records events in the application log."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        self._log.info("Notification: %s", event, extra={"event": event, "payload": payload})

    def alert_admin(self, message: str, details: dict[str, Any]) -> None:
        self._log.error("Admin alert: %s", message, extra={"details": details})


class RecordingNotifier:
    """Notifier that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.alerts: list[tuple[str, dict[str, Any]]] = []

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def alert_admin(self, message: str, details: dict[str, Any]) -> None:
        self.alerts.append((message, details))

    def event_names(self) -> list[str]:
        return [name for name, _ in self.events]


def safe_notify(notifier: Notifier, event: str, payload: dict[str, Any]) -> None:
    """Deliver a notification, logging instead of raising on failure."""
    try:
        notifier.notify(event, payload)
    except Exception:
        logger.exception("Notifier failed for event %s", event)


def safe_alert(notifier: Notifier, message: str, details: dict[str, Any]) -> None:
    try:
        notifier.alert_admin(message, details)
    except Exception:
        logger.exception("Admin alert delivery failed: %s", message)
