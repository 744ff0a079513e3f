from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from checkin_kiosk.models import Notification
from checkin_kiosk.services.events import ANALYTICS, NOTIFICATION, REJECTED, EventBus

logger = logging.getLogger(__name__)

# summary, body, severity
MESSAGES: dict[str, tuple[str, str, str]] = {
    "qr-invalid": (
        "Invalid QR code",
        "This QR code cannot be used here. Please scan a check-in code.",
        "danger",
    ),
    "error": (
        "Something went wrong",
        "The request could not be completed. Please try again.",
        "danger",
    ),
    "check-in-success": ("Checked in at {room}", "You are now checked in at {room}.", "success"),
    "check-in-seat-success": (
        "Checked in at {room}",
        "You are now checked in at {room}, seat {seat}.",
        "success",
    ),
    "refresh-success": ("Session at {room} extended", "Your check-in at {room} was renewed.", "success"),
    "refresh-failed": (
        "Session could not be extended",
        "Your check-in at {room} could not be renewed. Please try again.",
        "warning",
    ),
    "invalid-input": ("Invalid input", "The check-in request was not accepted.", "danger"),
    "unknown-location": ("Unknown place", "This place does not exist.", "danger"),
    "no-permission": ("No permission", "You are not allowed to check in here.", "danger"),
    "seat-invalid": ("Invalid seat", "This seat number does not exist at this place.", "danger"),
    "seat-not-allowed": (
        "No seats available",
        "This place has no seat numbers. Please check in without a seat.",
        "danger",
    ),
    "already-checked-in": (
        "Already checked in",
        "You are already checked in at this place.",
        "warning",
    ),
    "other-check-ins": (
        "Other active check-ins",
        "You are still checked in at {count} other place(s).",
        "warning",
    ),
    "check-out-success": ("Checked out", "You have been checked out of {room}.", "success"),
    "check-out-failed": (
        "Check-out failed",
        "You could not be checked out of {room}. Please try again.",
        "warning",
    ),
    "guest-check-in-success": (
        "Guest checked in",
        "{email} is now checked in at {room}.",
        "success",
    ),
    "activation-success": ("Pass activated", "Your pass was activated successfully.", "success"),
}


class BaseController:
    """Shared plumbing for the kiosk controllers: events, notifications and the busy guard."""

    analytics_category = "CheckInRequest"

    def __init__(self, *, events: Optional[EventBus] = None, notification_timeout: int = 5) -> None:
        self.events = events or EventBus()
        self.notification_timeout = notification_timeout
        self._busy = threading.Lock()

    def subscribe(self, name: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        return self.events.subscribe(name, handler)

    @property
    def in_progress(self) -> bool:
        return self._busy.locked()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _try_begin(self) -> bool:
        if self._busy.acquire(blocking=False):
            return True
        logger.debug("%s busy, ignoring request", type(self).__name__)
        return False

    def _end(self) -> None:
        self._busy.release()

    def _notify(self, message_id: str, **values: Any) -> Notification:
        summary, body, severity = MESSAGES[message_id]
        notification = Notification(
            summary=summary.format(**values),
            body=body.format(**values),
            severity=severity,
            timeout=self.notification_timeout,
        )
        self.events.emit(NOTIFICATION, notification)
        return notification

    def _reject(self, reason: str, key: str, **extra: Any) -> None:
        self.events.emit(REJECTED, {"reason": reason, "key": key, **extra})

    def _track(self, action: str, name: Optional[str] = None) -> None:
        self.events.emit(
            ANALYTICS,
            {"category": self.analytics_category, "action": action, "name": name or ""},
        )
