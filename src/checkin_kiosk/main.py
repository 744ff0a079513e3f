from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Iterable, TextIO

PACKAGE_DIR = Path(__file__).resolve().parent
SRC_DIR = PACKAGE_DIR.parent
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from checkin_kiosk.config.settings import settings
from checkin_kiosk.models import MalformedResponseError, Notification, SessionState
from checkin_kiosk.services import ServerRejection, SessionController, TransportFailure
from checkin_kiosk.services.events import NOTIFICATION, STATE_CHANGED
from checkin_kiosk.utils.time import format_check_in_time

logger = logging.getLogger(__name__)

COMMANDS = ("checkout", "refresh", "list", "reset", "quit")


def _token_from_env() -> str:
    return os.getenv("CHECKIN_BEARER_TOKEN", "")


def run(controller: SessionController, lines: Iterable[str], out: TextIO) -> None:
    """Feed manual entries and commands to ``controller`` until ``quit``."""

    def _show_notification(notification: Notification) -> None:
        out.write(f"[{notification.severity}] {notification.summary}: {notification.body}\n")

    def _show_state(state: SessionState) -> None:
        if state.is_checked_in:
            out.write(
                f"-> checked in at {state.location_name}"
                f" until {format_check_in_time(state.end_time)}\n"
            )
        else:
            out.write(f"-> {state.status.value}\n")

    controller.subscribe(NOTIFICATION, _show_notification)
    controller.subscribe(STATE_CHANGED, _show_state)

    for line in lines:
        text = line.strip()
        if not text:
            continue
        command = text.lower()
        if command == "quit":
            break
        if command == "checkout":
            controller.check_out()
        elif command == "refresh":
            controller.refresh_session()
        elif command == "reset":
            controller.reset()
        elif command == "list":
            try:
                entries = controller.list_active_check_ins()
            except (TransportFailure, ServerRejection, MalformedResponseError) as exc:
                logger.warning("Could not load active check-ins: %s", exc)
                out.write("Active check-ins are unavailable right now.\n")
                continue
            for entry in entries:
                seat = "" if entry.seat_number is None else f" seat {entry.seat_number}"
                out.write(f"  {entry.location_name}{seat} until {format_check_in_time(entry.end_time)}\n")
        else:
            controller.handle_manual_entry(text)


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    logger.info(settings.describe())

    controller = SessionController.from_settings(settings, _token_from_env)
    print(f"{settings.app_name}: scan or type a code, or one of {', '.join(COMMANDS)}.")
    run(controller, sys.stdin, sys.stdout)


if __name__ == "__main__":
    main()
