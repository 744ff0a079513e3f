from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Optional

from checkin_kiosk.config.settings import Settings
from checkin_kiosk.models import (
    ActiveCheckIn,
    ApiResponse,
    DecodedLocation,
    MalformedResponseError,
    OperationResult,
    SessionState,
    SessionStatus,
)
from checkin_kiosk.services.base import BaseController
from checkin_kiosk.services.checkin_client import CheckInClient, ServerRejection, TransportFailure
from checkin_kiosk.services.events import DECODED, STATE_CHANGED, EventBus
from checkin_kiosk.services.payload_decoder import DecodeError, decode_payload
from checkin_kiosk.services.scan_deduplicator import DEFAULT_COOLDOWN_SECONDS, ScanDeduplicator
from checkin_kiosk.utils.time import parse_timestamp

logger = logging.getLogger(__name__)

DECODE_FAILED = "decode-failed"
DUPLICATE_SUPPRESSED = "duplicate-suppressed"
TRANSPORT_FAILED = "transport-failed"
MALFORMED_RESPONSE = "malformed-response"
NOT_CHECKED_IN = "not-checked-in"
NO_LOCATION = "no-location"
IN_PROGRESS = "in-progress"

# ServerRejection.kind values that have their own user message
_KINDS_WITH_MESSAGE = frozenset(
    {"invalid-input", "no-permission", "unknown-location", "seat-invalid", "seat-not-allowed"}
)


class SessionController(BaseController):
    """Drive one kiosk session: scan, check in, refresh and check out.

    All network traffic goes through ``client``; every state change is
    published on ``events`` as ``state-changed``.
    """

    def __init__(
        self,
        client: CheckInClient,
        *,
        search_token: str,
        invalid_payloads: Optional[ScanDeduplicator] = None,
        rejected_locations: Optional[ScanDeduplicator] = None,
        max_checkout_attempts: int = 4,
        backoff_base: int = 5,
        backoff_unit_seconds: float = 0.001,
        notification_timeout: int = 5,
        sleep: Callable[[float], None] = time.sleep,
        events: Optional[EventBus] = None,
    ) -> None:
        super().__init__(events=events, notification_timeout=notification_timeout)
        self.client = client
        self.search_token = search_token
        self.invalid_payloads = invalid_payloads or ScanDeduplicator(DEFAULT_COOLDOWN_SECONDS)
        self.rejected_locations = rejected_locations or ScanDeduplicator(DEFAULT_COOLDOWN_SECONDS)
        self.max_checkout_attempts = max_checkout_attempts
        self.backoff_base = backoff_base
        self.backoff_unit_seconds = backoff_unit_seconds
        self._sleep = sleep
        self._state = SessionState.not_checked_in()
        self.checkin_count = 0

        self._selected_place: Optional[str] = None
        self._selected_capacity: Optional[int] = None
        self._selected_seat: Optional[int] = None

    @classmethod
    def from_settings(
        cls,
        app_settings: Settings,
        token_provider: Callable[[], str],
        **kwargs,
    ) -> "SessionController":
        client = CheckInClient(
            app_settings.entry_point_url,
            token_provider,
            timeout=app_settings.request_timeout,
        )
        return cls(
            client,
            search_token=app_settings.search_hash_string,
            invalid_payloads=ScanDeduplicator(app_settings.dedup_cooldown_seconds),
            rejected_locations=ScanDeduplicator(app_settings.dedup_cooldown_seconds),
            max_checkout_attempts=app_settings.checkout_attempts,
            backoff_base=app_settings.backoff_base,
            backoff_unit_seconds=app_settings.backoff_unit_seconds,
            notification_timeout=app_settings.notification_timeout,
            **kwargs,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    # ------------------------------------------------------------------
    # Check-in
    # ------------------------------------------------------------------
    def handle_scan(self, raw: str) -> Optional[OperationResult]:
        """Decode a scanned code and check in; returns None while another check-in runs."""

        if not self._try_begin():
            return None
        try:
            try:
                location = decode_payload(raw, self.search_token)
            except DecodeError as exc:
                return self._decode_failed(raw, exc)

            self.events.emit(
                DECODED,
                {"location_id": location.location_id, "seat_number": location.seat_number},
            )
            return self._check_in(location)
        finally:
            self._end()

    def handle_manual_entry(self, text: str) -> Optional[OperationResult]:
        return self.handle_scan(text)

    def check_in(self, location: DecodedLocation, *, refresh: bool = False) -> Optional[OperationResult]:
        if not self._try_begin():
            return None
        try:
            return self._check_in(location, refresh=refresh)
        finally:
            self._end()

    def select_place(self, location_id: str, capacity: Optional[int] = None) -> None:
        self._selected_place = location_id
        self._selected_capacity = capacity
        if capacity is None:
            self._selected_seat = None
        elif self._selected_seat is not None:
            self._selected_seat = min(capacity, self._selected_seat)

    def set_seat_number(self, value: object) -> Optional[int]:
        """Store the seat typed by the user, clamped to the selected place's capacity."""

        try:
            seat = int(str(value).strip())
        except (TypeError, ValueError):
            self._selected_seat = None
            return None

        seat = max(0, seat)
        if self._selected_capacity is not None:
            seat = min(self._selected_capacity, seat)
        self._selected_seat = seat
        return seat

    def check_in_selected(self) -> Optional[OperationResult]:
        if not self._selected_place:
            self._notify("error")
            self._track("CheckInFailedNoLocationHash")
            self._reject(NO_LOCATION, "")
            return OperationResult.failed(NO_LOCATION)

        seat = self._selected_seat if self._selected_capacity is not None else None
        return self.check_in(DecodedLocation(self._selected_place, seat))

    def guest_check_in(self, location: DecodedLocation, email: str, end_time: str) -> OperationResult:
        try:
            response = self.client.guest_check_in(location, email, end_time)
        except TransportFailure:
            self._notify("error")
            return OperationResult.failed(TRANSPORT_FAILED)

        if response.ok:
            room = self._room_name(response, location)
            self._notify("guest-check-in-success", email=email, room=room)
            self._track("GuestCheckInSuccess", room)
            return OperationResult.succeeded(response)

        rejection = ServerRejection.from_response(response)
        self._track(f"GuestCheckInFailed{response.status_code}", location.location_id)
        self._notify(_message_for(rejection))
        return OperationResult.failed(rejection.reason, response)

    # ------------------------------------------------------------------
    # Check-out and refresh
    # ------------------------------------------------------------------
    def try_check_out(self, location_id: str, seat_number: Optional[int]) -> Optional[ApiResponse]:
        """Post the check-out with backoff; returns the last response as-is.

        Waits ``backoff_base ** n`` units between attempt ``n`` and ``n + 1``.
        Returns None only if the final attempt could not reach the service.
        """

        location = DecodedLocation(location_id, seat_number)
        response: Optional[ApiResponse] = None

        for attempt in range(self.max_checkout_attempts):
            if attempt:
                self._sleep(self.backoff_base ** (attempt - 1) * self.backoff_unit_seconds)
            try:
                response = self.client.check_out(location)
            except TransportFailure as exc:
                logger.warning(
                    "Check-out attempt %d/%d for %s failed: %s",
                    attempt + 1,
                    self.max_checkout_attempts,
                    location.key(),
                    exc,
                )
                response = None
                continue

            if response.ok:
                return response
            logger.info(
                "Check-out attempt %d/%d for %s returned HTTP %s",
                attempt + 1,
                self.max_checkout_attempts,
                location.key(),
                response.status_code,
            )

        return response

    def check_out(self) -> OperationResult:
        if not self._try_begin():
            return OperationResult.failed(IN_PROGRESS)
        try:
            current = self._state
            location = current.location()
            if not current.is_checked_in or location is None:
                return OperationResult.failed(NOT_CHECKED_IN)

            self._set_state(replace(current, status=SessionStatus.CHECKING_OUT))
            response = self.try_check_out(location.location_id, location.seat_number)
            outcome = self._finish_check_out(location, current.location_name, response)

            if outcome.success:
                self.reset()
            else:
                self._set_state(current)
            return outcome
        finally:
            self._end()

    def check_out_entry(self, entry: ActiveCheckIn) -> OperationResult:
        if not self._try_begin():
            return OperationResult.failed(IN_PROGRESS)
        try:
            location = DecodedLocation(entry.location_id, entry.seat_number)
            response = self.try_check_out(entry.location_id, entry.seat_number)
            outcome = self._finish_check_out(location, entry.location_name, response)

            if outcome.success and self._state.location() == location:
                self.reset()
            return outcome
        finally:
            self._end()

    def refresh_session(self) -> OperationResult:
        """Renew the current check-in by checking out once and in again."""

        if not self._try_begin():
            return OperationResult.failed(IN_PROGRESS)
        try:
            current = self._state
            location = current.location()
            if not current.is_checked_in or location is None:
                return OperationResult.failed(NOT_CHECKED_IN)

            try:
                response: Optional[ApiResponse] = self.client.check_out(location)
            except TransportFailure as exc:
                logger.warning("Refresh check-out for %s failed: %s", location.key(), exc)
                response = None

            if response is None or not response.ok:
                self._notify("refresh-failed", room=current.location_name)
                self._track("RefreshFailed", current.location_name)
                reason = TRANSPORT_FAILED if response is None else f"server-rejected:{response.status_code}"
                return OperationResult.failed(reason, response)

            return self._check_in(location, refresh=True)
        finally:
            self._end()

    def list_active_check_ins(self) -> list[ActiveCheckIn]:
        """Active check-ins as shown in the list view, capped at ``hydra:totalItems``."""

        return self._load_active_check_ins(limit_to_total=True)

    def reset(self) -> None:
        """Forget the current check-in, e.g. on logout or after checking out."""

        self._selected_place = None
        self._selected_capacity = None
        self._selected_seat = None
        self.checkin_count = 0
        self._set_state(SessionState.not_checked_in())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _load_active_check_ins(self, *, limit_to_total: bool) -> list[ActiveCheckIn]:
        response = self.client.active_check_ins()
        if response.status_code != 200:
            raise ServerRejection.from_response(response)

        body = response.body
        if not isinstance(body, dict):
            raise MalformedResponseError("Active check-ins response is not a collection.")

        try:
            total = int(body.get("hydra:totalItems"))
        except (TypeError, ValueError):
            total = 0

        members = body.get("hydra:member") or []
        if not isinstance(members, list):
            raise MalformedResponseError("hydra:member is not a list.")
        if limit_to_total:
            members = members[:total]
        entries = [ActiveCheckIn.from_member(member) for member in members]
        self.checkin_count = len(entries)
        return entries

    def _set_state(self, state: SessionState) -> None:
        if state == self._state:
            return
        logger.debug("Session state %s -> %s", self._state.status.value, state.status.value)
        self._state = state
        self.events.emit(STATE_CHANGED, state)

    def _decode_failed(self, raw: str, exc: DecodeError) -> OperationResult:
        if self.invalid_payloads.should_suppress(raw):
            self._reject(DUPLICATE_SUPPRESSED, raw)
            return OperationResult.failed(DUPLICATE_SUPPRESSED)

        logger.info("Unreadable check-in code: %s", exc)
        self.invalid_payloads.record_rejection(raw)
        self._reject(DECODE_FAILED, raw)
        self._notify("qr-invalid")
        return OperationResult.failed(DECODE_FAILED)

    def _check_in(self, location: DecodedLocation, *, refresh: bool = False) -> OperationResult:
        key = location.key()
        if not refresh and self.rejected_locations.should_suppress(key):
            self._reject(DUPLICATE_SUPPRESSED, key)
            return OperationResult.failed(DUPLICATE_SUPPRESSED)

        # a failed refresh leaves nothing on the server to fall back to
        previous = SessionState.not_checked_in() if refresh else self._state
        if not refresh:
            self._set_state(
                SessionState(
                    SessionStatus.CHECKING_IN,
                    location_id=location.location_id,
                    seat_number=location.seat_number,
                )
            )

        try:
            response = self.client.check_in(location)
        except TransportFailure as exc:
            logger.warning("Check-in at %s failed: %s", key, exc)
            self._track("CheckInFailed", location.location_id)
            return self._check_in_failed(previous, location, TRANSPORT_FAILED, "error")

        try:
            if response.ok:
                return self._checked_in(location, response, refresh=refresh)
            return self._check_in_rejected(previous, location, response)
        except MalformedResponseError as exc:
            logger.error("Unexpected check-in response from %s: %s", response.url, exc)
            return self._check_in_failed(previous, location, MALFORMED_RESPONSE, "error", response)

    def _checked_in(self, location: DecodedLocation, response: ApiResponse, *, refresh: bool) -> OperationResult:
        body = response.body
        try:
            room = body["location"]["name"]
            seat = body.get("seatNumber", location.seat_number)
            end_time = parse_timestamp(body.get("endTime"))
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            raise MalformedResponseError("Check-in response lacks location details.") from exc

        self._set_state(
            SessionState(
                SessionStatus.CHECKED_IN,
                location_id=location.location_id,
                seat_number=seat,
                end_time=end_time,
                location_name=room,
            )
        )
        self.rejected_locations.discard(location.key())

        if refresh:
            self._notify("refresh-success", room=room)
            self._track("RefreshSuccess", room)
        elif location.seat_number is not None:
            self._notify("check-in-seat-success", room=room, seat=location.seat_number)
            self._track("CheckInSuccess", room)
        else:
            self._notify("check-in-success", room=room)
            self._track("CheckInSuccess", room)

        try:
            self._warn_about_other_check_ins(self._load_active_check_ins(limit_to_total=False))
        except (TransportFailure, ServerRejection, MalformedResponseError) as exc:
            logger.info("Could not load active check-ins: %s", exc)

        return OperationResult.succeeded(response)

    def _check_in_rejected(
        self,
        previous: SessionState,
        location: DecodedLocation,
        response: ApiResponse,
    ) -> OperationResult:
        rejection = ServerRejection.from_response(response)
        logger.info("Check-in at %s rejected: %s", location.key(), rejection)
        self._track(f"CheckInFailed{response.status_code}", location.location_id)

        if rejection.kind == "already-checked-in":
            return self._adopt_existing_check_in(previous, location, response, rejection)

        message = _message_for(rejection)
        return self._check_in_failed(previous, location, rejection.reason, message, response, kind=rejection.kind)

    def _adopt_existing_check_in(
        self,
        previous: SessionState,
        location: DecodedLocation,
        response: ApiResponse,
        rejection: ServerRejection,
    ) -> OperationResult:
        try:
            entries = self._load_active_check_ins(limit_to_total=False)
        except (TransportFailure, ServerRejection, MalformedResponseError) as exc:
            logger.info("Could not confirm existing check-in at %s: %s", location.key(), exc)
            return self._check_in_failed(previous, location, rejection.reason, "error", response, kind=rejection.kind)

        self._warn_about_other_check_ins(entries)
        matches = [entry for entry in entries if entry.matches(location)]
        if len(matches) != 1:
            return self._check_in_failed(previous, location, rejection.reason, "error", response, kind=rejection.kind)

        entry = matches[0]
        self._set_state(
            SessionState(
                SessionStatus.CHECKED_IN,
                location_id=entry.location_id,
                seat_number=entry.seat_number,
                end_time=entry.end_time,
                location_name=entry.location_name,
            )
        )
        self._notify("already-checked-in")
        return OperationResult.succeeded(response)

    def _check_in_failed(
        self,
        previous: SessionState,
        location: DecodedLocation,
        reason: str,
        message_id: str,
        response: Optional[ApiResponse] = None,
        **extra,
    ) -> OperationResult:
        self.rejected_locations.record_rejection(location.key())
        self._set_state(previous)
        self._reject(reason, location.key(), **extra)
        self._notify(message_id)
        return OperationResult.failed(reason, response)

    def _warn_about_other_check_ins(self, entries: list[ActiveCheckIn]) -> None:
        if len(entries) > 1:
            self._notify("other-check-ins", count=len(entries) - 1)

    def _finish_check_out(
        self,
        location: DecodedLocation,
        room: Optional[str],
        response: Optional[ApiResponse],
    ) -> OperationResult:
        room = room or location.location_id
        if response is not None and response.ok:
            self._notify("check-out-success", room=room)
            self._track("CheckOutSuccess", room)
            return OperationResult.succeeded(response)

        if response is not None and response.status_code == 424 and self._is_already_checked_out(location):
            logger.info("Check-out of %s answered 424 but no check-in is left", location.key())
            self._notify("check-out-success", room=room)
            self._track("CheckOutSuccess", room)
            return OperationResult.succeeded(response)

        reason = TRANSPORT_FAILED if response is None else f"server-rejected:{response.status_code}"
        self._reject(reason, location.key())
        self._notify("check-out-failed", room=room)
        self._track("CheckOutFailed", room)
        return OperationResult.failed(reason, response)

    def _is_already_checked_out(self, location: DecodedLocation) -> bool:
        try:
            entries = self._load_active_check_ins(limit_to_total=False)
        except (TransportFailure, ServerRejection, MalformedResponseError) as exc:
            logger.info("Could not verify check-out of %s: %s", location.key(), exc)
            return False
        return not any(entry.matches(location) for entry in entries)

    @staticmethod
    def _room_name(response: ApiResponse, location: DecodedLocation) -> str:
        body = response.body
        if isinstance(body, dict) and isinstance(body.get("location"), dict):
            return body["location"].get("name") or location.location_id
        return location.location_id


def _message_for(rejection: ServerRejection) -> str:
    return rejection.kind if rejection.kind in _KINDS_WITH_MESSAGE else "error"
