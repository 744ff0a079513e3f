from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from checkin_kiosk.models import OperationResult
from checkin_kiosk.services.base import BaseController
from checkin_kiosk.services.checkin_client import CheckInClient, ServerRejection, TransportFailure
from checkin_kiosk.services.events import ACTIVATED, DECODED, EventBus
from checkin_kiosk.services.payload_decoder import DecodeError, decode_activation_payload
from checkin_kiosk.services.scan_deduplicator import DEFAULT_COOLDOWN_SECONDS, ScanDeduplicator
from checkin_kiosk.utils.time import parse_timestamp

logger = logging.getLogger(__name__)


class ActivationController(BaseController):
    """Activate a pass from a scanned ``"<token>:<pass>"`` code.

    Unlike the seat flow, rejected payloads are remembered by their raw text,
    since the pass part has no structure to key on.
    """

    analytics_category = "ActivationRequest"

    def __init__(
        self,
        client: CheckInClient,
        *,
        search_token: str,
        invalid_payloads: Optional[ScanDeduplicator] = None,
        rejected_payloads: Optional[ScanDeduplicator] = None,
        notification_timeout: int = 5,
        events: Optional[EventBus] = None,
    ) -> None:
        super().__init__(events=events, notification_timeout=notification_timeout)
        self.client = client
        self.search_token = search_token
        self.invalid_payloads = invalid_payloads or ScanDeduplicator(DEFAULT_COOLDOWN_SECONDS)
        self.rejected_payloads = rejected_payloads or ScanDeduplicator(DEFAULT_COOLDOWN_SECONDS)
        self.is_activated = False
        self.activation_end_time: Optional[datetime] = None

    def handle_scan(self, raw: str) -> Optional[OperationResult]:
        if not self._try_begin():
            return None
        try:
            try:
                pass_hash = decode_activation_payload(raw, self.search_token)
            except DecodeError as exc:
                if self.invalid_payloads.check_and_record(raw):
                    self._reject("duplicate-suppressed", raw)
                    return OperationResult.failed("duplicate-suppressed")
                logger.info("Unreadable activation code: %s", exc)
                self._reject("decode-failed", raw)
                self._notify("qr-invalid")
                return OperationResult.failed("decode-failed")

            if self.rejected_payloads.should_suppress(raw):
                self._reject("duplicate-suppressed", raw)
                return OperationResult.failed("duplicate-suppressed")

            self.events.emit(DECODED, {"pass": pass_hash})
            return self._activate(pass_hash, raw)
        finally:
            self._end()

    def activate(self, pass_hash: str) -> Optional[OperationResult]:
        if not self._try_begin():
            return None
        try:
            return self._activate(pass_hash, pass_hash)
        finally:
            self._end()

    def reset(self) -> None:
        self.is_activated = False
        self.activation_end_time = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _activate(self, pass_hash: str, key: str) -> OperationResult:
        if not pass_hash:
            self._failed(key, "no-pass", "error")
            self._track("ActivationFailedNoGreenPassHash")
            return OperationResult.failed("no-pass")

        try:
            response = self.client.activate(pass_hash)
        except TransportFailure as exc:
            logger.warning("Activation request failed: %s", exc)
            self._failed(key, "transport-failed", "error")
            return OperationResult.failed("transport-failed")

        if response.ok:
            body = response.body if isinstance(response.body, dict) else {}
            try:
                end_time = parse_timestamp(body.get("endTime"))
            except ValueError:
                logger.warning("Ignoring unreadable activation end time %r", body.get("endTime"))
                end_time = None
            self.is_activated = True
            self.activation_end_time = end_time
            self.rejected_payloads.discard(key)
            self._notify("activation-success")
            self._track("ActivationSuccess")
            self.events.emit(ACTIVATED, {"end_time": end_time})
            return OperationResult.succeeded(response)

        rejection = ServerRejection.from_response(response)
        logger.info("Activation rejected: %s", rejection)
        self._track(f"ActivationFailed{response.status_code}")
        message = "invalid-input" if rejection.kind == "invalid-input" else "error"
        self._failed(key, rejection.reason, message)
        return OperationResult.failed(rejection.reason, response)

    def _failed(self, key: str, reason: str, message_id: str) -> None:
        self.rejected_payloads.record_rejection(key)
        self._reject(reason, key)
        self._notify(message_id)
