from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import requests

from checkin_kiosk.models import ApiResponse, DecodedLocation

logger = logging.getLogger(__name__)

CHECK_IN_PATH = "/location_check_in_actions"
CHECK_OUT_PATH = "/location_check_out_actions"
GUEST_CHECK_IN_PATH = "/location_guest_check_in_actions"
ACTIVATION_PATH = "/green_pass_activation_actions"
PLACE_PREFIX = "/check_in_places/"
GREEN_PASS_PREFIX = "/activate_green_pass/"

SEAT_INVALID_DESCRIPTIONS = frozenset(
    {
        "seatNumber must not exceed maximumPhysicalAttendeeCapacity of location!",
        "seatNumber too low!",
    }
)
SEAT_NOT_ALLOWED_DESCRIPTION = "Location doesn't have any seats activated, you cannot set a seatNumber!"
ALREADY_CHECKED_IN_DESCRIPTION = (
    "There are already check-ins at the location with provided seat for the current user!"
)


class TransportFailure(RuntimeError):
    """Raised when the check-in service cannot be reached at all."""


class ServerRejection(RuntimeError):
    """A structured non-success answer from the check-in service."""

    def __init__(self, status_code: int, description: Optional[str], kind: str) -> None:
        super().__init__(f"HTTP {status_code} ({kind}): {description or 'no description'}")
        self.status_code = status_code
        self.description = description
        self.kind = kind

    @property
    def reason(self) -> str:
        return f"server-rejected:{self.status_code}"

    @classmethod
    def from_response(cls, response: ApiResponse) -> "ServerRejection":
        status = response.status_code
        description = response.description

        if status == 400:
            kind = "invalid-input"
        elif status == 403:
            kind = "no-permission"
        elif status == 404:
            kind = "unknown-location"
        elif status == 424:
            if description in SEAT_INVALID_DESCRIPTIONS:
                kind = "seat-invalid"
            elif description == SEAT_NOT_ALLOWED_DESCRIPTION:
                kind = "seat-not-allowed"
            elif description == ALREADY_CHECKED_IN_DESCRIPTION:
                kind = "already-checked-in"
            else:
                kind = "conflict"
        else:
            kind = "unexpected"
        return cls(status, description, kind)


class CheckInClient:
    """Authenticated access to the location check-in API (hydra/JSON-LD)."""

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str],
        *,
        timeout: float = 8,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self._token_provider = token_provider
        self.timeout = timeout
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def check_in(self, location: DecodedLocation, *, end_time: Optional[str] = None) -> ApiResponse:
        body = self._location_body(location)
        if end_time:
            body["endTime"] = end_time
        return self._request("POST", CHECK_IN_PATH, body)

    def guest_check_in(self, location: DecodedLocation, email: str, end_time: str) -> ApiResponse:
        body = self._location_body(location)
        body["email"] = email
        body["endTime"] = end_time
        return self._request("POST", GUEST_CHECK_IN_PATH, body)

    def check_out(self, location: DecodedLocation) -> ApiResponse:
        return self._request("POST", CHECK_OUT_PATH, self._location_body(location))

    def active_check_ins(self) -> ApiResponse:
        return self._request("GET", CHECK_IN_PATH)

    def activate(self, pass_hash: str) -> ApiResponse:
        return self._request("POST", ACTIVATION_PATH, {"greenPass": GREEN_PASS_PREFIX + pass_hash})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token_provider()}",
            "Content-Type": "application/ld+json",
            "Accept": "application/ld+json",
        }

    @staticmethod
    def _location_body(location: DecodedLocation) -> Dict[str, Any]:
        return {
            "location": PLACE_PREFIX + location.location_id,
            "seatNumber": location.seat_number,
        }

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> ApiResponse:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(
                method,
                url,
                headers=self._headers(),
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportFailure(str(exc)) from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        logger.debug("%s %s -> HTTP %s", method, url, resp.status_code)
        return ApiResponse(status_code=resp.status_code, body=payload, url=url)
