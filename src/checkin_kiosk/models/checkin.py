from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from checkin_kiosk.utils.time import parse_timestamp


class MalformedResponseError(RuntimeError):
    """Raised when the check-in service answers with a body we cannot interpret."""


@dataclass(frozen=True, slots=True)
class DecodedLocation:
    location_id: str
    seat_number: Optional[int] = None

    def key(self) -> str:
        seat = "" if self.seat_number is None else str(self.seat_number)
        return f"{self.location_id}-{seat}"


class SessionStatus(str, Enum):
    NOT_CHECKED_IN = "not-checked-in"
    CHECKING_IN = "checking-in"
    CHECKED_IN = "checked-in"
    CHECKING_OUT = "checking-out"


@dataclass(frozen=True, slots=True)
class SessionState:
    status: SessionStatus = SessionStatus.NOT_CHECKED_IN
    location_id: Optional[str] = None
    seat_number: Optional[int] = None
    end_time: Optional[datetime] = None
    location_name: Optional[str] = None

    @classmethod
    def not_checked_in(cls) -> "SessionState":
        return cls()

    @property
    def is_checked_in(self) -> bool:
        return self.status is SessionStatus.CHECKED_IN

    @property
    def is_busy(self) -> bool:
        return self.status in (SessionStatus.CHECKING_IN, SessionStatus.CHECKING_OUT)

    def location(self) -> Optional[DecodedLocation]:
        if not self.location_id:
            return None
        return DecodedLocation(self.location_id, self.seat_number)


@dataclass(slots=True)
class ActiveCheckIn:
    location_name: str
    location_id: str
    seat_number: Optional[int] = None
    end_time: Optional[datetime] = None

    @classmethod
    def from_member(cls, member: dict[str, Any]) -> "ActiveCheckIn":
        """Build an entry from one ``hydra:member`` item of the active check-ins collection."""

        location = member.get("location") if isinstance(member, dict) else None
        if not isinstance(location, dict) or "identifier" not in location:
            raise MalformedResponseError("Active check-in entry has no location.")

        seat = member.get("seatNumber")
        try:
            seat_number = int(seat) if seat is not None else None
        except (TypeError, ValueError) as exc:
            raise MalformedResponseError(f"Invalid seat number {seat!r}.") from exc

        try:
            end_time = parse_timestamp(member.get("endTime"))
        except ValueError as exc:
            raise MalformedResponseError(f"Invalid end time {member.get('endTime')!r}.") from exc

        return cls(
            location_name=str(location.get("name") or location["identifier"]),
            location_id=str(location["identifier"]),
            seat_number=seat_number,
            end_time=end_time,
        )

    def matches(self, location: DecodedLocation) -> bool:
        return self.location_id == location.location_id and self.seat_number == location.seat_number


@dataclass(frozen=True, slots=True)
class Notification:
    summary: str
    body: str
    severity: str = "info"
    timeout: int = 5


@dataclass(slots=True)
class ApiResponse:
    status_code: int
    body: Any = None
    url: str = ""

    @property
    def ok(self) -> bool:
        return self.status_code == 201

    @property
    def description(self) -> Optional[str]:
        if isinstance(self.body, dict):
            return self.body.get("hydra:description")
        return None


@dataclass(frozen=True, slots=True)
class OperationResult:
    success: bool
    reason: Optional[str] = None
    response: Optional[ApiResponse] = field(default=None, compare=False)

    @classmethod
    def succeeded(cls, response: Optional[ApiResponse] = None) -> "OperationResult":
        return cls(True, None, response)

    @classmethod
    def failed(cls, reason: str, response: Optional[ApiResponse] = None) -> "OperationResult":
        return cls(False, reason, response)
