from __future__ import annotations

import sys
from pathlib import Path

import pytest

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from checkin_kiosk.models import ApiResponse
from checkin_kiosk.services import EventBus
from checkin_kiosk.services.checkin_client import ALREADY_CHECKED_IN_DESCRIPTION


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeClient:
    """Scripted stand-in for CheckInClient; each queue entry is an ApiResponse or an exception."""

    def __init__(self) -> None:
        self.check_in_responses: list = []
        self.check_out_responses: list = []
        self.active_responses: list = []
        self.activation_responses: list = []
        self.guest_responses: list = []
        self.calls: list[tuple] = []
        self.on_check_in = None
        self.on_check_out = None

    def _next(self, queue: list, default: ApiResponse):
        item = queue.pop(0) if queue else default
        if isinstance(item, Exception):
            raise item
        return item

    def check_in(self, location, *, end_time=None):
        self.calls.append(("check_in", location))
        if self.on_check_in is not None:
            self.on_check_in()
        return self._next(self.check_in_responses, ApiResponse(500))

    def guest_check_in(self, location, email, end_time):
        self.calls.append(("guest_check_in", location, email, end_time))
        return self._next(self.guest_responses, ApiResponse(500))

    def check_out(self, location):
        self.calls.append(("check_out", location))
        if self.on_check_out is not None:
            self.on_check_out()
        return self._next(self.check_out_responses, ApiResponse(500))

    def active_check_ins(self):
        self.calls.append(("active_check_ins",))
        return self._next(self.active_responses, active_collection())

    def activate(self, pass_hash):
        self.calls.append(("activate", pass_hash))
        return self._next(self.activation_responses, ApiResponse(500))

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class EventRecorder:
    def __init__(self, bus: EventBus) -> None:
        self.events: list[tuple[str, object]] = []
        for name in ("decoded", "rejected", "state-changed", "notification", "analytics", "activated"):
            bus.subscribe(name, lambda payload, name=name: self.events.append((name, payload)))

    def of(self, name: str) -> list:
        return [payload for event, payload in self.events if event == name]


def check_in_created(name: str = "HS i1", seat=None, end_time: str = "2021-11-04T18:00:00+01:00") -> ApiResponse:
    return ApiResponse(
        201,
        {"location": {"name": name, "identifier": "x"}, "seatNumber": seat, "endTime": end_time},
    )


def active_member(identifier: str, seat=None, name: str = "HS i1", end_time: str = "2021-11-04T18:00:00+01:00") -> dict:
    return {
        "location": {"name": name, "identifier": identifier},
        "seatNumber": seat,
        "endTime": end_time,
    }


def active_collection(*members: dict) -> ApiResponse:
    return ApiResponse(200, {"hydra:totalItems": len(members), "hydra:member": list(members)})


def already_checked_in() -> ApiResponse:
    return ApiResponse(424, {"hydra:description": ALREADY_CHECKED_IN_DESCRIPTION})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)
