from .checkin import (
    ActiveCheckIn,
    ApiResponse,
    DecodedLocation,
    MalformedResponseError,
    Notification,
    OperationResult,
    SessionState,
    SessionStatus,
)

__all__ = [
    "ActiveCheckIn",
    "ApiResponse",
    "DecodedLocation",
    "MalformedResponseError",
    "Notification",
    "OperationResult",
    "SessionState",
    "SessionStatus",
]
