from .activation_controller import ActivationController
from .checkin_client import CheckInClient, ServerRejection, TransportFailure
from .events import EventBus
from .payload_decoder import DecodeError, decode_activation_payload, decode_payload, escape_search_token
from .scan_deduplicator import ScanDeduplicator
from .session_controller import SessionController

__all__ = [
    "ActivationController",
    "CheckInClient",
    "DecodeError",
    "EventBus",
    "ScanDeduplicator",
    "ServerRejection",
    "SessionController",
    "TransportFailure",
    "decode_activation_payload",
    "decode_payload",
    "escape_search_token",
]
