from __future__ import annotations

import re

from checkin_kiosk.models import DecodedLocation


class DecodeError(ValueError):
    """Raised when a scanned payload is not addressed to this kiosk or is malformed."""


def _remainder_after(raw: str, marker: str) -> str:
    index = raw.find(marker)
    if index == -1:
        raise DecodeError(f"Payload does not contain {marker!r}.")
    return raw[index + len(marker):].strip()


def decode_payload(raw: str, search_token: str) -> DecodedLocation:
    """Parse ``"<token>: -<location>-<seat>"`` out of a scanned string.

    The token may appear anywhere in ``raw``; only its first occurrence counts.
    The seat part is optional, so ``"<token>: -loc"`` and ``"<token>: -loc-"``
    both decode to a location without a seat.
    """

    if not isinstance(raw, str):
        raise DecodeError("Payload must be text.")

    segments = _remainder_after(raw, f"{search_token}: -").split("-")
    if len(segments) == 1:
        segments.append("")
    if len(segments) != 2:
        raise DecodeError("Payload must contain a location and at most one seat number.")

    location_id, seat_text = segments
    if not location_id:
        raise DecodeError("Payload has an empty location identifier.")

    if not seat_text:
        return DecodedLocation(location_id, None)

    # str.isdigit accepts superscripts, which int() rejects
    if not (seat_text.isascii() and seat_text.isdigit()):
        raise DecodeError(f"Seat number {seat_text!r} is not a number.")

    return DecodedLocation(location_id, int(seat_text, 10))


def decode_activation_payload(raw: str, search_token: str) -> str:
    """Return whatever follows ``"<token>:"`` in an activation code."""

    if not isinstance(raw, str):
        raise DecodeError("Payload must be text.")

    remainder = _remainder_after(raw, f"{search_token}:")
    if not remainder:
        raise DecodeError("Activation payload is empty.")
    return remainder


def escape_search_token(search_token: str) -> str:
    return re.escape(search_token)
