"""Check-in/check-out kiosk core: QR payload decoding, scan de-duplication and session control."""

__version__ = "0.1.0"
