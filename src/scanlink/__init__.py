"""scanlink - QR code pairing between a display device and a phone."""

__version__ = "0.1.0"
