"""Base exceptions for scanlink."""


class ScanLinkError(Exception):
    """Base exception for all scanlink errors."""

    pass


class ConfigError(ScanLinkError):
    """Configuration value is invalid."""

    pass


class MessageError(ScanLinkError):
    """Wire message could not be encoded or decoded."""

    pass


class TransportError(ScanLinkError):
    """Sending to a connection failed."""

    pass


class InvalidRequestError(ScanLinkError):
    """Issue request is malformed."""

    pass


class RenderError(ScanLinkError):
    """QR code rendering failed."""

    pass


class RedemptionError(ScanLinkError):
    """Scan redemption failed.

    Subclasses exist for operator diagnostics only. Callers facing the
    redeeming device must report every subclass the same way.
    """

    pass


class InvalidSessionError(RedemptionError):
    """Scan id unknown, already consumed, or expired."""

    pass


class OriginUnavailableError(RedemptionError):
    """Scan consumed but the originating connection could not be reached."""

    pass
