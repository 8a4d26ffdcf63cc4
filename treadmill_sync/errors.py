"""Exception types shared across treadmill-sync."""

from __future__ import annotations


class TreadmillSyncError(RuntimeError):
    """Base class for treadmill-sync failures."""


class TransportError(TreadmillSyncError):
    """Raised when the link transport cannot be opened or fails mid-flight.

    Always recoverable: the link manager logs it and moves to the error state.
    """


class ProtocolParseError(TreadmillSyncError):
    """Raised when an inbound frame is not valid JSON."""


class ConfigInvalid(TreadmillSyncError, ValueError):
    """Raised when configuration values are rejected at load time."""
