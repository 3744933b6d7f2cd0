"""
Error taxonomy for telemetry recording and analytics.

Every error is terminal for the call that raised it. Collaborator failures
(storage, resolver) are never wrapped and propagate unchanged.
"""

from typing import Optional


class TelemetryError(Exception):
    """Base class for errors raised by the telemetry core."""


class Unauthenticated(TelemetryError):
    """Raised when no caller identity is established."""

    def __init__(self, message: str = "Unauthenticated"):
        super().__init__(message)


class TelemetryValidationError(TelemetryError, ValueError):
    """Raised when an input field fails validation.

    Messages are deterministic for a given invalid input so callers can
    surface them directly.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class TelemetryRangeError(TelemetryValidationError):
    """Raised when a query window starts after it ends."""

    def __init__(self, message: str = "startMs must be <= endMs"):
        super().__init__(message, field="startMs")
