"""
Failure Taxonomy
================
Terminal failure kinds for one extraction run, plus the driver-level
exceptions the Extraction Loop re-classifies at its boundary.

Only ``DriverError`` / ``DriverTimeout`` are raised below the loop; callers
of the loop see a ``Failure`` outcome (or ``ExtractionError`` when they ask
for one via ``raise_for_failure``).
"""

from __future__ import annotations

import enum


class FailureKind(str, enum.Enum):
    """Why a run produced no records."""

    TIMEOUT = "timeout"
    LOGIN_WALL = "login_wall"
    BOT_WALL = "bot_wall"
    DRIVER_ERROR = "driver_error"

    @property
    def retryable(self) -> bool:
        return self in (FailureKind.TIMEOUT, FailureKind.DRIVER_ERROR)

    def describe(self, detail: str = "") -> str:
        """Human-readable message for the CLI."""
        if self is FailureKind.TIMEOUT:
            return (
                "Timed out waiting for the page to load. "
                "Try again with a larger --timeout value."
            )
        if self is FailureKind.LOGIN_WALL:
            return (
                "The site is asking for a login before showing content. "
                "Logged-out access is not available for this profile."
            )
        if self is FailureKind.BOT_WALL:
            return (
                "The site rejected the automated browser "
                "(unsupported client page)."
            )
        return detail or "The browser driver failed."


class DriverError(Exception):
    """Raised by a page driver for any automation failure."""


class DriverTimeout(DriverError):
    """A driver deadline (navigation, selector wait, evaluate) expired."""


class ExtractionError(Exception):
    """A run ended in a classified failure."""

    def __init__(self, kind: FailureKind, detail: str = ""):
        self.kind = kind
        self.detail = detail
        super().__init__(kind.describe(detail))


__all__ = ["FailureKind", "DriverError", "DriverTimeout", "ExtractionError"]
