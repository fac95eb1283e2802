"""Error taxonomy for race control.

Every error here is recoverable: the session layer catches it where it
happens and turns it into an operator notification.
"""

from __future__ import annotations

from typing import Optional


class RaceControlError(Exception):
    """Base class for all race control errors."""


class OfflineError(RaceControlError):
    """A network operation was attempted while the device is offline."""


class ValidationError(RaceControlError):
    """Bad runner number or an impossible (negative) race time."""


class NotRunningError(RaceControlError):
    """A finish was recorded while the race timer was not running."""


class DuplicateLocalEntryError(RaceControlError):
    """The runner number is already present in the local buffer."""

    def __init__(self, runner_number: int):
        super().__init__(f"Runner {runner_number} already recorded")
        self.runner_number = runner_number


class ConflictError(RaceControlError):
    """The remote authority already holds some of the submitted runners."""

    def __init__(self, duplicates: list[int], message: Optional[str] = None):
        self.duplicates = list(duplicates)
        numbers = ", ".join(str(n) for n in self.duplicates)
        super().__init__(message or f"Runner numbers already recorded: {numbers}")


class TransportFailure(RaceControlError):
    """Network or server error while talking to the remote authority."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class CorruptLocalState(RaceControlError):
    """Persisted local state could not be parsed."""
