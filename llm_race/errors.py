"""Error taxonomy for backend races.

- TransportError: network, timeout or HTTP status failure on one backend.
  Scoped to its target.
- ProtocolError: malformed or unexpected wire payload. Logged and dropped.
- CancellationError: the shared cancellation signal fired. Not a failure.
- ConfigurationError: misconfiguration or a programming defect. Propagates.
"""

from typing import Optional, Union


class RaceError(Exception):
    """Base class for errors raised by the race core."""


class TransportError(RaceError):
    """A backend call failed at the transport level."""

    def __init__(self, message: str, code: Optional[Union[str, int]] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} ({self.code})"


class ProtocolError(RaceError):
    """A wire payload could not be understood."""


class CancellationError(RaceError):
    """The request was cancelled by the user."""


class ConfigurationError(RaceError):
    """Misconfiguration or invariant violation; signals a defect."""
