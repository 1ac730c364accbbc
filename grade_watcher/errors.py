"""Error hierarchy for the Grade Watcher pipeline.

Every stage raises a subclass of GradeWatcherError; main.main() is the
single place where they are caught, logged and turned into an exit code.
"""

from typing import Any, Dict, Optional


class GradeWatcherError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(GradeWatcherError):
    """A required setting is missing or invalid."""


class AuthError(GradeWatcherError):
    """The portal did not issue a session cookie (wrong credentials)."""


class StudentLookupError(GradeWatcherError, LookupError):
    """The student identifier could not be found in the portal page."""


class ParseError(GradeWatcherError):
    """The grade report markup does not have the expected shape."""


class NetworkError(GradeWatcherError):
    """Transport failure or unexpected HTTP status from the portal."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, context)
        self.status_code = status_code


class NotifyError(GradeWatcherError):
    """The webhook post failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, context)
        self.status_code = status_code


class SnapshotError(GradeWatcherError):
    """The snapshot file could not be read or written."""
