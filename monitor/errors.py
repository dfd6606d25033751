"""
Exception types shared by the monitoring services and the HTTP layer.
"""

from typing import Iterable, List


class MonitorError(Exception):
    """Base class for all monitoring errors."""


class ValidationError(MonitorError):
    """Caller supplied input that cannot be processed."""

    def __init__(self, message: str, fields: Iterable[str] = ()):
        super().__init__(message)
        self.fields: List[str] = list(fields)


class MissingFieldsError(ValidationError):
    """One or more required fields are absent or empty."""

    def __init__(self, fields: Iterable[str]):
        fields = list(fields)
        super().__init__(f"Missing required fields: {', '.join(fields)}", fields)


class NotFoundError(MonitorError):
    """Referenced entity does not exist."""


class JobActionError(MonitorError):
    """A job's target action failed (transport error or non-2xx status)."""
