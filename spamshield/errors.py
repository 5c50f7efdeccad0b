"""
Error taxonomy for the moderation engine.

Verdicts (spam / not spam, approve / review / reject) are ordinary return
values. These exceptions are reserved for calls that cannot produce one.
"""

from __future__ import annotations


class SpamShieldError(Exception):
    """Base class for engine errors."""


class ValidationError(SpamShieldError):
    """Missing or malformed required input (e.g. empty content)."""


class NotFound(SpamShieldError):
    """A referenced detection record does not exist."""

    def __init__(self, detection_id: str):
        super().__init__(f"Detection not found: {detection_id}")
        self.detection_id = detection_id


class DependencyError(SpamShieldError):
    """The backing store is unreachable or failed."""


class ConflictError(SpamShieldError):
    """A review was based on a stale revision of the record."""

    def __init__(self, detection_id: str, expected: int, actual: int):
        super().__init__(
            f"Detection {detection_id} is at revision {actual}, expected {expected}"
        )
        self.detection_id = detection_id
        self.expected = expected
        self.actual = actual
