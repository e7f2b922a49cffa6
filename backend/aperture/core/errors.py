"""
Exception hierarchy for Aperture.

Only three things can go wrong in the reconciliation pipeline: the upstream
CMDB fails, a caller asks a session for something its current mode does not
allow, or a caller tries to expand a node that cannot be expanded.  Missing
optional fields are never an error.
"""

from __future__ import annotations


class ApertureError(Exception):
    """Base class for every error raised by Aperture."""


class RecordSourceError(ApertureError):
    """An upstream record-source call failed (HTTP status, timeout, transport).

    Attributes:
        operation: Short name of the failed call (e.g. ``"cmdb_rel_ci"``).
    """

    def __init__(self, message: str, operation: str = "") -> None:
        super().__init__(message)
        self.operation = operation


class SessionStateError(ApertureError):
    """The requested operation is not valid in the session's current mode."""


class NotExpandableError(ApertureError):
    """Only ``service:`` and ``portfolio:`` nodes can be expanded."""
