"""
Pydantic v2 schemas for the Aperture REST API.

Re-exports every public schema so consumers can do::

    from aperture.api.schemas import SessionCreate, SessionView  # etc.
"""

from aperture.api.schemas.session import (
    ExpandRequest,
    ExpansionResponse,
    FilterUpdate,
    FiltersSchema,
    HighlightResponse,
    SessionCreate,
    SessionStatsSchema,
    SessionView,
)

__all__: list[str] = [
    "SessionCreate",
    "FilterUpdate",
    "ExpandRequest",
    "FiltersSchema",
    "SessionStatsSchema",
    "SessionView",
    "ExpansionResponse",
    "HighlightResponse",
]
