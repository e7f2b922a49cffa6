"""
Pydantic v2 schemas for session-related API requests and responses.

Session state lives in :class:`~aperture.engine.session.ReconciliationSession`;
:meth:`SessionView.from_session` snapshots it into a response body.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from aperture.engine.session import ExpansionResult, ReconciliationSession
from aperture.models.graph import GraphData

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class SessionCreate(BaseModel):
    """Payload for ``POST /api/v1/sessions``.

    Attributes:
        focus: Workload identifier (IP, sys_id, name, host name or FQDN).
            Creates a focused session when set.
        portfolio: Restrict a browse session to one portfolio.
    """

    focus: Optional[str] = Field(default=None, min_length=1, max_length=255)
    portfolio: Optional[str] = Field(default=None, min_length=1, max_length=255)

    @model_validator(mode="after")
    def _focus_or_portfolio(self) -> "SessionCreate":
        if self.focus and self.portfolio:
            raise ValueError("focus and portfolio are mutually exclusive")
        return self


class FilterUpdate(BaseModel):
    """Payload for ``PUT /api/v1/sessions/{id}/filters``.

    Omitted fields are left unchanged.  Setting ``portfolio`` clears
    ``service`` unless ``service`` is given in the same request.
    """

    portfolio: Optional[str] = None
    service: Optional[str] = None
    search: Optional[str] = None


class ExpandRequest(BaseModel):
    """Payload for ``POST /api/v1/sessions/{id}/expand``."""

    node_id: str = Field(..., min_length=1, examples=["service:Billing"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class FiltersSchema(BaseModel):
    portfolio: str = ""
    service: str = ""
    search: str = ""


class SessionStatsSchema(BaseModel):
    """Counts over the visible record set."""

    portfolios: int = 0
    services: int = 0
    workloads: int = 0
    multi_use: int = 0


class SessionView(BaseModel):
    """Full session snapshot returned by most session endpoints.

    Attributes:
        id: Session identifier.
        mode: ``browse`` or ``focused``.
        status: ``idle``, ``ready``, ``not_found`` or ``error``.
        error: Message for ``not_found`` and ``error`` states.
        focused_node_id: ``workload:<hostname>`` in focused mode.
        expanded: Node ids expanded since the last reset, sorted.
        filters: Current browse filters (ignored in focused mode).
        stats: Counts over the visible records.
        available_services: Services selectable under the portfolio filter.
        portfolios: Portfolio names known to the session.
        graph: Laid-out graph of the visible records.
    """

    id: str
    mode: Literal["browse", "focused"]
    status: Literal["idle", "ready", "not_found", "error"]
    error: Optional[str] = None
    focused_node_id: Optional[str] = None
    expanded: list[str] = Field(default_factory=list)
    filters: FiltersSchema = Field(default_factory=FiltersSchema)
    stats: SessionStatsSchema = Field(default_factory=SessionStatsSchema)
    available_services: list[str] = Field(default_factory=list)
    portfolios: list[str] = Field(default_factory=list)
    graph: GraphData = Field(default_factory=GraphData)

    @classmethod
    def from_session(cls, session: ReconciliationSession) -> "SessionView":
        stats = session.stats()
        return cls(
            id=session.id,
            mode=session.mode,
            status=session.status,
            error=session.error,
            focused_node_id=session.focused_node_id,
            expanded=sorted(session.expanded),
            filters=FiltersSchema(
                portfolio=session.filters.portfolio,
                service=session.filters.service,
                search=session.filters.search,
            ),
            stats=SessionStatsSchema(
                portfolios=stats.portfolios,
                services=stats.services,
                workloads=stats.workloads,
                multi_use=stats.multi_use,
            ),
            available_services=session.available_services(),
            portfolios=list(session.portfolios),
            graph=session.graph(),
        )


class ExpansionResponse(BaseModel):
    """Result of an expand call plus the session state after it.

    Attributes:
        node_id: The node that was expanded.
        status: ``expanded``, ``already_expanded``, ``stale`` or ``failed``.
        added: Workloads new to the session.
        error: Failure message for ``failed`` results.
        session: Session snapshot after the expansion.
    """

    node_id: str
    status: Literal["expanded", "already_expanded", "stale", "failed"]
    added: int = 0
    error: Optional[str] = None
    session: SessionView

    @classmethod
    def from_result(
        cls, result: ExpansionResult, session: ReconciliationSession
    ) -> "ExpansionResponse":
        return cls(
            node_id=result.node_id,
            status=result.status,
            added=result.added,
            error=result.error,
            session=SessionView.from_session(session),
        )


class HighlightResponse(BaseModel):
    """Node ids connected to ``node_id`` (sorted, origin included)."""

    node_id: str
    connected: list[str] = Field(default_factory=list)
