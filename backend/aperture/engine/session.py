"""
Reconciliation session: the incremental expansion controller.

A session owns one record accumulator and moves between two modes:

* **browse** -- everything the orchestrator can reach (within its caps) is
  loaded once.  Filters narrow the *visible* subset; the accumulator is
  never touched by them.
* **focused** -- the accumulator starts as the context of one workload.
  Service and portfolio nodes can then be expanded, which fetches the
  records scoped to that node and merges them in.  Expansion only ever adds
  until :meth:`ReconciliationSession.collapse_to_focus` or a reset.

Every reset bumps :attr:`ReconciliationSession.generation`.  Any fetch that
was in flight across a reset compares the generation it captured before
suspending and drops its result if the two differ, so a late response can
never resurrect state the caller already discarded.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Literal, Optional

from aperture.core.errors import NotExpandableError, RecordSourceError, SessionStateError
from aperture.core.logging import get_logger
from aperture.engine.graph_builder import build_graph
from aperture.engine.highlight import connected_path
from aperture.engine.layout import layout_graph
from aperture.engine.merger import merge_records
from aperture.engine.orchestrator import FetchOrchestrator
from aperture.models.graph import GraphData, node_id
from aperture.models.records import WorkloadRecord

logger = get_logger(__name__)

SessionMode = Literal["browse", "focused"]
SessionStatus = Literal["idle", "ready", "not_found", "error"]
FilterKey = Literal["portfolio", "service", "search"]
ExpansionStatus = Literal["expanded", "already_expanded", "stale", "failed"]

_EXPANDABLE_PREFIXES: tuple[str, ...] = ("service:", "portfolio:")


@dataclass
class GraphFilters:
    """Browse-mode filters.  Empty strings mean "no filter"."""

    portfolio: str = ""
    service: str = ""
    search: str = ""


@dataclass
class SessionStats:
    """Counts over the visible record set."""

    portfolios: int = 0
    services: int = 0
    workloads: int = 0
    multi_use: int = 0


@dataclass
class ExpansionResult:
    """Outcome of one :meth:`ReconciliationSession.expand` call.

    Attributes:
        node_id: The node that was expanded.
        status: ``expanded`` when records were merged, ``already_expanded``
            for a repeated call, ``stale`` when a reset happened while the
            fetch was in flight, ``failed`` when the fetch raised.
        added: Number of workloads new to the accumulator.
        error: Failure message for ``failed`` results.
    """

    node_id: str
    status: ExpansionStatus
    added: int = 0
    error: Optional[str] = None


class ReconciliationSession:
    """One user's view of the CMDB.

    Args:
        orchestrator: Issues the record-source queries for this session.
        session_id: Identifier to use; a random UUID by default.
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        session_id: Optional[str] = None,
    ) -> None:
        self.id: str = session_id or str(uuid.uuid4())
        self._orchestrator = orchestrator

        self.mode: SessionMode = "browse"
        self.status: SessionStatus = "idle"
        self.error: Optional[str] = None
        self.generation: int = 0

        self.records: list[WorkloadRecord] = []
        self.portfolios: list[str] = []
        self.expanded: set[str] = set()
        self.filters = GraphFilters()

        self.focused_hostname: Optional[str] = None
        self._focus_record: Optional[WorkloadRecord] = None
        self._focus_identifier: Optional[str] = None
        self._portfolio_scope: Optional[str] = None

    # ── Properties ──────────────────────────────────────────────────────────

    @property
    def focused_node_id(self) -> Optional[str]:
        if self.focused_hostname is None:
            return None
        return node_id("workload", self.focused_hostname)

    def _reset(self) -> int:
        self.generation += 1
        self.records = []
        self.portfolios = []
        self.expanded = set()
        self.error = None
        self.status = "idle"
        return self.generation

    # ── Loading ─────────────────────────────────────────────────────────────

    async def load_browse(self, portfolio_name: Optional[str] = None) -> None:
        """Enter browse mode and load every reachable record.

        Args:
            portfolio_name: Only walk this portfolio.
        """
        generation = self._reset()
        self.mode = "browse"
        self.focused_hostname = None
        self._focus_record = None
        self._focus_identifier = None
        self._portfolio_scope = portfolio_name

        try:
            snapshot = await self._orchestrator.load_all(portfolio_name)
        except RecordSourceError as exc:
            if generation == self.generation:
                self._fail("load_browse", portfolio_name or "*", exc)
            return

        if generation != self.generation:
            logger.info(
                "Discarding superseded browse load",
                extra={"action": "load_discarded", "target": self.id},
            )
            return

        self.records = snapshot.records
        self.portfolios = snapshot.portfolios
        self.status = "ready"

    async def focus(self, identifier: str) -> None:
        """Enter focused mode on the workload *identifier* resolves to.

        Sets ``status`` to ``not_found`` (with a message) when nothing
        matches, which callers must distinguish from an empty graph.
        """
        generation = self._reset()
        self.mode = "focused"
        self.focused_hostname = identifier
        self._focus_record = None
        self._focus_identifier = identifier

        try:
            record = await self._orchestrator.workload_context(identifier)
        except RecordSourceError as exc:
            if generation == self.generation:
                self._fail("focus", identifier, exc)
            return

        if generation != self.generation:
            return

        if record is None:
            self.status = "not_found"
            self.error = f'No CMDB record found for "{identifier}"'
            logger.info(
                "Focus target not found",
                extra={"action": "focus_not_found", "target": identifier},
            )
            return

        # The CMDB spelling of the hostname may differ in case.
        self.focused_hostname = record.hostname
        self._focus_record = record
        self.records = [record]
        self.portfolios = list(record.portfolios)
        self.status = "ready"

    async def reload(self) -> None:
        """Repeat the last load in the current mode."""
        if self.mode == "focused" and self._focus_identifier is not None:
            await self.focus(self._focus_identifier)
        else:
            await self.load_browse(self._portfolio_scope)

    def _fail(self, action: str, target: str, exc: RecordSourceError) -> None:
        self.status = "error"
        self.error = str(exc)
        logger.warning(
            "%s failed: %s",
            action,
            exc,
            extra={"action": f"{action}_failed", "target": target},
        )

    # ── Focused mode ────────────────────────────────────────────────────────

    def _require_focus(self) -> WorkloadRecord:
        if self.mode != "focused":
            raise SessionStateError("Session is not in focused mode")
        if self._focus_record is None:
            raise SessionStateError("Session has no focused workload")
        return self._focus_record

    async def expand(self, target_id: str) -> ExpansionResult:
        """Fetch and merge the records behind a service or portfolio node.

        Raises:
            SessionStateError: Outside focused mode or before the focused
                workload has loaded.
            NotExpandableError: If *target_id* is not a service or portfolio
                node id.
        """
        self._require_focus()
        if not target_id.startswith(_EXPANDABLE_PREFIXES):
            raise NotExpandableError(f"{target_id} cannot be expanded")

        if target_id in self.expanded:
            return ExpansionResult(node_id=target_id, status="already_expanded")

        generation = self.generation
        kind, _, name = target_id.partition(":")
        try:
            if kind == "service":
                incoming = await self._orchestrator.workloads_for_service(name)
            else:
                incoming = await self._orchestrator.workloads_for_portfolio(name)
        except RecordSourceError as exc:
            logger.warning(
                "Expansion failed: %s",
                exc,
                extra={"action": "expand_failed", "target": target_id},
            )
            return ExpansionResult(node_id=target_id, status="failed", error=str(exc))

        if generation != self.generation:
            logger.info(
                "Discarding stale expansion",
                extra={"action": "expand_stale", "target": target_id},
            )
            return ExpansionResult(node_id=target_id, status="stale")

        before = len(self.records)
        self.records = merge_records(self.records, incoming)
        self.expanded.add(target_id)
        added = len(self.records) - before

        logger.info(
            "Expanded %s (+%d workloads)",
            target_id,
            added,
            extra={"action": "expand", "target": self.id},
        )
        return ExpansionResult(node_id=target_id, status="expanded", added=added)

    def collapse_to_focus(self) -> None:
        """Drop every expansion and keep only the focused workload."""
        record = self._require_focus()
        self.generation += 1
        self.records = [record]
        self.expanded = set()

    async def exit_focus_mode(self) -> None:
        """Leave focused mode and reload browse mode from scratch."""
        if self.mode != "focused":
            raise SessionStateError("Session is not in focused mode")
        await self.load_browse()

    # ── Browse filters ──────────────────────────────────────────────────────

    def set_filter(self, key: FilterKey, value: str) -> None:
        """Set one filter.  Choosing a portfolio clears the service filter."""
        if key not in ("portfolio", "service", "search"):
            raise ValueError(f"Unknown filter {key!r}")
        setattr(self.filters, key, value)
        if key == "portfolio":
            self.filters.service = ""

    def reset_filters(self) -> None:
        self.filters = GraphFilters()

    def visible_records(self) -> list[WorkloadRecord]:
        """Return the records the graph should show.

        Focused mode shows the whole accumulator; browse mode applies the
        filters.
        """
        if self.mode == "focused":
            return list(self.records)

        f = self.filters
        query = f.search.lower()
        visible: list[WorkloadRecord] = []
        for record in self.records:
            if f.portfolio and f.portfolio not in record.portfolios:
                continue
            if f.service and f.service not in record.services:
                continue
            if query and not (
                query in record.hostname.lower()
                or (record.ip and query in record.ip.lower())
                or any(query in s.lower() for s in record.services)
                or any(query in p.lower() for p in record.portfolios)
            ):
                continue
            visible.append(record)
        return visible

    def available_services(self) -> list[str]:
        """Sorted service names within the current portfolio filter."""
        records = self.records
        if self.filters.portfolio:
            records = [r for r in records if self.filters.portfolio in r.portfolios]
        return sorted({s for r in records for s in r.services})

    def stats(self) -> SessionStats:
        portfolios: set[str] = set()
        services: set[str] = set()
        hostnames: set[str] = set()
        multi_use = 0
        for record in self.visible_records():
            portfolios.update(record.portfolios)
            services.update(record.services)
            if record.key not in hostnames:
                hostnames.add(record.key)
                if record.is_multi_use:
                    multi_use += 1
        return SessionStats(
            portfolios=len(portfolios),
            services=len(services),
            workloads=len(hostnames),
            multi_use=multi_use,
        )

    # ── Views ───────────────────────────────────────────────────────────────

    def graph(self) -> GraphData:
        """Build and lay out the graph of the visible records.

        An empty record set yields an empty graph, without lane backgrounds.
        """
        built = build_graph(self.visible_records(), self.focused_hostname)
        if not built.nodes:
            return GraphData(nodes=[], edges=[])
        return layout_graph(built.nodes, built.edges)

    def highlight(self, target_id: str) -> set[str]:
        """Return the node ids connected to *target_id* in the current graph."""
        built = build_graph(self.visible_records(), self.focused_hostname)
        return connected_path(target_id, built.edges)
