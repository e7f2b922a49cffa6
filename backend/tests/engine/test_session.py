"""
Tests for the reconciliation session.

Covers browse loading and filters, focused mode with incremental expansion,
collapse and exit, the stale-expansion guard, not-found and error states,
and the derived views (stats, available services, graph, highlight).
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from aperture.core.errors import NotExpandableError, SessionStateError
from aperture.engine.orchestrator import FetchOrchestrator
from aperture.engine.session import ReconciliationSession
from aperture.models.records import WorkloadRecord
from aperture.sources.memory import InMemoryRecordSource


def _hosts(records) -> list[str]:
    return [r.hostname for r in records]


class _GatedOrchestrator(FetchOrchestrator):
    """Parks service expansions until ``release`` is set."""

    def __init__(self, source: InMemoryRecordSource) -> None:
        super().__init__(source)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def workloads_for_service(self, service_name: str) -> list[WorkloadRecord]:
        self.entered.set()
        await self.release.wait()
        return await super().workloads_for_service(service_name)


# ---------------------------------------------------------------------------
# Browse mode
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_load_browse(session: ReconciliationSession) -> None:
    await session.load_browse()

    assert session.mode == "browse"
    assert session.status == "ready"
    assert session.error is None
    assert len(session.records) == 5
    assert session.portfolios == ["Commerce", "Platform", "Legacy", "Sandbox"]
    assert session.focused_node_id is None


@pytest.mark.asyncio
async def test_filters_narrow_visible_records_only(session: ReconciliationSession) -> None:
    await session.load_browse()
    before = [r.model_dump() for r in session.records]

    session.set_filter("portfolio", "Platform")
    assert _hosts(session.visible_records()) == ["web-01", "mon-01"]

    session.set_filter("search", "mon")
    assert _hosts(session.visible_records()) == ["web-01", "mon-01"]

    session.set_filter("search", "10.0.0.30")
    assert _hosts(session.visible_records()) == ["mon-01"]

    assert [r.model_dump() for r in session.records] == before


@pytest.mark.asyncio
async def test_service_filter_and_portfolio_reset(session: ReconciliationSession) -> None:
    await session.load_browse()

    session.set_filter("service", "Billing")
    assert _hosts(session.visible_records()) == ["api-gw-1", "db-01"]

    session.set_filter("portfolio", "Commerce")
    assert session.filters.service == ""
    assert _hosts(session.visible_records()) == ["api-gw-1", "web-01", "db-01"]

    session.reset_filters()
    assert len(session.visible_records()) == 5


def test_unknown_filter_key_is_rejected(session: ReconciliationSession) -> None:
    with pytest.raises(ValueError):
        session.set_filter("colour", "blue")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_available_services_follow_portfolio_filter(session: ReconciliationSession) -> None:
    await session.load_browse()

    assert session.available_services() == ["Archive", "Billing", "Checkout", "Monitoring"]

    session.set_filter("portfolio", "Platform")
    # web-01 also belongs to Commerce via Checkout.
    assert session.available_services() == ["Checkout", "Monitoring"]


@pytest.mark.asyncio
async def test_stats_count_visible_records(session: ReconciliationSession) -> None:
    await session.load_browse()

    stats = session.stats()
    assert (stats.portfolios, stats.services, stats.workloads, stats.multi_use) == (3, 4, 5, 2)

    session.set_filter("portfolio", "Legacy")
    stats = session.stats()
    assert (stats.portfolios, stats.services, stats.workloads, stats.multi_use) == (1, 1, 1, 0)


@pytest.mark.asyncio
async def test_graph_is_laid_out(session: ReconciliationSession) -> None:
    await session.load_browse()

    graph = session.graph()

    assert [n.id for n in graph.nodes[:4]] == [
        "lane:portfolio", "lane:service", "lane:component", "lane:workload",
    ]
    assert "component:Tomcat@denwebarcgis01d" in {n.id for n in graph.nodes}


@pytest.mark.asyncio
async def test_expand_is_rejected_in_browse_mode(session: ReconciliationSession) -> None:
    await session.load_browse()

    with pytest.raises(SessionStateError):
        await session.expand("service:Billing")
    with pytest.raises(SessionStateError):
        session.collapse_to_focus()
    with pytest.raises(SessionStateError):
        await session.exit_focus_mode()


@pytest.mark.asyncio
async def test_load_failure_sets_error_state(catalog: dict[str, Any]) -> None:
    source = InMemoryRecordSource(catalog, failing_operations=["list_portfolios"])
    session = ReconciliationSession(FetchOrchestrator(source))

    await session.load_browse()

    assert session.status == "error"
    assert session.error == "list_portfolios failed"
    assert session.records == []


# ---------------------------------------------------------------------------
# Focused mode
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_focus_loads_single_workload_context(session: ReconciliationSession) -> None:
    await session.focus("10.0.0.20")

    assert session.mode == "focused"
    assert session.status == "ready"
    assert session.focused_hostname == "db-01"
    assert session.focused_node_id == "workload:db-01"
    assert _hosts(session.records) == ["db-01"]
    assert session.portfolios == ["Commerce"]

    workload = next(n for n in session.graph().nodes if n.type == "workload")
    assert workload.is_focused is True
    assert workload.env_mismatches is not None
    assert workload.env_mismatches[0].service == "Billing"


@pytest.mark.asyncio
async def test_focus_not_found_is_distinct_from_empty(session: ReconciliationSession) -> None:
    await session.focus("ghost-host")

    assert session.status == "not_found"
    assert session.error == 'No CMDB record found for "ghost-host"'
    assert session.records == []


@pytest.mark.asyncio
async def test_focus_failure_sets_error_state(catalog: dict[str, Any]) -> None:
    source = InMemoryRecordSource(catalog, failing_operations=["list_services_for_workload"])
    session = ReconciliationSession(FetchOrchestrator(source))

    await session.focus("db-01")

    assert session.status == "error"
    assert session.error == "list_services_for_workload failed"


@pytest.mark.asyncio
async def test_failed_reload_clears_previous_portfolios(catalog: dict[str, Any]) -> None:
    source = InMemoryRecordSource(catalog)
    session = ReconciliationSession(FetchOrchestrator(source))
    await session.focus("db-01")
    assert session.portfolios == ["Commerce"]

    source._failing_operations.add("list_portfolios")
    await session.exit_focus_mode()

    assert session.status == "error"
    assert session.records == []
    assert session.portfolios == []


@pytest.mark.asyncio
async def test_not_found_focus_clears_browse_portfolios(session: ReconciliationSession) -> None:
    await session.load_browse()
    assert len(session.portfolios) == 4

    await session.focus("nope")

    assert session.status == "not_found"
    assert session.portfolios == []


@pytest.mark.asyncio
async def test_empty_record_set_yields_empty_graph(session: ReconciliationSession) -> None:
    await session.focus("ghost-host")

    graph = session.graph()

    assert graph.nodes == []
    assert graph.edges == []
    assert session.highlight("workload:ghost-host") == {"workload:ghost-host"}


@pytest.mark.asyncio
async def test_focused_mode_ignores_filters(session: ReconciliationSession) -> None:
    await session.focus("db-01")

    session.set_filter("portfolio", "Platform")

    assert _hosts(session.visible_records()) == ["db-01"]


@pytest.mark.asyncio
async def test_expand_service_then_portfolio(session: ReconciliationSession) -> None:
    await session.focus("db-01")

    result = await session.expand("service:Billing")
    assert (result.status, result.added) == ("expanded", 1)
    assert _hosts(session.records) == ["db-01", "api-gw-1"]

    result = await session.expand("portfolio:Commerce")
    assert (result.status, result.added) == ("expanded", 1)
    assert _hosts(session.records) == ["db-01", "api-gw-1", "web-01"]
    assert session.expanded == {"service:Billing", "portfolio:Commerce"}

    api_gw = session.records[1]
    assert api_gw.services == ["Billing", "Checkout"]
    assert api_gw.is_multi_use is True


@pytest.mark.asyncio
async def test_multi_use_invariant_holds_after_expansions(session: ReconciliationSession) -> None:
    await session.focus("web-01")
    for target in ("service:Checkout", "service:Monitoring", "portfolio:Commerce", "portfolio:Platform"):
        await session.expand(target)

    workloads = [n for n in session.graph().nodes if n.type == "workload"]
    assert len(workloads) == 4
    for node in workloads:
        assert node.is_multi_use == (len(node.services) > 1 or len(node.portfolios) > 1)


@pytest.mark.asyncio
async def test_expand_is_idempotent(session: ReconciliationSession, source: InMemoryRecordSource) -> None:
    await session.focus("db-01")
    await session.expand("service:Billing")
    snapshot = [r.model_dump() for r in session.records]
    calls = len(source.calls)

    result = await session.expand("service:Billing")

    assert result.status == "already_expanded"
    assert [r.model_dump() for r in session.records] == snapshot
    assert len(source.calls) == calls


@pytest.mark.asyncio
async def test_expand_rejects_non_expandable_nodes(session: ReconciliationSession) -> None:
    await session.focus("db-01")

    with pytest.raises(NotExpandableError):
        await session.expand("workload:db-01")
    with pytest.raises(NotExpandableError):
        await session.expand("component:Tomcat@denwebarcgis01d")


@pytest.mark.asyncio
async def test_expand_requires_loaded_focus(session: ReconciliationSession) -> None:
    await session.focus("ghost-host")

    with pytest.raises(SessionStateError):
        await session.expand("service:Billing")


@pytest.mark.asyncio
async def test_failed_expansion_leaves_accumulator_untouched(catalog: dict[str, Any]) -> None:
    source = InMemoryRecordSource(catalog, failing_operations=["find_portfolio_by_name"])
    session = ReconciliationSession(FetchOrchestrator(source))
    await session.focus("db-01")

    result = await session.expand("portfolio:Commerce")

    assert result.status == "failed"
    assert result.error == "find_portfolio_by_name failed"
    assert _hosts(session.records) == ["db-01"]
    assert session.expanded == set()
    assert session.status == "ready"


@pytest.mark.asyncio
async def test_collapse_to_focus(session: ReconciliationSession) -> None:
    await session.focus("db-01")
    await session.expand("service:Billing")

    session.collapse_to_focus()

    assert _hosts(session.records) == ["db-01"]
    assert session.records[0].services == ["Billing"]
    assert session.expanded == set()

    result = await session.expand("service:Billing")
    assert result.status == "expanded"


@pytest.mark.asyncio
async def test_stale_expansion_is_discarded_after_collapse(source: InMemoryRecordSource) -> None:
    orchestrator = _GatedOrchestrator(source)
    session = ReconciliationSession(orchestrator)
    await session.focus("db-01")

    pending = asyncio.create_task(session.expand("service:Billing"))
    await orchestrator.entered.wait()
    session.collapse_to_focus()
    orchestrator.release.set()
    result = await pending

    assert result.status == "stale"
    assert _hosts(session.records) == ["db-01"]
    assert session.expanded == set()


@pytest.mark.asyncio
async def test_stale_expansion_is_discarded_after_exit(source: InMemoryRecordSource) -> None:
    orchestrator = _GatedOrchestrator(source)
    session = ReconciliationSession(orchestrator)
    await session.focus("db-01")

    pending = asyncio.create_task(session.expand("service:Billing"))
    await orchestrator.entered.wait()
    await session.exit_focus_mode()
    orchestrator.release.set()
    result = await pending

    assert result.status == "stale"
    assert session.mode == "browse"
    assert len(session.records) == 5
    assert all(r.services for r in session.records)


@pytest.mark.asyncio
async def test_exit_focus_mode_reloads_browse(session: ReconciliationSession) -> None:
    await session.focus("db-01")
    await session.expand("service:Billing")
    generation = session.generation

    await session.exit_focus_mode()

    assert session.mode == "browse"
    assert session.status == "ready"
    assert session.focused_hostname is None
    assert session.expanded == set()
    assert len(session.records) == 5
    assert session.generation > generation


@pytest.mark.asyncio
async def test_reload_repeats_focus(session: ReconciliationSession) -> None:
    await session.focus("db-01")
    await session.expand("service:Billing")

    await session.reload()

    assert session.mode == "focused"
    assert _hosts(session.records) == ["db-01"]
    assert session.expanded == set()


@pytest.mark.asyncio
async def test_highlight_uses_current_graph(session: ReconciliationSession) -> None:
    await session.load_browse()

    connected = session.highlight("service:Archive")

    assert connected == {
        "portfolio:Legacy",
        "service:Archive",
        "component:Tomcat@denwebarcgis01d",
        "component:IIS@denwebarcgis01d",
        "workload:denwebarcgis01d",
    }
