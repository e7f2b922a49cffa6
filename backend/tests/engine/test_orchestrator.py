"""
Tests for the fetch orchestrator.

Covers the capped browse walk, per-service batch merging, concurrent
component lookups that degrade to empty lists on failure, the service and
portfolio expansion scopes, workload context resolution, and propagation of
hierarchy failures.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

from aperture.core.errors import RecordSourceError
from aperture.engine.orchestrator import FetchOrchestrator
from aperture.models.records import AppComponent
from aperture.sources.memory import InMemoryRecordSource


def _by_host(records) -> dict:
    return {r.hostname: r for r in records}


# ---------------------------------------------------------------------------
# load_all
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_load_all_merges_workloads_across_services(orchestrator: FetchOrchestrator) -> None:
    snapshot = await orchestrator.load_all()

    assert [r.hostname for r in snapshot.records] == [
        "api-gw-1", "web-01", "db-01", "mon-01", "denwebarcgis01d",
    ]
    assert snapshot.portfolios == ["Commerce", "Platform", "Legacy", "Sandbox"]

    records = _by_host(snapshot.records)
    assert records["api-gw-1"].services == ["Checkout", "Billing"]
    assert records["api-gw-1"].portfolios == ["Commerce"]
    assert records["web-01"].portfolios == ["Commerce", "Platform"]
    assert records["web-01"].is_multi_use is True
    assert records["mon-01"].is_multi_use is False
    assert records["web-01"].service_detail("Checkout").full_name == "Online Checkout"
    assert records["web-01"].service_detail("Monitoring").portfolio == "Platform"


@pytest.mark.asyncio
async def test_load_all_attaches_components(orchestrator: FetchOrchestrator) -> None:
    records = _by_host((await orchestrator.load_all()).records)

    assert [c.name for c in records["denwebarcgis01d"].components] == [
        "Tomcat@denwebarcgis01d", "IIS@denwebarcgis01d",
    ]
    assert [c.name for c in records["web-01"].components] == ["NGINX@web-01"]
    assert records["db-01"].components == []


@pytest.mark.asyncio
async def test_load_all_respects_caps(source: InMemoryRecordSource) -> None:
    orchestrator = FetchOrchestrator(source, max_portfolios=1, max_services_per_portfolio=1)

    snapshot = await orchestrator.load_all()

    assert [r.hostname for r in snapshot.records] == ["api-gw-1", "web-01"]
    assert all(r.services == ["Checkout"] for r in snapshot.records)
    # The full portfolio list is still reported for filter choices.
    assert len(snapshot.portfolios) == 4
    service_calls = [arg for op, arg in source.calls if op == "list_services_for_portfolio"]
    assert service_calls == ["portfolio/Commerce"]


@pytest.mark.asyncio
async def test_load_all_for_one_portfolio(orchestrator: FetchOrchestrator) -> None:
    snapshot = await orchestrator.load_all("Platform")

    assert [r.hostname for r in snapshot.records] == ["mon-01", "web-01"]
    assert all(r.services == ["Monitoring"] for r in snapshot.records)
    assert snapshot.portfolios == ["Commerce", "Platform", "Legacy", "Sandbox"]


@pytest.mark.asyncio
async def test_failed_component_lookup_becomes_empty_list(
    catalog: dict[str, Any], caplog: pytest.LogCaptureFixture
) -> None:
    source = InMemoryRecordSource(catalog, failing_components=["denwebarcgis01d"])
    orchestrator = FetchOrchestrator(source)

    with caplog.at_level(logging.WARNING, logger="aperture"):
        records = _by_host((await orchestrator.load_all()).records)

    assert records["denwebarcgis01d"].components == []
    assert [c.name for c in records["web-01"].components] == ["NGINX@web-01"]
    assert any(getattr(r, "action", None) == "components_failed" for r in caplog.records)


@pytest.mark.asyncio
async def test_hierarchy_failure_propagates(catalog: dict[str, Any]) -> None:
    source = InMemoryRecordSource(catalog, failing_operations=["list_workloads_for_service"])

    with pytest.raises(RecordSourceError) as exc_info:
        await FetchOrchestrator(source).load_all()

    assert exc_info.value.operation == "list_workloads_for_service"


class _GatedComponentSource(InMemoryRecordSource):
    """Holds every component lookup until ``expected`` lookups are in flight."""

    def __init__(self, catalog: dict[str, Any], expected: int) -> None:
        super().__init__(catalog)
        self._expected = expected
        self._started = 0
        self._all_started = asyncio.Event()

    async def list_components_for_workload(self, hostname: str) -> list[AppComponent]:
        self._started += 1
        if self._started == self._expected:
            self._all_started.set()
        await self._all_started.wait()
        return await super().list_components_for_workload(hostname)


@pytest.mark.asyncio
async def test_component_lookups_run_concurrently(catalog: dict[str, Any]) -> None:
    """Sequential lookups would block on the gate forever."""
    orchestrator = FetchOrchestrator(_GatedComponentSource(catalog, expected=5))

    snapshot = await asyncio.wait_for(orchestrator.load_all(), timeout=2)

    assert len(snapshot.records) == 5


# ---------------------------------------------------------------------------
# Expansion scopes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_workloads_for_service_scopes_records_to_the_service(
    orchestrator: FetchOrchestrator,
) -> None:
    records = await orchestrator.workloads_for_service("Billing")

    assert [r.hostname for r in records] == ["api-gw-1", "db-01"]
    for record in records:
        assert record.services == ["Billing"]
        assert record.portfolios == ["Commerce"]
        assert record.service_detail("Billing").portfolio == "Commerce"


@pytest.mark.asyncio
async def test_workloads_for_unknown_service_is_empty(orchestrator: FetchOrchestrator) -> None:
    assert await orchestrator.workloads_for_service("Nope") == []


@pytest.mark.asyncio
async def test_workloads_for_portfolio(orchestrator: FetchOrchestrator) -> None:
    records = _by_host(await orchestrator.workloads_for_portfolio("commerce"))

    assert list(records) == ["api-gw-1", "web-01", "db-01"]
    assert records["api-gw-1"].services == ["Checkout", "Billing"]
    assert records["web-01"].services == ["Checkout"]
    assert records["web-01"].portfolios == ["Commerce"]
    assert [c.name for c in records["web-01"].components] == ["NGINX@web-01"]


@pytest.mark.asyncio
async def test_workloads_for_unknown_portfolio_is_empty(orchestrator: FetchOrchestrator) -> None:
    assert await orchestrator.workloads_for_portfolio("Nope") == []


# ---------------------------------------------------------------------------
# workload_context
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_workload_context_by_ip(orchestrator: FetchOrchestrator) -> None:
    record = await orchestrator.workload_context("10.0.0.10")

    assert record is not None
    assert record.hostname == "web-01"
    assert record.services == ["Checkout", "Monitoring"]
    assert record.portfolios == ["Commerce", "Platform"]
    assert record.is_multi_use is True
    assert record.service_detail("Checkout").criticality == "1 - most critical"
    assert record.service_detail("Monitoring").portfolio == "Platform"
    assert [c.name for c in record.components] == ["NGINX@web-01"]


@pytest.mark.asyncio
async def test_workload_context_by_fqdn(orchestrator: FetchOrchestrator) -> None:
    record = await orchestrator.workload_context("API-GW-1.corp.example")

    assert record is not None
    assert record.hostname == "api-gw-1"
    assert record.environment == "Production"
    assert record.class_type == "cmdb_ci_linux_server"


@pytest.mark.asyncio
async def test_workload_context_unknown_is_none(orchestrator: FetchOrchestrator) -> None:
    assert await orchestrator.workload_context("ghost-host") is None
