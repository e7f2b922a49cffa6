"""
Fetch Orchestrator for Aperture.

Turns the hierarchical record source into flat per-workload records:

1. Walk portfolios -> services -> workloads **sequentially**, bounded to the
   first ``max_portfolios`` portfolios and the first
   ``max_services_per_portfolio`` services of each.
2. Fold every per-service batch into the accumulator with
   :func:`~aperture.engine.merger.merge_records`.
3. Once the workload set is known, look up application components for all
   workloads **concurrently** via :func:`asyncio.gather`.  Component lookups
   are optional enrichment: a failed lookup yields an empty list.

Any other :class:`~aperture.core.errors.RecordSourceError` propagates to the
caller, which reports it as a single session-level error.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional, Sequence

from aperture.config import Settings
from aperture.core.logging import get_logger
from aperture.engine.merger import merge_records
from aperture.models.records import AppComponent, ServiceInfo, WorkloadRecord
from aperture.sources.base import RecordSource, SourceService, SourceWorkload

logger = get_logger(__name__)


@dataclass
class BrowseSnapshot:
    """Result of a full browse load.

    Attributes:
        records: Merged workload records, in discovery order.
        portfolios: Names of *all* portfolios the source listed, including
            ones beyond the fetch cap (used to populate filter choices).
    """

    records: list[WorkloadRecord] = field(default_factory=list)
    portfolios: list[str] = field(default_factory=list)


def _service_info(service: SourceService, portfolio_name: Optional[str]) -> ServiceInfo:
    return ServiceInfo(
        name=service.name,
        full_name=service.full_name,
        description=service.description,
        portfolio=portfolio_name or None,
        criticality=service.criticality,
        environment=service.environment,
        category=service.category,
        infrastructure=service.infrastructure,
    )


def _workload_record(
    workload: SourceWorkload,
    services: Sequence[ServiceInfo],
    portfolios: Sequence[str],
) -> WorkloadRecord:
    return WorkloadRecord(
        hostname=workload.name,
        ip=workload.ip,
        os=workload.os,
        fqdn=workload.fqdn,
        environment=workload.environment,
        class_type=workload.class_type,
        virtual=workload.virtual,
        short_description=workload.short_description,
        services=[s.name for s in services],
        service_details=list(services),
        portfolios=list(portfolios),
    )


class FetchOrchestrator:
    """Issues bounded query sequences against a :class:`RecordSource`.

    Usage::

        orchestrator = FetchOrchestrator(source)
        snapshot = await orchestrator.load_all()
    """

    def __init__(
        self,
        source: RecordSource,
        max_portfolios: int = 10,
        max_services_per_portfolio: int = 20,
    ) -> None:
        self._source = source
        self._max_portfolios = max_portfolios
        self._max_services = max_services_per_portfolio

    @classmethod
    def from_settings(cls, source: RecordSource, settings: Settings) -> "FetchOrchestrator":
        return cls(
            source,
            max_portfolios=settings.MAX_PORTFOLIOS,
            max_services_per_portfolio=settings.MAX_SERVICES_PER_PORTFOLIO,
        )

    @property
    def source(self) -> RecordSource:
        return self._source

    # -- Browse mode -----------------------------------------------------------

    async def load_all(self, portfolio_name: Optional[str] = None) -> BrowseSnapshot:
        """Load every workload reachable within the caps.

        Args:
            portfolio_name: Restrict the walk to the portfolio with exactly
                this name.  The returned portfolio list is never restricted.

        Raises:
            RecordSourceError: If any hierarchy call fails.
        """
        portfolios = await self._source.list_portfolios()
        targets = (
            [p for p in portfolios if p.name == portfolio_name]
            if portfolio_name
            else portfolios
        )

        records: list[WorkloadRecord] = []
        for portfolio in targets[: self._max_portfolios]:
            services = await self._source.list_services_for_portfolio(portfolio.sys_id)
            for service in services[: self._max_services]:
                workloads = await self._source.list_workloads_for_service(service.sys_id)
                detail = _service_info(service, portfolio.name)
                batch = [
                    _workload_record(w, [detail], [portfolio.name])
                    for w in workloads
                    if w.name
                ]
                records = merge_records(records, batch)

        records = await self._attach_components(records)

        logger.info(
            "Loaded %d workloads from %d portfolios",
            len(records),
            min(len(targets), self._max_portfolios),
            extra={"action": "load_all", "target": portfolio_name or "*"},
        )
        return BrowseSnapshot(records=records, portfolios=[p.name for p in portfolios])

    # -- Expansion scopes ------------------------------------------------------

    async def workloads_for_service(self, service_name: str) -> list[WorkloadRecord]:
        """Return records scoped to just *service_name*.

        Each record carries only this service and its portfolio, not the
        workload's full membership, so expanding one service does not pull
        unrelated services into the graph.

        Raises:
            RecordSourceError: If a lookup other than components fails.
        """
        service = await self._source.find_service_by_name(service_name)
        if service is None:
            logger.info(
                "Service not found",
                extra={"action": "service_not_found", "target": service_name},
            )
            return []

        workloads = await self._source.list_workloads_for_service(service.sys_id)

        portfolio_name = ""
        if service.portfolio_id:
            portfolio = await self._source.get_portfolio(service.portfolio_id)
            if portfolio is not None:
                portfolio_name = portfolio.name

        detail = _service_info(service, portfolio_name)
        records = merge_records(
            [],
            (
                _workload_record(w, [detail], [portfolio_name] if portfolio_name else [])
                for w in workloads
                if w.name
            ),
        )
        return await self._attach_components(records)

    async def workloads_for_portfolio(self, portfolio_name: str) -> list[WorkloadRecord]:
        """Return records for the first N services of *portfolio_name*.

        Raises:
            RecordSourceError: If a lookup other than components fails.
        """
        portfolio = await self._source.find_portfolio_by_name(portfolio_name)
        if portfolio is None:
            logger.info(
                "Portfolio not found",
                extra={"action": "portfolio_not_found", "target": portfolio_name},
            )
            return []

        services = await self._source.list_services_for_portfolio(portfolio.sys_id)
        records: list[WorkloadRecord] = []
        for service in services[: self._max_services]:
            workloads = await self._source.list_workloads_for_service(service.sys_id)
            detail = _service_info(service, portfolio.name)
            records = merge_records(
                records,
                [_workload_record(w, [detail], [portfolio.name]) for w in workloads if w.name],
            )
        return await self._attach_components(records)

    # -- Focused mode ----------------------------------------------------------

    async def workload_context(self, identifier: str) -> Optional[WorkloadRecord]:
        """Resolve *identifier* to a workload and its full CMDB context.

        Args:
            identifier: IP address, source id, name, host name or FQDN.

        Returns:
            The workload's record with every service it belongs to, each
            service's enriched details and owning portfolio, and its
            components; ``None`` if nothing matches.

        Raises:
            RecordSourceError: If a lookup other than components fails.
        """
        workload = await self._source.find_workload(identifier)
        if workload is None or not workload.name:
            return None

        related = await self._source.list_services_for_workload(workload.sys_id)

        # Full service rows carry the enrichment fields and the portfolio link.
        resolved: list[tuple[str, Optional[SourceService]]] = []
        for service in related:
            if any(name == service.name for name, _ in resolved):
                continue
            resolved.append((service.name, await self._source.find_service_by_name(service.name)))

        portfolio_names: dict[str, str] = {}
        for _, full in resolved:
            pid = full.portfolio_id if full else None
            if pid and pid not in portfolio_names:
                portfolio = await self._source.get_portfolio(pid)
                if portfolio is not None:
                    portfolio_names[pid] = portfolio.name

        details: list[ServiceInfo] = []
        for name, full in resolved:
            if full is None:
                details.append(ServiceInfo(name=name))
                continue
            details.append(
                _service_info(full, portfolio_names.get(full.portfolio_id or ""))
            )

        portfolios: list[str] = []
        for pf_name in portfolio_names.values():
            if pf_name not in portfolios:
                portfolios.append(pf_name)

        record = _workload_record(workload, details, portfolios)
        components = await self._components_for(record.hostname)
        return record.model_copy(update={"components": components})

    # -- Components ------------------------------------------------------------

    async def _attach_components(self, records: list[WorkloadRecord]) -> list[WorkloadRecord]:
        """Fetch components for all *records* concurrently and attach them."""
        if not records:
            return records
        results: list[list[AppComponent]] = await asyncio.gather(
            *(self._components_for(r.hostname) for r in records)
        )
        return [
            record.model_copy(update={"components": components})
            for record, components in zip(records, results)
        ]

    async def _components_for(self, hostname: str) -> list[AppComponent]:
        try:
            return await self._source.list_components_for_workload(hostname)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Component lookup failed: %s",
                exc,
                extra={"action": "components_failed", "target": hostname},
            )
            return []
